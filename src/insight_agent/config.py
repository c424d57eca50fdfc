"""
Configuration management for Insight Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for the model backend."""

    model_config = SettingsConfigDict(extra="ignore")

    model: str = "claude-sonnet-4-5"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 8192
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Insight-Agent"
    debug: bool = False
    log_level: str = "INFO"

    # Server (localhost only by default)
    host: str = "127.0.0.1"
    port: int = 6007
    ws_path: str = "/ws"

    # Backend
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    anthropic_base_url: str | None = Field(default=None, description="Override the Anthropic API URL")
    default_model: str = "claude-sonnet-4-5"
    max_tokens: int = 8192
    temperature: float = 0.7

    # Agent
    max_steps: int = Field(default=25, description="Max agent steps per query")
    compaction_keep_first: int = Field(default=2, description="Messages always kept from the start")
    compaction_keep_last: int = Field(default=6, description="Messages always kept from the end")

    # Execution mode
    snapshot_dir: str = Field(
        default="~/.insight-agent/snapshot",
        description="Directory holding the telemetry snapshot the agent explores",
    )
    command_timeout_seconds: int = Field(default=60, description="Timeout for agent shell commands")
    max_output_chars: int = Field(default=20000, description="Truncate command output beyond this")

    @field_validator("ws_path")
    @classmethod
    def normalize_ws_path(cls, v: str) -> str:
        v = v.strip() or "/ws"
        return v if v.startswith("/") else f"/{v}"

    @property
    def snapshot_path(self) -> Path:
        """Resolved snapshot directory."""
        return Path(self.snapshot_dir).expanduser()

    def get_llm_config(self) -> LLMConfig:
        """Get LLM configuration."""
        return LLMConfig(
            model=self.default_model,
            api_key=self.anthropic_api_key,
            base_url=self.anthropic_base_url,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

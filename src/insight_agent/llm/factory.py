"""
LLM factory for creating the configured backend.
"""

from ..config import LLMConfig, Settings
from .anthropic import AnthropicLLM
from .base import BaseLLM


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create an LLM instance based on configuration."""
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config()

    return AnthropicLLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )

"""
Insight Agent - a conversational agent over a telemetry snapshot.
"""

__version__ = "0.1.0"

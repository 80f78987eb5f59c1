"""dispatchkit - orchestration engine for LLM analysis units."""

__version__ = "0.1.0"

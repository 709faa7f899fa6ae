"""Anthropic client factory."""
from __future__ import annotations

import anthropic

from marketseg.config import settings
from marketseg.errors import ConfigError


def get_client() -> anthropic.AsyncAnthropic:
    """Build an AsyncAnthropic client from settings.

    Raises ConfigError when no API key is configured, so the failure is
    reported before any request is attempted.
    """
    if not settings.anthropic_api_key:
        raise ConfigError("ANTHROPIC_API_KEY is not configured")

    kwargs: dict = {"api_key": settings.anthropic_api_key}
    if settings.claude_timeout_seconds is not None:
        kwargs["timeout"] = settings.claude_timeout_seconds
    return anthropic.AsyncAnthropic(**kwargs)


def get_model() -> str:
    """Get the active Claude model id."""
    return settings.claude_model


# Singleton
_client: anthropic.AsyncAnthropic | None = None


def client() -> anthropic.AsyncAnthropic:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client


def reset_client() -> None:
    global _client
    _client = None

"""
LLM provider types, dataclasses, and exceptions.

WHAT: Standard type definitions for completion-service interactions
WHY: Slot extraction must not care which provider answers
HOW: TypedDict for messages, dataclasses for results/status, custom exceptions for errors
"""

from typing import Any, TypedDict, Literal
from dataclasses import dataclass


# Message format compatible with OpenAI-style APIs
ChatMessage = TypedDict(
    "ChatMessage",
    {"role": Literal["system", "user", "assistant"], "content": str}
)

# OpenAI-style structured output contract, e.g.
# {"type": "json_schema", "json_schema": {"name": ..., "strict": True, "schema": {...}}}
ResponseFormat = dict[str, Any]


@dataclass
class LLMResult:
    """Complete LLM generation result."""
    text: str
    usage: dict
    model: str


@dataclass
class ProviderStatus:
    """Health status of an LLM provider."""
    available: bool
    base_url: str
    models: list[str] | None = None
    error: str | None = None


def json_schema_format(name: str, schema: dict[str, Any]) -> ResponseFormat:
    """Build a strict json_schema response_format block."""
    return {
        "type": "json_schema",
        "json_schema": {"name": name, "strict": True, "schema": schema},
    }


# Provider exceptions
class ProviderTimeoutError(Exception):
    """Request to provider timed out."""
    pass


class ProviderUnavailableError(Exception):
    """Provider is not reachable or down."""
    pass


class ProviderDisabledError(Exception):
    """Provider is disabled in configuration."""
    pass


class ProviderResponseError(Exception):
    """Provider returned an invalid or error response."""
    pass

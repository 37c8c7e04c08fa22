"""LLM provider layer."""

from .types import (
    ChatMessage,
    LLMResult,
    ProviderStatus,
    ResponseFormat,
    json_schema_format,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderDisabledError,
    ProviderResponseError,
)
from .provider import LLMProvider
from .provider_factory import get_provider, set_provider, reset_provider, close_provider

__all__ = [
    "ChatMessage",
    "LLMResult",
    "ProviderStatus",
    "ResponseFormat",
    "json_schema_format",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderDisabledError",
    "ProviderResponseError",
    "LLMProvider",
    "get_provider",
    "set_provider",
    "reset_provider",
    "close_provider",
]

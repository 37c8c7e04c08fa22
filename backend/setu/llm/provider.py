"""
LLM provider protocol definition.

WHAT: Abstract interface for completion providers
WHY: The slot extractor is written against this, tests swap in a scripted fake
HOW: Use Protocol to define async ping and generate
"""

from typing import Protocol
from .types import ChatMessage, LLMResult, ProviderStatus, ResponseFormat


class LLMProvider(Protocol):
    """Protocol defining the interface all LLM providers must implement."""

    async def ping(self) -> ProviderStatus:
        """Check provider health and availability."""
        ...

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
        stop: list[str] | None = None,
        model: str | None = None,
        response_format: ResponseFormat | None = None
    ) -> LLMResult:
        """Generate a complete response, optionally constrained to a JSON schema."""
        ...

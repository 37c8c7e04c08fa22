"""
LM Studio provider implementation.

WHAT: Local completion service via LM Studio
WHY: Slot extraction can run fully offline against a local model
HOW: HTTPX client with retries, OpenAI-compatible chat API, json_schema response_format
"""

import httpx
import json
import asyncio
import re

from .types import (
    ChatMessage,
    LLMResult,
    ProviderStatus,
    ResponseFormat,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderResponseError,
)
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

_THINK_BLOCK = re.compile(r"<think(?:ing)?>.*?</think(?:ing)?>\s*", re.DOTALL | re.IGNORECASE)
_THINK_TAG = re.compile(r"</?think(?:ing)?>\s*", re.IGNORECASE)


class LMStudioProvider:
    """LM Studio LLM provider with retry logic."""

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None
    ):
        """Initialize LM Studio provider with httpx client."""
        self.base_url = settings.LM_STUDIO_BASE_URL
        self.default_model = settings.LM_STUDIO_DEFAULT_MODEL
        self.timeout = timeout if timeout is not None else settings.LM_STUDIO_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.LLM_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.LLM_RETRY_DELAY

        # Create async client with connection pooling
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(5.0, read=self.timeout),
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=20
            ),
        )

    def _disable_thinking_in_messages(self, messages: list[ChatMessage]) -> list[ChatMessage]:
        """
        Append the /no_think directive for Qwen3 models.

        Reasoning output in front of the JSON body would break schema parsing.
        Returns new message dicts; the caller's list is left untouched.
        """
        modified = [ChatMessage(role=m["role"], content=m["content"]) for m in messages]

        target_role = "system" if any(m["role"] == "system" for m in modified) else "user"
        for msg in modified:
            if msg["role"] == target_role:
                if "/no_think" not in msg["content"]:
                    msg["content"] = f"{msg['content']}\n\n/no_think"
                break

        return modified

    def _strip_thinking_blocks(self, text: str) -> str:
        """Remove <think>...</think> blocks the model emitted anyway."""
        text = _THINK_BLOCK.sub("", text)
        text = _THINK_TAG.sub("", text)
        return text.strip()

    async def ping(self) -> ProviderStatus:
        """
        Check LM Studio availability.

        Returns:
            ProviderStatus with availability and model list
        """
        try:
            response = await self.client.get(
                f"{self.base_url}/models",
                timeout=5.0
            )
            response.raise_for_status()
            data = response.json()

            models = [m.get("id") for m in data.get("data", [])]

            return ProviderStatus(
                available=True,
                base_url=self.base_url,
                models=models if models else None
            )
        except httpx.TimeoutException:
            logger.warning("LM Studio ping timed out")
            return ProviderStatus(
                available=False,
                base_url=self.base_url,
                error="Connection timeout"
            )
        except httpx.ConnectError:
            logger.warning("LM Studio not reachable")
            return ProviderStatus(
                available=False,
                base_url=self.base_url,
                error="Connection refused - is LM Studio running?"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"LM Studio ping failed: {e}")
            return ProviderStatus(
                available=False,
                base_url=self.base_url,
                error=str(e)
            )

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
        """
        Generate a complete response.

        Args:
            messages: Conversation history
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            stop: Optional stop sequences
            model: Optional model name (uses default_model if not provided)
            response_format: Optional structured output contract

        Returns:
            LLMResult with text, usage, and model

        Raises:
            ProviderTimeoutError: Request timed out
            ProviderUnavailableError: LM Studio not reachable
            ProviderResponseError: Invalid response from LM Studio
        """
        model_to_use = model or self.default_model
        logger.debug(f"Using model: {model_to_use} (requested: {model}, default: {self.default_model})")

        payload = {
            "model": model_to_use,
            "messages": self._disable_thinking_in_messages(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
            # Qwen3-specific parameter to disable thinking mode
            "enable_thinking": False,
        }

        if stop:
            payload["stop"] = stop
        if response_format:
            payload["response_format"] = response_format

        # Retry logic with exponential backoff
        for attempt in range(self.max_retries):
            try:
                response = await self.client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload
                )
                response.raise_for_status()
                data = response.json()

                raw_text = data["choices"][0]["message"]["content"]
                usage = data.get("usage", {})
                response_model = data.get("model", model_to_use)

                text = self._strip_thinking_blocks(raw_text or "")

                logger.info(f"LM Studio generate success (model: {response_model}, tokens: {usage.get('total_tokens', 'unknown')})")

                return LLMResult(
                    text=text,
                    usage=usage,
                    model=response_model
                )

            except httpx.TimeoutException as e:
                logger.warning(f"LM Studio timeout (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderTimeoutError(f"Request timed out after {self.max_retries} attempts") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.ConnectError as e:
                logger.error(f"LM Studio connection refused (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderUnavailableError("LM Studio is not reachable") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500:
                    logger.error(f"LM Studio server error {e.response.status_code} (attempt {attempt + 1}/{self.max_retries})")
                    if attempt == self.max_retries - 1:
                        raise ProviderResponseError(f"Server error: {e.response.status_code}") from e
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                else:
                    # Client errors don't retry
                    raise ProviderResponseError(f"HTTP {e.response.status_code}: {e.response.text}") from e

            except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
                logger.error(f"Invalid response from LM Studio: {e}")
                raise ProviderResponseError(f"Invalid response format: {e}") from e

        raise ProviderResponseError("LM Studio request was not attempted (LLM_MAX_RETRIES < 1)")

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

"""
OpenRouter provider implementation.

WHAT: Hosted completion service via the OpenRouter API
WHY: Cloud models when no local model is available for slot extraction
HOW: OpenAI-compatible API with authorization headers, retry logic, structured outputs
"""

import asyncio
import httpx
import json

from .types import (
    ChatMessage,
    LLMResult,
    ProviderStatus,
    ResponseFormat,
    ProviderDisabledError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderResponseError,
)
from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


class OpenRouterProvider:
    """OpenRouter LLM provider (disabled unless LLM_ENABLE_OPENROUTER is set)."""

    def __init__(self):
        """Initialize OpenRouter provider (checks if enabled)."""
        self.enabled = settings.LLM_ENABLE_OPENROUTER
        self.base_url = settings.OPENROUTER_BASE_URL
        self.api_key = settings.OPENROUTER_API_KEY
        self.default_model = settings.OPENROUTER_DEFAULT_MODEL
        self.max_retries = settings.LLM_MAX_RETRIES
        self.retry_delay = settings.LLM_RETRY_DELAY
        self.client: httpx.AsyncClient | None = None

        if self.enabled:
            if not self.api_key or not self.api_key.strip():
                logger.error("OpenRouter enabled but OPENROUTER_API_KEY is not set or empty!")
                raise ProviderDisabledError(
                    "OpenRouter is enabled but OPENROUTER_API_KEY is not set or empty. "
                    "Set OPENROUTER_API_KEY in your .env file with a key from https://openrouter.ai/keys"
                )

            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(5.0, read=60.0),  # Longer timeout for cloud API
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "HTTP-Referer": settings.APP_NAME,
                    "X-Title": settings.APP_NAME,
                },
            )
            masked = '*' * 10 + self.api_key[-4:] if len(self.api_key) > 4 else '***'
            logger.info(f"OpenRouter provider initialized (enabled, model: {self.default_model}, API key: {masked})")
        else:
            logger.info("OpenRouter provider initialized (disabled)")

    def _check_enabled(self):
        """Raise exception if provider is disabled."""
        if not self.enabled:
            raise ProviderDisabledError("OpenRouter provider is disabled. Set LLM_ENABLE_OPENROUTER=true to enable.")

    async def ping(self) -> ProviderStatus:
        """
        Check OpenRouter availability by fetching models list.

        Raises:
            ProviderDisabledError: If OpenRouter is disabled
        """
        self._check_enabled()

        try:
            response = await self.client.get(f"{self.base_url}/models", timeout=10.0)
            response.raise_for_status()
            data = response.json()

            models = [model.get("id") for model in data.get("data", [])]

            logger.info(f"OpenRouter ping success ({len(models)} models available)")

            return ProviderStatus(
                available=True,
                base_url=self.base_url,
                models=models[:10] if models else None,  # Return first 10
                error=None
            )
        except httpx.TimeoutException:
            logger.warning("OpenRouter ping timeout")
            return ProviderStatus(
                available=False,
                base_url=self.base_url,
                error="Request timed out"
            )
        except httpx.ConnectError:
            logger.warning("OpenRouter not reachable")
            return ProviderStatus(
                available=False,
                base_url=self.base_url,
                error="Connection refused"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenRouter ping failed: {e}")
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

        Raises:
            ProviderDisabledError: OpenRouter is disabled
            ProviderTimeoutError: Request timed out
            ProviderUnavailableError: OpenRouter not reachable
            ProviderResponseError: Invalid response from OpenRouter
        """
        self._check_enabled()

        model_to_use = model or self.default_model
        logger.debug(f"Using model: {model_to_use} (requested: {model}, default: {self.default_model})")

        payload = {
            "model": model_to_use,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False
        }

        if stop:
            payload["stop"] = stop
        if response_format:
            payload["response_format"] = response_format
            # Only route to models that honour structured outputs
            payload["provider"] = {"require_parameters": True}

        for attempt in range(self.max_retries):
            try:
                response = await self.client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload
                )
                response.raise_for_status()
                data = response.json()

                text = data["choices"][0]["message"]["content"] or ""
                usage = data.get("usage", {})
                response_model = data.get("model", model_to_use)

                logger.info(f"OpenRouter generate success (model: {response_model}, tokens: {usage.get('total_tokens', 'unknown')})")

                return LLMResult(
                    text=text.strip(),
                    usage=usage,
                    model=response_model
                )

            except httpx.TimeoutException as e:
                logger.warning(f"OpenRouter timeout (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderTimeoutError(f"Request timed out after {self.max_retries} attempts") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.ConnectError as e:
                logger.error(f"OpenRouter connection refused (attempt {attempt + 1}/{self.max_retries})")
                if attempt == self.max_retries - 1:
                    raise ProviderUnavailableError("OpenRouter is not reachable") from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

            except httpx.HTTPStatusError as e:
                # 429 is retried alongside server errors
                if e.response.status_code >= 500 or e.response.status_code == 429:
                    logger.error(f"OpenRouter error {e.response.status_code} (attempt {attempt + 1}/{self.max_retries})")
                    if attempt == self.max_retries - 1:
                        raise ProviderResponseError(f"Server error: {e.response.status_code}") from e
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                else:
                    raise ProviderResponseError(f"HTTP {e.response.status_code}: {e.response.text}") from e

            except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
                logger.error(f"Invalid response from OpenRouter: {e}")
                raise ProviderResponseError(f"Invalid response format: {e}") from e

        raise ProviderResponseError("OpenRouter request was not attempted (LLM_MAX_RETRIES < 1)")

    async def close(self):
        """Close the HTTP client if enabled."""
        if self.client is not None:
            await self.client.aclose()

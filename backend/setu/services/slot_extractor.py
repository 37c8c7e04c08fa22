"""
Slot extraction.

WHAT: Turn one utterance plus session context into partial slot values
WHY: Sellers speak freely; the dialogue needs typed, normalized fields
HOW: Schema-constrained completion call, strict pydantic parsing, then
     number-word, unit and synonym normalization. Bounded retries with backoff.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from ..core.config import settings
from ..llm import (
    ChatMessage,
    LLMProvider,
    ProviderDisabledError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    get_provider,
    json_schema_format,
)
from ..models.dialogue import DialogueSession
from ..models.extraction import (
    ASK_MARKET_PRICE,
    ExtractionPayload,
    SlotExtractionResult,
    extraction_json_schema,
)
from ..utils.exceptions import ExtractionFailedError
from ..utils.logger import get_logger
from ..utils.numbers import normalize_number, parse_number
from . import commodity_catalog
from .language_registry import get_profile, resolve_commodity
from .stage_table import select_next_stage, slot_bits

logger = get_logger(__name__)

UNIT_TO_KG = {"kg": 1, "quintal": 100, "ton": 1000}
PRICE_UNIT_TO_KG = {"per_kg": 1, "per_quintal": 100, "per_ton": 1000}

_PROVIDER_ERRORS = (
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderResponseError,
    ProviderDisabledError,
)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

_SYSTEM_PROMPT = """You extract structured listing details from a farmer who wants to sell produce.
The farmer speaks {language} ({native}). Current conversation stage: {stage}.
Details collected so far (JSON): {slots}

Read ONLY the farmer's latest message and return one JSON object matching the schema.
- commodity: the produce named in this message, exactly as spoken. null if not mentioned.
- quantity: {{"value": number, "unit": "kg" | "quintal" | "ton"}}. 1 quintal = 100 kg, 1 ton = 1000 kg. null if not mentioned.
- price: the asking price as a number. If the farmer wants the market/mandi rate, use "{ask_market}". null if not mentioned.
- price_unit: "per_kg", "per_quintal" or "per_ton" for the price. null if no price.
- grade: Premium, A, B, Standard or Mixed if quality is described ("first class", "best" = Premium; "good" = A; "average" = B; "normal" = Standard; "mixed" = Mixed).
- origin: place the produce comes from, if mentioned.
- confirmation: true if the farmer agrees ("haan", "yes", "theek hai", "bhejo"), false if they decline ("nahi", "no", "cancel"), otherwise null.
- localized_reply: one short, friendly sentence in {language} asking for the next missing detail.
Never guess values that were not said. Return JSON only."""


class SlotExtractor:
    """
    Schema-constrained slot extraction over an LLM provider.

    WHAT: extract(session, utterance) -> SlotExtractionResult
    WHY: Model output is untrusted; anything unparsable must fail loudly
    HOW: json_schema response_format, ExtractionPayload(extra="forbid"),
         normalization, retry with exponential backoff
    """

    def __init__(
        self,
        provider: LLMProvider | None = None,
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self._provider = provider
        self.max_attempts = max_attempts if max_attempts is not None else settings.EXTRACTION_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.EXTRACTION_RETRY_DELAY
        self.temperature = temperature if temperature is not None else settings.LLM_DEFAULT_TEMPERATURE
        self.max_tokens = max_tokens if max_tokens is not None else settings.LLM_DEFAULT_MAX_TOKENS
        self._sleep = sleep
        self._response_format = json_schema_format("listing_slots", extraction_json_schema())

    @property
    def provider(self) -> LLMProvider:
        # Resolved lazily so importing the service never opens HTTP clients
        if self._provider is None:
            self._provider = get_provider()
        return self._provider

    def build_messages(self, session: DialogueSession, utterance: str) -> list[ChatMessage]:
        """Prompt with language, stage, prior slots and the utterance."""
        profile = get_profile(session.language)
        prior = session.slots.model_dump(exclude_none=True)
        system = _SYSTEM_PROMPT.format(
            language=profile.english_name,
            native=profile.name,
            stage=session.stage.value,
            slots=json.dumps(prior, ensure_ascii=False),
            ask_market=ASK_MARKET_PRICE,
        )
        return [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=utterance),
        ]

    async def extract(self, session: DialogueSession, utterance: str) -> SlotExtractionResult:
        """
        Extract slots from one utterance.

        Raises:
            ExtractionFailedError: Provider failure or unparsable output after all attempts
        """
        messages = self.build_messages(session, utterance)
        last_reason = "no attempt made"

        for attempt in range(self.max_attempts):
            try:
                result = await self.provider.generate(
                    messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    response_format=self._response_format,
                )
                payload = self.parse_payload(result.text)
                extracted = self.normalize(session, payload)
                logger.info(
                    f"Extracted slots for session {session.session_id} "
                    f"(attempt {attempt + 1}): {sorted(extracted.slots)}"
                )
                return extracted

            except _PROVIDER_ERRORS as e:
                last_reason = f"{type(e).__name__}: {e}"
            except ExtractionFailedError as e:
                last_reason = e.details["reason"]

            logger.warning(
                f"Extraction attempt {attempt + 1}/{self.max_attempts} failed "
                f"for session {session.session_id}: {last_reason}"
            )
            if attempt < self.max_attempts - 1:
                await self._sleep(self.retry_delay * (2 ** attempt))

        raise ExtractionFailedError(last_reason, attempts=self.max_attempts)

    @staticmethod
    def parse_payload(text: str) -> ExtractionPayload:
        """
        Parse model output against the extraction schema.

        Raises:
            ExtractionFailedError: Not JSON, or fields outside the schema
        """
        body = (text or "").strip()
        fenced = _CODE_FENCE.match(body)
        if fenced:
            body = fenced.group(1)
        try:
            return ExtractionPayload.model_validate_json(body)
        except ValidationError as e:
            raise ExtractionFailedError(f"response does not match slot schema: {e.errors()[:3]}") from e

    def normalize(self, session: DialogueSession, payload: ExtractionPayload) -> SlotExtractionResult:
        """
        Normalize a parsed payload into slot values.

        Raises:
            ExtractionFailedError: A numeric field could not be parsed
        """
        profile = get_profile(session.language)
        slots: dict[str, Any] = {}
        low_confidence = False

        if payload.commodity and payload.commodity.strip():
            canonical, confident = resolve_commodity(profile, payload.commodity)
            slots["commodity"] = canonical
            slots["commodity_confidence"] = "high" if confident else "low"
            if confident:
                slots["perishability"] = commodity_catalog.lookup(canonical).perishability
            else:
                low_confidence = True
                logger.info(f"No synonym for commodity {canonical!r} ({profile.code}); passing raw text")

        if payload.quantity is not None:
            try:
                value = parse_number(payload.quantity.value)
            except ValueError as e:
                raise ExtractionFailedError(f"unparsable quantity: {e}") from e
            slots["quantity_kg"] = normalize_number(round(value * UNIT_TO_KG[payload.quantity.unit], 3))
            slots["unit"] = "kg"

        if payload.price is not None:
            if isinstance(payload.price, str) and payload.price.strip().upper() == ASK_MARKET_PRICE:
                slots["market_quote"] = True
            else:
                try:
                    value = parse_number(payload.price)
                except ValueError as e:
                    raise ExtractionFailedError(f"unparsable price: {e}") from e
                divisor = PRICE_UNIT_TO_KG[payload.price_unit or "per_kg"]
                slots["price"] = normalize_number(round(value / divisor, 2))

        if payload.grade and payload.grade.strip():
            slots["grade"] = payload.grade.strip()
        if payload.origin and payload.origin.strip():
            slots["origin"] = payload.origin.strip()

        preview = session.slots.model_copy(update=_merge_update(slots))
        suggested = None
        if not session.stage.is_terminal:
            suggested = select_next_stage(session.stage, slot_bits(preview), payload.confirmation)

        return SlotExtractionResult(
            slots=slots,
            confirmation=payload.confirmation,
            suggested_stage=suggested,
            localized_reply=payload.localized_reply.strip(),
            low_confidence=low_confidence,
        )


def _merge_update(extracted: dict[str, Any]) -> dict[str, Any]:
    """
    Field updates implied by extracted slots.

    Non-null values overwrite. An explicit price withdraws the market marker;
    the market marker clears any price.
    """
    update = {k: v for k, v in extracted.items() if v is not None}
    if "price" in update:
        update["market_quote"] = False
    if update.get("market_quote"):
        update["price"] = None
    return update


merge_update = _merge_update

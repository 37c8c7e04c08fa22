"""
Unit tests for slot extraction.

WHAT: Test parsing, normalization and retry behavior of SlotExtractor
WHY: Model output is untrusted; bad answers must fail and good ones must normalize
HOW: Use MockLLMProvider with scripted JSON answers and an instant sleep
"""

import json

import pytest

from setu.llm.types import ProviderTimeoutError
from setu.models.dialogue import CollectedSlots, DialogueSession, Stage
from setu.models.extraction import ASK_MARKET_PRICE
from setu.services.slot_extractor import SlotExtractor, merge_update
from setu.utils.exceptions import ExtractionFailedError

from tests.fixtures.mock_llm import MockLLMProvider, slot_json


def _extractor(provider, sleeps=None, **kwargs):
    async def record_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("retry_delay", 0.5)
    return SlotExtractor(provider, sleep=record_sleep, **kwargs)


def _session(language="hi", stage=Stage.COLLECTING_COMMODITY, **slots):
    return DialogueSession(language=language, stage=stage, slots=CollectedSlots(**slots))


@pytest.mark.unit
@pytest.mark.asyncio
class TestExtraction:
    """Test successful extraction and normalization."""

    async def test_hindi_onion_utterance(self):
        """Test '100 किलो प्याज 40 रुपये किलो' becomes canonical slots."""
        provider = MockLLMProvider([slot_json(
            commodity="प्याज",
            quantity={"value": 100, "unit": "kg"},
            price=40,
            price_unit="per_kg",
        )])
        result = await _extractor(provider).extract(_session(), "मेरे पास 100 किलो प्याज है, 40 रुपये किलो")

        assert result.slots["commodity"] == "onion"
        assert result.slots["commodity_confidence"] == "high"
        assert result.slots["perishability"] == "medium"
        assert result.slots["quantity_kg"] == 100
        assert result.slots["unit"] == "kg"
        assert result.slots["price"] == 40
        assert result.suggested_stage == Stage.COLLECTING_GRADE
        assert not result.low_confidence

    async def test_quintal_and_per_quintal_price(self):
        """Test quantity and price are converted to kg."""
        provider = MockLLMProvider([slot_json(
            commodity="wheat",
            quantity={"value": 4, "unit": "quintal"},
            price=2500,
            price_unit="per_quintal",
        )])
        result = await _extractor(provider).extract(_session("en"), "4 quintal wheat at 2500 per quintal")

        assert result.slots["quantity_kg"] == 400
        assert result.slots["price"] == 25

    async def test_number_words(self):
        """Test quantity and price given as words."""
        provider = MockLLMProvider([slot_json(
            quantity={"value": "दो सौ", "unit": "kg"},
            price="चालीस",
        )])
        session = _session(stage=Stage.COLLECTING_QUANTITY, commodity="onion")
        result = await _extractor(provider).extract(session, "दो सौ किलो, चालीस रुपये")

        assert result.slots["quantity_kg"] == 200
        assert result.slots["price"] == 40

    async def test_market_price_marker(self):
        """Test ASK_MARKET_PRICE sets market_quote instead of a price."""
        provider = MockLLMProvider([slot_json(price=ASK_MARKET_PRICE)])
        session = _session(stage=Stage.ASKING_PRICE_PREFERENCE, commodity="onion", quantity_kg=100)
        result = await _extractor(provider).extract(session, "mandi bhav batao")

        assert result.slots == {"market_quote": True}
        assert result.suggested_stage == Stage.SHOWING_MARKET_PRICES

    async def test_unknown_commodity_low_confidence(self):
        """Test unknown produce passes through raw with low confidence."""
        provider = MockLLMProvider([slot_json(commodity="Dragon Fruit")])
        result = await _extractor(provider).extract(_session("en"), "dragon fruit")

        assert result.slots["commodity"] == "Dragon Fruit"
        assert result.slots["commodity_confidence"] == "low"
        assert "perishability" not in result.slots
        assert result.low_confidence

    async def test_localized_reply_and_confirmation(self):
        """Test the model's reply and confirmation are passed through."""
        provider = MockLLMProvider([slot_json(confirmation=True, localized_reply="  ठीक है  ")])
        result = await _extractor(provider).extract(_session(), "haan")

        assert result.confirmation is True
        assert result.localized_reply == "ठीक है"

    async def test_code_fenced_json_accepted(self):
        """Test a ```json fenced answer is unwrapped."""
        provider = MockLLMProvider(["```json\n" + slot_json(commodity="aloo") + "\n```"])
        result = await _extractor(provider).extract(_session(), "aloo")
        assert result.slots["commodity"] == "potato"

    async def test_idempotent_for_same_answer(self):
        """Test the same answer for the same input yields the same result."""
        answer = slot_json(commodity="tomato", quantity={"value": 50, "unit": "kg"})
        extractor = _extractor(MockLLMProvider([answer]))
        session = _session()

        first = await extractor.extract(session, "50 kilo tamatar")
        second = await extractor.extract(session, "50 kilo tamatar")
        assert first == second

    async def test_request_uses_strict_schema(self):
        """Test the request carries a strict json_schema response_format."""
        provider = MockLLMProvider([slot_json()])
        await _extractor(provider, temperature=0.0, max_tokens=256).extract(_session(), "namaste")

        call = provider.calls[0]
        assert call["temperature"] == 0.0
        assert call["max_tokens"] == 256
        response_format = call["response_format"]
        assert response_format["type"] == "json_schema"
        assert response_format["json_schema"]["strict"] is True
        assert "localized_reply" in response_format["json_schema"]["schema"]["properties"]

    async def test_prompt_includes_context(self):
        """Test the system prompt names the language, stage and prior slots."""
        provider = MockLLMProvider([slot_json()])
        session = _session(stage=Stage.COLLECTING_QUANTITY, commodity="onion")
        await _extractor(provider).extract(session, "सौ किलो")

        system, user = provider.calls[0]["messages"]
        assert system["role"] == "system"
        assert "Hindi" in system["content"]
        assert "collecting_quantity" in system["content"]
        assert '"commodity": "onion"' in system["content"]
        assert user["content"] == "सौ किलो"


@pytest.mark.unit
@pytest.mark.asyncio
class TestExtractionFailures:
    """Test rejection and retries."""

    async def test_retries_then_succeeds(self):
        """Test a provider timeout is retried with backoff."""
        sleeps = []
        provider = MockLLMProvider([ProviderTimeoutError("slow"), slot_json(commodity="onion")])
        result = await _extractor(provider, sleeps).extract(_session("en"), "onion")

        assert result.slots["commodity"] == "onion"
        assert provider.call_count == 2
        assert sleeps == [0.5]

    async def test_fails_after_max_attempts(self):
        """Test ExtractionFailedError after every attempt fails."""
        sleeps = []
        provider = MockLLMProvider(["not json at all"])

        with pytest.raises(ExtractionFailedError) as exc_info:
            await _extractor(provider, sleeps).extract(_session(), "kuch bhi")

        assert provider.call_count == 3
        assert sleeps == [0.5, 1.0]
        assert exc_info.value.details["attempts"] == 3
        assert exc_info.value.code == "EXTRACTION_FAILED"

    async def test_provider_failure_exhausts_attempts(self):
        """Test a failing provider ends in ExtractionFailedError."""
        provider = MockLLMProvider(should_fail=True)
        with pytest.raises(ExtractionFailedError) as exc_info:
            await _extractor(provider, max_attempts=2).extract(_session(), "pyaaz")
        assert "ProviderResponseError" in exc_info.value.details["reason"]

    async def test_extra_field_rejected(self):
        """Test fields outside the schema are rejected."""
        answer = json.loads(slot_json(commodity="onion"))
        answer["buyer"] = "someone"
        provider = MockLLMProvider([json.dumps(answer)])

        with pytest.raises(ExtractionFailedError):
            await _extractor(provider, max_attempts=1).extract(_session(), "onion")

    async def test_bad_unit_rejected(self):
        """Test a unit outside kg/quintal/ton is rejected."""
        provider = MockLLMProvider([slot_json(quantity={"value": 5, "unit": "bags"})])
        with pytest.raises(ExtractionFailedError):
            await _extractor(provider, max_attempts=1).extract(_session(), "5 bags")

    async def test_unparsable_quantity_rejected(self):
        """Test quantity words that are not numbers are rejected."""
        provider = MockLLMProvider([slot_json(quantity={"value": "bahut saara", "unit": "kg"})])
        with pytest.raises(ExtractionFailedError) as exc_info:
            await _extractor(provider, max_attempts=1).extract(_session(), "bahut saara")
        assert "quantity" in exc_info.value.details["reason"]


@pytest.mark.unit
class TestMergeUpdate:
    """Test how extracted slots overwrite collected ones."""

    def test_none_values_dropped(self):
        assert merge_update({"commodity": "onion", "grade": None}) == {"commodity": "onion"}

    def test_price_withdraws_market_marker(self):
        """Test an explicit price clears market_quote."""
        assert merge_update({"price": 35}) == {"price": 35, "market_quote": False}

    def test_market_marker_clears_price(self):
        """Test switching to the market rate clears a previous price."""
        slots = CollectedSlots(commodity="onion", quantity_kg=100, price=40)
        merged = slots.model_copy(update=merge_update({"market_quote": True}))
        assert merged.price is None
        assert merged.market_quote is True

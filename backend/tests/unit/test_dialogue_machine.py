"""
Unit tests for the dialogue state machine.

WHAT: Test start, advance, validation redirects, snapshots and completion
WHY: The conversation must be resumable and its stage choice reproducible
HOW: StubExtractor scripts the extracted slots for each turn
"""

import pytest

from setu.models.broadcast import BidResult
from setu.models.dialogue import Stage
from setu.models.market import MarketQuote
from setu.services.dialogue_machine import DialogueStateMachine, dump_session, load_session
from setu.utils.exceptions import (
    ExtractionFailedError,
    InvalidTransitionError,
    SessionClosedError,
    UnsupportedLanguageError,
)

from tests.fixtures.mock_llm import slot_json

ONION = {"commodity": "onion", "commodity_confidence": "high", "perishability": "medium"}
ONION_100KG = {**ONION, "quantity_kg": 100, "unit": "kg"}


def _bid(listing_id="l-1", amount=42.0):
    return BidResult(
        transaction_id="t-1",
        listing_id=listing_id,
        counterparty_id="bigbasket",
        counterparty_name="BigBasket",
        counterparty_logo="/logos/bigbasket.png",
        bid_amount=amount,
        base_price=40.0,
        ratio=amount / 40.0,
        currency="INR",
    )


class RecordingOracle:
    """Market oracle double that remembers each lookup."""

    def __init__(self):
        self.calls = []

    async def lookup(self, commodity, location=None):
        self.calls.append((commodity, location))
        return MarketQuote(
            commodity=commodity, market="Lasalgaon",
            min_per_kg=14, max_per_kg=24, avg_per_kg=19, source="live",
        )


async def _run(machine, session, *utterances):
    outcome = None
    for utterance in utterances:
        outcome = await machine.advance(session, utterance)
        session = outcome.session
    return outcome


@pytest.mark.unit
class TestStart:
    """Test opening a session."""

    def test_start_hindi(self, machine):
        session, greeting = machine.start("hi")
        assert session.language == "hi"
        assert session.stage == Stage.GREETING
        assert session.history == []
        assert greeting.startswith("नमस्ते!")
        assert "फसल" in greeting

    def test_start_by_speech_code(self, machine):
        session, _ = machine.start("ta-IN")
        assert session.language == "ta"

    def test_start_unsupported_language(self, machine):
        with pytest.raises(UnsupportedLanguageError):
            machine.start("xyz")

    def test_each_session_has_own_id(self, machine):
        first, _ = machine.start("en")
        second, _ = machine.start("en")
        assert first.session_id != second.session_id


@pytest.mark.unit
@pytest.mark.asyncio
class TestAdvance:
    """Test single turns."""

    async def test_tomatoes_without_price_asks_price(self, machine, stub_extractor):
        """Test a commodity and quantity without price asks for the price."""
        stub_extractor.script = [{
            "commodity": "tomato", "commodity_confidence": "high", "perishability": "high",
            "quantity_kg": 50, "unit": "kg",
        }]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "I have 50 kg of tomatoes")

        assert outcome.stage == Stage.ASKING_PRICE_PREFERENCE
        assert outcome.session.slots.price is None
        assert outcome.session.slots.market_quote is False
        assert outcome.reply == "How much rupees per kg do you want? Or want to see market price?"

    async def test_input_session_untouched(self, machine, stub_extractor):
        """Test advance returns a copy and leaves the given snapshot alone."""
        stub_extractor.script = [ONION]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "onion")

        assert session.stage == Stage.GREETING
        assert session.slots.commodity is None
        assert session.history == []
        assert outcome.session.slots.commodity == "onion"
        assert len(outcome.session.history) == 1

    async def test_turn_recorded(self, machine, stub_extractor):
        stub_extractor.script = [ONION]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "onion")
        turn = outcome.session.history[0]

        assert turn.index == 0
        assert turn.utterance == "onion"
        assert turn.stage_before == Stage.GREETING
        assert turn.stage_after == Stage.COLLECTING_QUANTITY
        assert turn.extracted["commodity"] == "onion"
        assert turn.reply == outcome.reply
        assert "onion" in outcome.reply

    async def test_nothing_understood_reprompts(self, machine, stub_extractor):
        """Test an empty extraction at the commodity stage asks again."""
        stub_extractor.script = [{}, {}]
        session, _ = machine.start("en")

        outcome = await _run(machine, session, "hmm", "umm")

        assert outcome.stage == Stage.COLLECTING_COMMODITY
        assert outcome.reply == "Sorry, I didn't understand. What crop do you want to sell?"

    async def test_extraction_failure_reprompts(self, machine, stub_extractor):
        """Test ExtractionFailedError becomes a retry prompt, stage unchanged."""
        stub_extractor.script = [ExtractionFailedError("bad json", attempts=3)]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "garbled")

        assert outcome.stage == Stage.GREETING
        assert outcome.reply == "Sorry, please speak again."
        assert outcome.session.history[0].extraction_failed is True

    async def test_model_reply_used_when_stage_agrees(self, machine, stub_extractor):
        """Test the model's own phrasing replaces the template when it predicted the stage."""
        stub_extractor.script = [{**ONION, "localized_reply": "Kitna pyaaz hai?"}]
        session, _ = machine.start("hi")

        outcome = await machine.advance(session, "pyaaz")

        assert outcome.stage == Stage.COLLECTING_QUANTITY
        assert outcome.reply == "Kitna pyaaz hai?"

    async def test_model_reply_not_used_for_confirmation(self, machine, stub_extractor):
        """Test the listing summary always comes from the template."""
        stub_extractor.script = [{**ONION_100KG, "price": 40, "grade": "A", "localized_reply": "ok"}]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "100 kg onion at 40, grade A")

        assert outcome.stage == Stage.CONFIRMING_LISTING
        assert outcome.reply == "100 kg onion, A quality, 40 rupees per kg. Should I send to buyers?"

    async def test_closed_session_rejected(self, machine, stub_extractor):
        stub_extractor.script = [{**ONION_100KG, "price": 40, "grade": "A"}, {"confirmation": False}]
        session, _ = machine.start("en")
        aborted = (await _run(machine, session, "everything", "no")).session

        with pytest.raises(SessionClosedError) as exc_info:
            await machine.advance(aborted, "hello again")
        assert exc_info.value.code == "SESSION_CLOSED"


@pytest.mark.unit
@pytest.mark.asyncio
class TestConversations:
    """Test complete conversations."""

    async def test_full_flow_to_broadcasting(self, machine, stub_extractor):
        """Test commodity, quantity, price, grade and confirmation produce a listing."""
        stub_extractor.script = [
            ONION,
            {"quantity_kg": 100, "unit": "kg"},
            {"price": 40},
            {"grade": "Premium"},
            {"confirmation": True},
        ]
        session, _ = machine.start("hi")

        stages = []
        for utterance in ["प्याज", "100 किलो", "40 रुपये", "बढ़िया", "हाँ भेजो"]:
            outcome = await machine.advance(session, utterance)
            session = outcome.session
            stages.append(outcome.stage)

        assert stages == [
            Stage.COLLECTING_QUANTITY,
            Stage.ASKING_PRICE_PREFERENCE,
            Stage.COLLECTING_GRADE,
            Stage.CONFIRMING_LISTING,
            Stage.BROADCASTING,
        ]
        listing = outcome.listing
        assert listing is not None
        assert outcome.validation_errors == []
        assert listing.commodity == "onion"
        assert listing.quantity_kg == 100
        assert listing.price == 40
        assert listing.grade == "Premium"
        assert listing.session_id == session.session_id
        assert session.listing_id == listing.listing_id
        assert outcome.reply == "ठीक है। खरीदारों को भेज रहा हूं। कृपया प्रतीक्षा करें..."

    async def test_market_price_flow(self, machine, stub_extractor):
        """Test asking for the market rate shows the spread and skips the grade."""
        stub_extractor.script = [
            ONION_100KG,
            {"market_quote": True},
            {"confirmation": True},
        ]
        session, _ = machine.start("en")

        shown = await _run(machine, session, "100 kg onion", "market price")
        assert shown.stage == Stage.SHOWING_MARKET_PRICES
        quote = shown.session.market_estimate
        assert quote.source == "estimated"
        assert quote.min_per_kg == 12
        assert quote.max_per_kg == 25
        assert "₹12 to ₹25 per kg" in shown.reply

        confirming = await machine.advance(shown.session, "yes")
        assert confirming.stage == Stage.CONFIRMING_LISTING
        assert "at market price" in confirming.reply
        assert "Standard quality" in confirming.reply

    async def test_decline_market_then_own_price(self, machine, stub_extractor):
        """Test declining the market rate asks for an own price, then continues."""
        stub_extractor.script = [
            ONION_100KG,
            {"market_quote": True},
            {"confirmation": False},
            {"price": 30},
        ]
        session, _ = machine.start("en")

        declined = await _run(machine, session, "100 kg onion", "market price", "no")
        assert declined.stage == Stage.SHOWING_MARKET_PRICES
        assert declined.reply == "Okay. How much rupees per kg do you want?"

        priced = await machine.advance(declined.session, "30 rupees")
        assert priced.stage == Stage.COLLECTING_GRADE
        assert priced.session.slots.price == 30
        assert priced.session.slots.market_quote is False

    async def test_invalid_quantity_goes_back(self, machine, stub_extractor):
        """Test a zero quantity found at confirmation returns to the quantity question."""
        stub_extractor.script = [
            {**ONION, "quantity_kg": 0, "unit": "kg", "price": 40, "grade": "A"},
            {"quantity_kg": 80},
        ]
        session, _ = machine.start("en")

        redirected = await machine.advance(session, "zero kg onion at 40, grade A")
        assert redirected.stage == Stage.COLLECTING_QUANTITY
        assert redirected.reply == "How many kg or quintals? Please tell again."
        assert redirected.listing is None
        assert [e.field for e in redirected.validation_errors] == ["quantity_kg"]

        fixed = await machine.advance(redirected.session, "80 kg")
        assert fixed.stage == Stage.CONFIRMING_LISTING

    async def test_every_failing_field_is_reported(self, machine, stub_extractor):
        """Test a refused confirmation reports each failing field, not only the first."""
        stub_extractor.script = [{**ONION, "quantity_kg": 0, "unit": "kg", "price": -5, "grade": "A"}]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "zero kg at minus five")

        assert outcome.stage == Stage.COLLECTING_QUANTITY
        assert [e.field for e in outcome.validation_errors] == ["quantity_kg", "price"]
        assert all(e.message for e in outcome.validation_errors)
        assert outcome.session.history[-1].stage_after == Stage.COLLECTING_QUANTITY

    async def test_market_lookup_uses_origin(self, stub_extractor):
        """Test the market estimate is looked up near the place the produce comes from."""
        oracle = RecordingOracle()
        machine = DialogueStateMachine(extractor=stub_extractor, oracle=oracle)
        stub_extractor.script = [{**ONION_100KG, "origin": "Nashik"}, {"market_quote": True}]
        session, _ = machine.start("en")

        shown = await _run(machine, session, "100 kg onion from Nashik", "market price")

        assert oracle.calls == [("onion", "Nashik")]
        assert shown.session.market_estimate.market == "Lasalgaon"
        assert "Lasalgaon" in shown.reply

    async def test_negative_price_goes_back(self, machine, stub_extractor):
        stub_extractor.script = [{**ONION_100KG, "price": -5, "grade": "A"}]
        session, _ = machine.start("en")

        outcome = await machine.advance(session, "minus five")

        assert outcome.stage == Stage.ASKING_PRICE_PREFERENCE
        assert outcome.reply.startswith("The price must be zero or more.")

    async def test_abort_at_confirmation(self, machine, stub_extractor):
        stub_extractor.script = [{**ONION_100KG, "price": 40, "grade": "A"}, {"confirmation": False}]
        session, _ = machine.start("en")

        outcome = await _run(machine, session, "100 kg onion at 40 grade A", "no")

        assert outcome.stage == Stage.ABORTED
        assert outcome.reply == "No problem. Talk again whenever you want."
        assert outcome.listing is None

    async def test_broadcasting_ignores_utterances(self, machine, stub_extractor):
        """Test turns while broadcasting skip extraction."""
        stub_extractor.script = [{**ONION_100KG, "price": 40, "grade": "A"}, {"confirmation": True}]
        session, _ = machine.start("en")
        broadcasting = await _run(machine, session, "everything", "yes")

        outcome = await machine.advance(broadcasting.session, "any news?")

        assert outcome.stage == Stage.BROADCASTING
        assert outcome.reply == "Okay. Sending to buyers. Please wait..."
        assert len(stub_extractor.calls) == 2

    async def test_resume_from_snapshot(self, machine, stub_extractor):
        """Test a dumped and reloaded session continues where it left off."""
        stub_extractor.script = [ONION, {"quantity_kg": 100, "unit": "kg"}]
        session, _ = machine.start("hi")
        first = await machine.advance(session, "प्याज")

        snapshot = dump_session(first.session)
        restored = load_session(snapshot)
        assert restored == first.session

        fresh = DialogueStateMachine(extractor=stub_extractor, oracle=None)
        second = await fresh.advance(restored, "100 किलो")
        assert second.stage == Stage.ASKING_PRICE_PREFERENCE
        assert len(second.session.history) == 2


@pytest.mark.unit
@pytest.mark.asyncio
class TestSlotExtractorIntegration:
    """Test the machine on a real SlotExtractor over the mock provider."""

    async def test_hindi_onion_to_grade(self, mock_provider):
        """Test the Hindi onion sentence fills commodity, quantity and price at once."""
        mock_provider.responses = [slot_json(
            commodity="प्याज",
            quantity={"value": 100, "unit": "kg"},
            price=40,
            price_unit="per_kg",
        )]
        machine = DialogueStateMachine(oracle=None)
        session, _ = machine.start("hi")

        outcome = await machine.advance(session, "मेरे पास 100 किलो प्याज है, 40 रुपये किलो")

        assert outcome.stage == Stage.COLLECTING_GRADE
        assert outcome.session.slots.commodity == "onion"
        assert outcome.session.slots.quantity_kg == 100
        assert outcome.session.slots.price == 40


@pytest.mark.unit
class TestCompleteBroadcast:
    """Test closing a session with the winning bid."""

    @pytest.mark.asyncio
    async def test_success_message(self, machine, stub_extractor):
        stub_extractor.script = [{**ONION_100KG, "price": 40, "grade": "A"}, {"confirmation": True}]
        session, _ = machine.start("en")
        broadcasting = await _run(machine, session, "everything", "yes")

        outcome = machine.complete_broadcast(broadcasting.session, _bid(amount=42.5))

        assert outcome.stage == Stage.SUCCESS
        assert outcome.reply == "Congratulations! BigBasket has offered 42.5 rupees per kg!"
        assert outcome.session.history[-1].utterance == ""
        assert outcome.session.history[-1].stage_after == Stage.SUCCESS

    def test_not_broadcasting_rejected(self, machine):
        session, _ = machine.start("en")
        with pytest.raises(InvalidTransitionError):
            machine.complete_broadcast(session, _bid())

    def test_already_closed(self, machine):
        session, _ = machine.start("en")
        session.stage = Stage.SUCCESS
        with pytest.raises(SessionClosedError):
            machine.complete_broadcast(session, _bid())

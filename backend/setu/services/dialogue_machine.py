"""
Dialogue state machine.

WHAT: Multi-turn, multi-language conversation that turns utterances into a Listing
WHY: Sellers describe produce over several turns; each request must be resumable
     from a serialized snapshot without a live coroutine
HOW: Extract -> merge -> select next stage from the stage table -> validate at
     confirmation -> localized reply. advance() works on a deep copy.
"""

from datetime import datetime
from typing import Any, Optional

from ..core.config import settings
from ..models.broadcast import BidResult
from ..models.dialogue import DialogueSession, Stage, Turn, TurnOutcome
from ..models.listing import FieldError, Listing
from ..models.market import MarketQuote
from ..utils.exceptions import ExtractionFailedError, SessionClosedError
from ..utils.logger import get_logger
from ..utils.numbers import normalize_number
from . import listing_validator
from .language_registry import LanguageProfile, get_profile, render
from .market_oracle import MarketPriceOracle, fallback_quote
from .slot_extractor import SlotExtractor, merge_update
from .stage_table import FIELD_STAGE, check_transition, select_next_stage, slot_bits

logger = get_logger(__name__)

# Stages where the model's own phrasing may replace the template prompt
_FREE_REPLY_STAGES = frozenset({
    Stage.COLLECTING_COMMODITY,
    Stage.COLLECTING_QUANTITY,
    Stage.ASKING_PRICE_PREFERENCE,
    Stage.COLLECTING_GRADE,
})

# Clarifying prompt per failing listing field
_FIELD_PROMPT = {
    "commodity": "not_understood_commodity",
    "quantity_kg": "not_understood_quantity",
    "unit": "not_understood_quantity",
    "price": "invalid_price",
    "currency": "invalid_price",
}


def dump_session(session: DialogueSession) -> dict[str, Any]:
    """JSON-safe snapshot of a session."""
    return session.model_dump(mode="json")


def load_session(data: dict[str, Any]) -> DialogueSession:
    """Rebuild a session from dump_session() output."""
    return DialogueSession.model_validate(data)


class DialogueStateMachine:
    """
    Drive one seller conversation turn by turn.

    WHAT: start(language) and advance(session, utterance)
    WHY: Stage choice must be reproducible from (stage, slots, confirmation) alone
    HOW: Stateless between calls; every piece of state lives in DialogueSession
    """

    def __init__(
        self,
        extractor: Optional[SlotExtractor] = None,
        oracle: Optional[MarketPriceOracle] = None,
        default_currency: Optional[str] = None
    ):
        self.extractor = extractor or SlotExtractor()
        self.oracle = oracle
        self.default_currency = default_currency or settings.DEFAULT_CURRENCY

    def start(self, language_code: str) -> tuple[DialogueSession, str]:
        """
        Open a session in the greeting stage.

        Raises:
            UnsupportedLanguageError: No profile for language_code
        """
        profile = get_profile(language_code)
        session = DialogueSession(language=profile.code)
        greeting = f"{profile.greeting} {render(profile, 'ask_commodity')}"
        logger.info(f"Started dialogue session {session.session_id} ({profile.code})")
        return session, greeting

    async def advance(self, session: DialogueSession, utterance: str) -> TurnOutcome:
        """
        Process one utterance.

        Returns:
            TurnOutcome with an updated copy of the session; the input is untouched

        Raises:
            SessionClosedError: Session already ended in success or aborted
        """
        if session.stage.is_terminal:
            raise SessionClosedError(session.session_id, session.stage.value)

        updated = session.model_copy(deep=True)
        profile = get_profile(updated.language)
        stage_before = updated.stage

        if stage_before is Stage.BROADCASTING:
            reply = render(profile, "broadcasting")
            return self._finish(updated, utterance, reply, stage_before, {})

        try:
            extraction = await self.extractor.extract(updated, utterance)
        except ExtractionFailedError as e:
            logger.warning(f"Session {updated.session_id}: {e.message}; re-prompting")
            reply = render(profile, "error_retry")
            return self._finish(updated, utterance, reply, stage_before, {}, extraction_failed=True)

        changes = merge_update(extraction.slots)
        updated.slots = updated.slots.model_copy(update=changes)

        target = select_next_stage(stage_before, slot_bits(updated.slots), extraction.confirmation)
        listing: Optional[Listing] = None
        reply: Optional[str] = None

        if target in (Stage.CONFIRMING_LISTING, Stage.BROADCASTING):
            outcome = listing_validator.validate(
                updated.slots,
                session_id=updated.session_id,
                default_currency=self.default_currency,
            )
            if not outcome.is_valid:
                first = outcome.errors[0]
                redirect = FIELD_STAGE[first.field]
                check_transition(stage_before, Stage.CONFIRMING_LISTING)
                check_transition(Stage.CONFIRMING_LISTING, redirect)
                logger.info(
                    f"Session {updated.session_id}: listing invalid ({outcome.error_fields()}), "
                    f"back to {redirect.value}"
                )
                updated.stage = redirect
                reply = render(profile, _FIELD_PROMPT[first.field])
                return self._finish(
                    updated, utterance, reply, stage_before, changes,
                    validation_errors=list(outcome.errors)
                )

            if target is Stage.BROADCASTING:
                listing = outcome.listing
                updated.listing_id = listing.listing_id

        check_transition(stage_before, target)
        updated.stage = target

        if target is Stage.SHOWING_MARKET_PRICES and (
            stage_before is not Stage.SHOWING_MARKET_PRICES or updated.market_estimate is None
        ):
            updated.market_estimate = await self._lookup(updated.slots.commodity, updated.slots.origin)

        if (
            target in _FREE_REPLY_STAGES
            and extraction.suggested_stage is target
            and extraction.localized_reply
        ):
            reply = extraction.localized_reply
        else:
            reply = self._prompt(profile, updated, stage_before, extraction.confirmation)

        return self._finish(updated, utterance, reply, stage_before, changes, listing=listing)

    def complete_broadcast(self, session: DialogueSession, bid: BidResult) -> TurnOutcome:
        """
        Close a broadcasting session with the winning bid.

        Raises:
            SessionClosedError: Session already ended
            InvalidTransitionError: Session is not broadcasting
        """
        if session.stage.is_terminal:
            raise SessionClosedError(session.session_id, session.stage.value)
        check_transition(session.stage, Stage.SUCCESS)

        updated = session.model_copy(deep=True)
        profile = get_profile(updated.language)
        stage_before = updated.stage
        updated.stage = Stage.SUCCESS
        reply = render(
            profile,
            "success",
            buyer=bid.counterparty_name,
            amount=_money(bid.bid_amount),
        )
        return self._finish(updated, "", reply, stage_before, {})

    async def _lookup(self, commodity: Optional[str], origin: Optional[str] = None) -> MarketQuote:
        """Market estimate near the seller's origin when one was given."""
        name = commodity or "produce"
        if self.oracle is None:
            return fallback_quote(name)
        return await self.oracle.lookup(name, location=origin)

    def _prompt(
        self,
        profile: LanguageProfile,
        session: DialogueSession,
        stage_before: Stage,
        confirmation: Optional[bool]
    ) -> str:
        """Template reply for the stage the session just entered (or stayed in)."""
        stage = session.stage
        slots = session.slots
        commodity = slots.commodity or ""
        repeated = stage is stage_before

        if stage is Stage.COLLECTING_COMMODITY:
            return render(profile, "not_understood_commodity" if repeated else "ask_commodity")

        if stage is Stage.COLLECTING_QUANTITY:
            if repeated:
                return render(profile, "not_understood_quantity")
            return render(profile, "ask_quantity", commodity=commodity)

        if stage is Stage.ASKING_PRICE_PREFERENCE:
            return render(profile, "ask_price_preference")

        if stage is Stage.SHOWING_MARKET_PRICES:
            if repeated and confirmation is False:
                return render(profile, "ask_own_price")
            quote = session.market_estimate or fallback_quote(commodity)
            return render(
                profile,
                "market_prices",
                commodity=commodity,
                market=quote.market,
                min=_money(quote.min_per_kg),
                max=_money(quote.max_per_kg),
                avg=_money(quote.avg_per_kg),
                trend=render(profile, f"trend_{quote.trend}"),
            )

        if stage is Stage.COLLECTING_GRADE:
            return render(profile, "ask_grade", commodity=commodity)

        if stage is Stage.CONFIRMING_LISTING:
            return f"{self._summary(profile, session)} {render(profile, 'confirm_broadcast')}"

        if stage is Stage.BROADCASTING:
            return render(profile, "broadcasting")

        if stage is Stage.ABORTED:
            return render(profile, "cancelled")

        return render(profile, "error_general")

    @staticmethod
    def _summary(profile: LanguageProfile, session: DialogueSession) -> str:
        slots = session.slots
        values = dict(
            quantity=_money(slots.quantity_kg or 0),
            commodity=slots.commodity or "",
            grade=slots.grade or "Standard",
        )
        if slots.market_quote:
            quote = session.market_estimate or fallback_quote(slots.commodity or "")
            return render(profile, "listing_summary_market", price=_money(quote.avg_per_kg), **values)
        return render(profile, "listing_summary", price=_money(slots.price or 0), **values)

    @staticmethod
    def _finish(
        session: DialogueSession,
        utterance: str,
        reply: str,
        stage_before: Stage,
        changes: dict[str, Any],
        extraction_failed: bool = False,
        listing: Optional[Listing] = None,
        validation_errors: Optional[list[FieldError]] = None
    ) -> TurnOutcome:
        session.history.append(Turn(
            index=len(session.history),
            utterance=utterance,
            reply=reply,
            stage_before=stage_before,
            stage_after=session.stage,
            extracted=changes,
            extraction_failed=extraction_failed,
        ))
        session.updated_at = datetime.utcnow()
        if session.stage is not stage_before:
            logger.info(f"Session {session.session_id}: {stage_before.value} -> {session.stage.value}")
        return TurnOutcome(
            session=session,
            reply=reply,
            stage=session.stage,
            listing=listing,
            validation_errors=validation_errors or [],
        )


def _money(value: float) -> str:
    """200.0 -> "200", 12.5 -> "12.5"."""
    return str(normalize_number(round(value, 2)))

"""
Session manager for dialogue and broadcast orchestration.

WHAT: Caller-facing API over the dialogue machine and broadcast simulator
WHY: HTTP requests are stateless; sessions and listings must be resumed from storage
HOW: Load snapshot -> advance -> persist, with sync SQLAlchemy sessions per call.
     Broadcasts run as tracked asyncio tasks so a caller timeout never
     cancels an in-flight simulation.
"""

import asyncio
from typing import Optional

from .database import get_db
from .models import DialogueSessionRecord, ListingRecord
from ..models.broadcast import AuditEvent, AuditEventType, BidResult
from ..models.dialogue import DialogueSession, Stage, TurnOutcome
from ..models.listing import Listing
from ..services.audit_sink import DatabaseAuditSink
from ..services.broadcast_simulator import BroadcastSimulator
from ..services.dialogue_machine import DialogueStateMachine, dump_session, load_session
from ..services.market_oracle import market_oracle
from ..services.pricing_learner import pricing_learner
from ..utils.exceptions import (
    GatewayTimeoutError,
    ListingNotFoundError,
    ListingStatusError,
    SessionNotFoundError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

_LISTING_COLUMNS = (
    "session_id", "commodity", "category", "quantity_kg", "unit", "price",
    "currency", "grade", "origin", "perishability", "market_quote", "status", "created_at",
)


class SessionManager:
    """
    Manage dialogue sessions, listings and broadcasts.

    WHAT: start/advance sessions, fetch listings, broadcast them, read network logs
    WHY: Single place that couples the pure core to persistence
    HOW: Every method opens its own get_db() scope; no session state lives in memory
    """

    def __init__(
        self,
        machine: Optional[DialogueStateMachine] = None,
        simulator: Optional[BroadcastSimulator] = None,
        audit_sink=None
    ):
        self.audit_sink = audit_sink or DatabaseAuditSink()
        self.machine = machine or DialogueStateMachine(oracle=market_oracle)
        self.simulator = simulator or BroadcastSimulator(
            learner=pricing_learner,
            oracle=market_oracle,
            audit_sink=self.audit_sink,
        )
        self._broadcast_tasks: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()  # listing ids with a running simulation

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------

    def start_session(self, language_code: str) -> tuple[DialogueSession, str]:
        """
        Create and persist a new dialogue session.

        Raises:
            UnsupportedLanguageError: Nothing is persisted
        """
        session, greeting = self.machine.start(language_code)
        with get_db() as db:
            self._save_session(db, session)
        logger.info(f"Created session {session.session_id} ({session.language})")
        return session, greeting

    def get_session(self, session_id: str) -> DialogueSession:
        """
        Raises:
            SessionNotFoundError: No stored snapshot for session_id
        """
        with get_db() as db:
            record = db.get(DialogueSessionRecord, session_id)
            if record is None:
                raise SessionNotFoundError(session_id)
            return load_session(record.snapshot)

    async def advance_session(self, session_id: str, utterance: str) -> TurnOutcome:
        """
        Advance a stored session by one utterance and persist the result.

        Raises:
            SessionNotFoundError, SessionClosedError
        """
        session = self.get_session(session_id)
        outcome = await self.machine.advance(session, utterance)

        with get_db() as db:
            if outcome.listing is not None:
                self._save_listing(db, outcome.listing)
            self._save_session(db, outcome.session)

        logger.info(
            f"Session {session_id} turn {len(outcome.session.history)}: "
            f"{session.stage.value} -> {outcome.stage.value}"
        )
        return outcome

    async def advance_snapshot(self, session: DialogueSession, utterance: str) -> TurnOutcome:
        """
        Stateless advance: the caller holds the snapshot.

        A listing confirmed by the turn is still stored so it can be broadcast by id.
        """
        outcome = await self.machine.advance(session, utterance)
        if outcome.listing is not None:
            with get_db() as db:
                self._save_listing(db, outcome.listing)
        return outcome

    # ------------------------------------------------------------------
    # Listings and broadcast
    # ------------------------------------------------------------------

    def get_listing(self, listing_id: str) -> Listing:
        """
        Raises:
            ListingNotFoundError: Unknown listing_id
        """
        with get_db() as db:
            record = db.get(ListingRecord, listing_id)
            if record is None:
                raise ListingNotFoundError(listing_id)
            return self._to_listing(record)

    async def broadcast(self, listing_id: str, timeout: Optional[float] = None) -> BidResult:
        """
        Broadcast a stored listing and wait for the bid.

        WHAT: Mark the listing broadcast, run the simulator, mark it sold on a bid
        WHY: The simulator's outcome must be recorded even if the caller stops waiting
        HOW: The simulation runs in its own task; a caller timeout waits on a
             shield, so the task still finishes and audits its one outcome

        Raises:
            ListingNotFoundError
            ListingStatusError: Already sold, or a broadcast is already in flight
            NetworkError, GatewayTimeoutError, NoSellersFoundError, RateLimitedError
        """
        listing = self.get_listing(listing_id)
        if listing_id in self._in_flight:
            raise ListingStatusError(listing_id, "broadcast in flight", "broadcast")
        listing.advance_status("broadcast")
        self._update_status(listing_id, "broadcast")
        self._in_flight.add(listing_id)

        task = asyncio.create_task(self._run_broadcast(listing))
        self._broadcast_tasks.add(task)
        task.add_done_callback(self._on_broadcast_done)

        if timeout is None:
            return await task

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Caller stopped waiting for broadcast of {listing_id} after {timeout}s")
            raise GatewayTimeoutError(
                message=f"No bid within {timeout:g} seconds; the broadcast is still running"
            )

    async def _run_broadcast(self, listing: Listing) -> BidResult:
        try:
            bid = await self.simulator.broadcast(listing)
        finally:
            self._in_flight.discard(listing.listing_id)

        with get_db() as db:
            record = db.get(ListingRecord, listing.listing_id)
            if record.status == "sold":
                raise ListingStatusError(listing.listing_id, "sold", "sold")
            record.status = "sold"

            if listing.session_id:
                session_record = db.get(DialogueSessionRecord, listing.session_id)
                if session_record is not None:
                    session = load_session(session_record.snapshot)
                    if session.stage is Stage.BROADCASTING:
                        closed = self.machine.complete_broadcast(session, bid)
                        self._save_session(db, closed.session)

        logger.info(f"Listing {listing.listing_id} sold to {bid.counterparty_name} at {bid.bid_amount}/kg")
        return bid

    def _on_broadcast_done(self, task: asyncio.Task) -> None:
        self._broadcast_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.info(f"Broadcast task finished with {type(error).__name__}")

    async def wait_for_broadcasts(self) -> None:
        """Let in-flight broadcasts finish (shutdown and tests)."""
        if self._broadcast_tasks:
            await asyncio.gather(*self._broadcast_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Network logs
    # ------------------------------------------------------------------

    def list_network_logs(
        self,
        event_type: Optional[AuditEventType] = None,
        page: int = 1,
        page_size: int = 50
    ) -> tuple[list[AuditEvent], int]:
        """Newest-first page of audit events and the total count."""
        return self.audit_sink.list_logs(event_type=event_type, page=page, page_size=page_size)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _save_session(db, session: DialogueSession) -> None:
        snapshot = dump_session(session)
        record = db.get(DialogueSessionRecord, session.session_id)
        if record is None:
            db.add(DialogueSessionRecord(
                session_id=session.session_id,
                language=session.language,
                stage=session.stage.value,
                snapshot=snapshot,
                listing_id=session.listing_id,
                created_at=session.created_at,
                updated_at=session.updated_at,
            ))
        else:
            record.stage = session.stage.value
            record.snapshot = snapshot
            record.listing_id = session.listing_id
            record.updated_at = session.updated_at

    @staticmethod
    def _save_listing(db, listing: Listing) -> None:
        values = listing.model_dump(include=set(_LISTING_COLUMNS))
        db.merge(ListingRecord(listing_id=listing.listing_id, **values))
        logger.info(f"Stored {listing.status} listing {listing.listing_id} ({listing.commodity})")

    @staticmethod
    def _update_status(listing_id: str, status: str) -> None:
        with get_db() as db:
            record = db.get(ListingRecord, listing_id)
            if record is None:
                raise ListingNotFoundError(listing_id)
            record.status = status

    @staticmethod
    def _to_listing(record: ListingRecord) -> Listing:
        return Listing(
            listing_id=record.listing_id,
            **{column: getattr(record, column) for column in _LISTING_COLUMNS},
        )


# Singleton instance
session_manager = SessionManager()

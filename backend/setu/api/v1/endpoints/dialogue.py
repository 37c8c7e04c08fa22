"""
Dialogue endpoints.

WHAT: Open sessions and send utterances, stored or stateless
WHY: Voice clients drive the listing conversation one transcribed turn at a time
HOW: FastAPI endpoints wrapping SessionManager
"""

from fastapi import APIRouter, status

from ....core.session_manager import session_manager
from ....models.api_schemas import (
    StartSessionRequest,
    StartSessionResponse,
    StatelessTurnRequest,
    TurnRequest,
    TurnResponse,
)
from ....models.dialogue import DialogueSession, TurnOutcome
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _turn_response(outcome: TurnOutcome) -> TurnResponse:
    return TurnResponse(
        session_id=outcome.session.session_id,
        reply=outcome.reply,
        stage=outcome.stage,
        slots=outcome.session.slots,
        listing_id=outcome.session.listing_id,
        validation_errors=outcome.validation_errors,
        session=outcome.session,
    )


@router.post(
    "/dialogue/sessions",
    response_model=StartSessionResponse,
    status_code=status.HTTP_201_CREATED
)
async def start_session(request: StartSessionRequest):
    """
    Open a dialogue session.

    Raises:
        UnsupportedLanguageError: Unknown language code (400, nothing stored)
    """
    session, greeting = session_manager.start_session(request.language)
    return StartSessionResponse(
        session_id=session.session_id,
        greeting=greeting,
        stage=session.stage,
        session=session,
    )


@router.get("/dialogue/sessions/{session_id}", response_model=DialogueSession)
async def get_session(session_id: str):
    """
    Current snapshot of a stored session.

    Raises:
        SessionNotFoundError: 404
    """
    return session_manager.get_session(session_id)


@router.post("/dialogue/sessions/{session_id}/turns", response_model=TurnResponse)
async def send_turn(session_id: str, request: TurnRequest):
    """
    Advance a stored session by one utterance.

    WHAT: Extract slots, move the stage, reply in the session's language
    WHY: Server keeps the session between requests
    HOW: SessionManager.advance_session loads, advances and persists

    Raises:
        SessionNotFoundError: 404
        SessionClosedError: 409, session already ended
    """
    logger.info(f"Turn for session {session_id}")
    outcome = await session_manager.advance_session(session_id, request.utterance)
    return _turn_response(outcome)


@router.post("/dialogue/turns", response_model=TurnResponse)
async def send_stateless_turn(request: StatelessTurnRequest):
    """
    Advance a client-held session snapshot by one utterance.

    The updated snapshot is returned and nothing but a confirmed listing is stored.
    """
    outcome = await session_manager.advance_snapshot(request.session, request.utterance)
    return _turn_response(outcome)

"""
Listing and broadcast endpoints.

WHAT: Read a confirmed listing and broadcast it to the simulated network
WHY: Broadcast is a separate step after the seller confirms
HOW: FastAPI endpoints wrapping SessionManager; broadcast failures surface
     through the business exception handler with distinct status codes
"""

from typing import Optional

from fastapi import APIRouter

from ....core.session_manager import session_manager
from ....models.api_schemas import BroadcastRequest, BroadcastResponse, ListingResponse
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/listings/{listing_id}", response_model=ListingResponse)
async def get_listing(listing_id: str):
    """
    Raises:
        ListingNotFoundError: 404
    """
    return ListingResponse(listing=session_manager.get_listing(listing_id))


@router.post("/listings/{listing_id}/broadcast", response_model=BroadcastResponse)
async def broadcast_listing(listing_id: str, request: Optional[BroadcastRequest] = None):
    """
    Broadcast a listing and wait for a counterparty bid.

    WHAT: Run the simulated broadcast (6-25 s of simulated phases)
    WHY: Sellers receive one concrete offer or one specific failure
    HOW: SessionManager.broadcast; optional timeout_seconds bounds the wait

    Raises:
        ListingNotFoundError: 404
        ListingStatusError: 409, already sold
        NetworkError: 502
        GatewayTimeoutError: 504
        NoSellersFoundError: 404
        RateLimitedError: 429
    """
    timeout = request.timeout_seconds if request else None
    logger.info(f"Broadcast requested for listing {listing_id} (timeout={timeout})")

    bid = await session_manager.broadcast(listing_id, timeout=timeout)
    return BroadcastResponse(
        listing_id=listing_id,
        transaction_id=bid.transaction_id,
        bid=bid,
    )

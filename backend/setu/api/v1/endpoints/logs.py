"""
Network log endpoint.

WHAT: Page through outgoing_listing / incoming_bid audit events
WHY: Operators review what was sent to the network and what came back
HOW: Read from the audit sink through SessionManager
"""

import math
from typing import Literal

from fastapi import APIRouter, Query

from ....core.session_manager import session_manager
from ....models.api_schemas import NetworkLogEntry, NetworkLogsResponse
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/network/logs", response_model=NetworkLogsResponse)
async def get_network_logs(
    type: Literal["ALL", "outgoing_listing", "incoming_bid"] = "ALL",
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200)
):
    """
    Newest-first network logs.

    Args:
        type: ALL, outgoing_listing or incoming_bid
        page: 1-based page number
        page_size: Rows per page
    """
    event_type = None if type == "ALL" else type
    events, total = session_manager.list_network_logs(
        event_type=event_type,
        page=page,
        page_size=page_size
    )
    logger.debug(f"Serving {len(events)} network logs (type={type}, page={page})")

    return NetworkLogsResponse(
        logs=[
            NetworkLogEntry(type=e.type, payload=e.payload, timestamp=e.timestamp)
            for e in events
        ],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total else 0,
    )

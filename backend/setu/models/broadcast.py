"""
Broadcast domain models.

WHAT: Counterparties, outcomes, bids, broadcast events and audit events
WHY: Every simulated broadcast leaves exactly one typed, auditable trace
HOW: Frozen dataclasses for static registry data, pydantic models for results
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class CounterpartyProfile:
    """A simulated buyer platform on the network."""
    counterparty_id: str
    name: str
    verified: bool
    reliability: int  # 1-5
    categories: frozenset[str]
    logo: str = "/logos/default.png"


class BroadcastOutcome(str, Enum):
    """The single outcome of one broadcast."""
    SUCCESS = "success"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    NO_SELLERS = "no_sellers"
    RATE_LIMITED = "rate_limited"


class PhaseTiming(BaseModel):
    """Simulated duration of one broadcast phase."""
    phase: str
    seconds: float = Field(ge=0.0)


class BidResult(BaseModel):
    """A counterparty's offer for a listing."""

    transaction_id: str
    listing_id: str
    counterparty_id: str
    counterparty_name: str
    counterparty_logo: str
    bid_amount: float = Field(ge=0.0)  # per kg
    base_price: float = Field(ge=0.0)  # per kg
    ratio: float
    currency: str
    used_market_estimate: bool = False
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class BroadcastEvent(BaseModel):
    """Append-only record of one broadcast call."""

    transaction_id: str = Field(default_factory=lambda: str(uuid4()))
    listing_id: str
    phases: list[PhaseTiming] = Field(default_factory=list)
    elapsed_seconds: float = 0.0
    outcome: BroadcastOutcome
    failed_phase: str | None = None
    bid: BidResult | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


AuditEventType = Literal["outgoing_listing", "incoming_bid"]


class AuditEvent(BaseModel):
    """Event shape handed to the audit/persistence sink."""

    type: AuditEventType
    payload: dict[str, Any]
    timestamp: datetime = Field(default_factory=datetime.utcnow)

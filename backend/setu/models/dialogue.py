"""
Dialogue domain models.

WHAT: Stages, collected slots, turns and the dialogue session snapshot
WHY: A session must survive between requests without an in-memory coroutine
HOW: Pydantic v2 models that round-trip through JSON
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from .listing import FieldError, Listing
from .market import MarketQuote


class Stage(str, Enum):
    """Dialogue stages."""
    GREETING = "greeting"
    COLLECTING_COMMODITY = "collecting_commodity"
    COLLECTING_QUANTITY = "collecting_quantity"
    ASKING_PRICE_PREFERENCE = "asking_price_preference"
    SHOWING_MARKET_PRICES = "showing_market_prices"
    COLLECTING_GRADE = "collecting_grade"
    CONFIRMING_LISTING = "confirming_listing"
    BROADCASTING = "broadcasting"
    SUCCESS = "success"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.SUCCESS, Stage.ABORTED)


class CollectedSlots(BaseModel):
    """Cumulative structured attributes gathered across turns."""

    commodity: str | None = None
    commodity_confidence: Literal["high", "low"] | None = None
    quantity_kg: float | None = None
    unit: str | None = None
    price: float | None = None  # per kg
    currency: str | None = None
    grade: str | None = None
    origin: str | None = None
    perishability: Literal["low", "medium", "high"] | None = None
    market_quote: bool = False


class Turn(BaseModel):
    """One utterance and the machine's answer to it."""

    index: int = Field(ge=0)
    utterance: str
    reply: str
    stage_before: Stage
    stage_after: Stage
    extracted: dict[str, Any] = Field(default_factory=dict)
    extraction_failed: bool = False
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class DialogueSession(BaseModel):
    """Complete, serializable state of one seller's conversation."""

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    language: str
    stage: Stage = Stage.GREETING
    slots: CollectedSlots = Field(default_factory=CollectedSlots)
    history: list[Turn] = Field(default_factory=list)
    market_estimate: MarketQuote | None = None
    listing_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TurnOutcome(BaseModel):
    """What a single advance returns to the caller."""

    session: DialogueSession
    reply: str
    stage: Stage
    listing: Listing | None = None  # set when the turn confirmed a listing
    validation_errors: list[FieldError] = Field(default_factory=list)  # why confirmation was refused

"""
Pydantic API schemas for the v1 endpoints.

WHAT: Request and response models for FastAPI
WHY: Type-safe validation and serialization for voice clients
HOW: Pydantic v2 models with validators and constraints
"""

from typing import Optional, List, Dict, Literal, Any
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from .broadcast import BidResult
from .dialogue import CollectedSlots, DialogueSession, Stage
from .listing import FieldError, Listing


# ========== Languages ==========

class LanguageInfo(BaseModel):
    """Supported language."""
    code: str
    name: str
    english_name: str
    speech_code: str
    greeting: str


class LanguagesResponse(BaseModel):
    """Response for GET /languages."""
    languages: List[LanguageInfo]


# ========== Dialogue ==========

class StartSessionRequest(BaseModel):
    """Request to open a dialogue session."""
    language: str = Field(..., min_length=2, max_length=10, description="Language code, e.g. hi or hi-IN")


class StartSessionResponse(BaseModel):
    """Response for POST /dialogue/sessions."""
    session_id: str
    greeting: str
    stage: Stage
    session: DialogueSession


class TurnRequest(BaseModel):
    """One utterance against a stored session."""
    utterance: str = Field(..., min_length=1, max_length=2000, description="Transcribed speech")

    @field_validator("utterance")
    @classmethod
    def validate_utterance(cls, v: str) -> str:
        """Reject whitespace-only utterances."""
        if not v.strip():
            raise ValueError("utterance must not be blank")
        return v.strip()


class StatelessTurnRequest(TurnRequest):
    """One utterance plus the full session snapshot held by the client."""
    session: DialogueSession


class TurnResponse(BaseModel):
    """Response for a dialogue turn."""
    session_id: str
    reply: str
    stage: Stage
    slots: CollectedSlots
    listing_id: Optional[str] = None
    validation_errors: List[FieldError] = Field(default_factory=list)
    session: DialogueSession


# ========== Broadcast ==========

class BroadcastRequest(BaseModel):
    """Optional caller deadline for a broadcast."""
    timeout_seconds: Optional[float] = Field(
        default=None, gt=0, le=120, description="Stop waiting after this many seconds"
    )


class BroadcastResponse(BaseModel):
    """Winning bid for a broadcast listing."""
    listing_id: str
    transaction_id: str
    status: Literal["sold"] = "sold"
    bid: BidResult


class ListingResponse(BaseModel):
    """Stored listing."""
    listing: Listing


# ========== Network logs ==========

class NetworkLogEntry(BaseModel):
    """One audit event."""
    type: Literal["outgoing_listing", "incoming_bid"]
    payload: Dict[str, Any]
    timestamp: datetime


class NetworkLogsResponse(BaseModel):
    """Page of network logs, newest first."""
    logs: List[NetworkLogEntry]
    total: int
    page: int
    page_size: int
    total_pages: int


# ========== Pricing and market ==========

class PricingStatisticInfo(BaseModel):
    """Learned bid ratio for one commodity."""
    commodity: str
    average_ratio: float
    sample_count: int


class PricingStatsResponse(BaseModel):
    """Response for GET /pricing/stats."""
    statistics: List[PricingStatisticInfo]


# ========== Errors ==========

class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""
    error: str
    message: str
    details: Optional[Any] = None
    timestamp: datetime

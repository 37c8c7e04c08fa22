"""
Listing domain models.

WHAT: A validated listing and the per-field errors that block one
WHY: Only a complete listing may be broadcast
HOW: Pydantic model with frozen attributes; only status may change, and only forward
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from ..utils.exceptions import ListingStatusError

ListingStatus = Literal["draft", "broadcast", "sold"]

_STATUS_ORDER = {"draft": 0, "broadcast": 1, "sold": 2}


@dataclass(frozen=True)
class FieldError:
    """A single validation failure."""
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class Listing(BaseModel):
    """Finalized structured description of goods offered for sale."""

    listing_id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    session_id: str | None = Field(default=None, frozen=True)
    commodity: str = Field(min_length=1, frozen=True)
    category: str = Field(frozen=True)
    quantity_kg: float = Field(gt=0.0, frozen=True)
    unit: str = Field(min_length=1, frozen=True)
    price: float | None = Field(default=None, ge=0.0, frozen=True)  # per kg
    currency: str = Field(min_length=3, max_length=3, frozen=True)
    grade: str | None = Field(default=None, frozen=True)
    origin: str | None = Field(default=None, frozen=True)
    perishability: Literal["low", "medium", "high"] = Field(default="medium", frozen=True)
    market_quote: bool = Field(default=False, frozen=True)
    status: ListingStatus = "draft"
    created_at: datetime = Field(default_factory=datetime.utcnow, frozen=True)

    def advance_status(self, new_status: ListingStatus) -> None:
        """Move status forward; staying in place is allowed for re-broadcasts."""
        if _STATUS_ORDER[new_status] < _STATUS_ORDER[self.status] or self.status == "sold":
            raise ListingStatusError(self.listing_id, self.status, new_status)
        self.status = new_status

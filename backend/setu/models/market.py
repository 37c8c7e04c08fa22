"""
Market estimate model.

WHAT: Per-kg price spread for a commodity
WHY: Shared by the dialogue (market price stage) and the simulator (market-quote bids)
HOW: Pydantic model, serializable into session snapshots
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class MarketQuote(BaseModel):
    """Market price estimate for one commodity."""

    commodity: str
    market: str = "Local Mandi"
    min_per_kg: float = Field(ge=0.0)
    max_per_kg: float = Field(ge=0.0)
    avg_per_kg: float = Field(ge=0.0)
    trend: Literal["rising", "stable", "falling"] = "stable"
    source: Literal["live", "estimated"] = "estimated"
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

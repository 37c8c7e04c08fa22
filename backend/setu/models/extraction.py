"""
Slot extraction models.

WHAT: The schema the completion service must answer with, and the per-turn result
WHY: Model output is untrusted; it must match the slot shape exactly or be rejected
HOW: Pydantic models with extra="forbid"; the JSON schema is sent with the request
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .dialogue import Stage

ASK_MARKET_PRICE = "ASK_MARKET_PRICE"


class QuantityPayload(BaseModel):
    """Quantity as a number (or number words) plus a unit."""

    model_config = ConfigDict(extra="forbid")

    value: float | str
    unit: Literal["kg", "quintal", "ton"]


class ExtractionPayload(BaseModel):
    """Exact shape of a completion-service answer."""

    model_config = ConfigDict(extra="forbid")

    commodity: str | None = Field(
        default=None, description="Produce being sold, as the speaker said it"
    )
    quantity: QuantityPayload | None = Field(
        default=None, description="Quantity offered with its unit"
    )
    price: float | str | None = Field(
        default=None,
        description=f"Asking price as a number, or \"{ASK_MARKET_PRICE}\" if the speaker wants the market rate",
    )
    price_unit: Literal["per_kg", "per_quintal", "per_ton"] | None = Field(
        default=None, description="Unit the price refers to"
    )
    grade: str | None = Field(default=None, description="Quality grade, e.g. Premium, A, B, Standard, Mixed")
    origin: str | None = Field(default=None, description="Place the produce comes from")
    confirmation: bool | None = Field(
        default=None, description="True if the speaker agreed, False if they declined, null otherwise"
    )
    localized_reply: str = Field(description="Short reply to the speaker in their language")


def extraction_json_schema() -> dict[str, Any]:
    """JSON schema sent as the structured-output contract."""
    return ExtractionPayload.model_json_schema()


class SlotExtractionResult(BaseModel):
    """Ephemeral per-turn output, discarded after merge."""

    slots: dict[str, Any] = Field(default_factory=dict)
    confirmation: bool | None = None
    suggested_stage: Stage | None = None
    localized_reply: str = ""
    low_confidence: bool = False

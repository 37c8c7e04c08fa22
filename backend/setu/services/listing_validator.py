"""
Listing validation.

WHAT: Check collected slots and build a broadcast-eligible Listing
WHY: Only complete listings may reach the network; errors are reported per field
HOW: Pure function, no I/O; category and perishability come from the catalog
"""

import math
import re
from dataclasses import dataclass, field

from ..models.dialogue import CollectedSlots
from ..models.listing import FieldError, Listing
from . import commodity_catalog

_CURRENCY = re.compile(r"^[A-Z]{3}$")

# Errors are reported in this order
FIELD_ORDER = ("commodity", "quantity_kg", "unit", "price", "currency")


@dataclass(frozen=True)
class ValidationOutcome:
    """Either a listing or the per-field errors that block it."""
    listing: Listing | None = None
    errors: tuple[FieldError, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return self.listing is not None

    def error_fields(self) -> list[str]:
        return [e.field for e in self.errors]


def validate(
    slots: CollectedSlots,
    *,
    session_id: str | None = None,
    default_currency: str = "INR",
    listing_id: str | None = None
) -> ValidationOutcome:
    """
    Validate collected slots.

    Rules:
    1. commodity is a non-empty descriptor
    2. quantity_kg > 0
    3. unit is non-empty
    4. price >= 0 unless market_quote is set
    5. currency defaults to default_currency, otherwise must be three letters

    Returns:
        ValidationOutcome with a draft Listing, or errors ordered by field
    """
    errors: list[FieldError] = []

    commodity = (slots.commodity or "").strip()
    if not commodity:
        errors.append(FieldError("commodity", "commodity is required"))

    quantity = slots.quantity_kg
    if quantity is None:
        errors.append(FieldError("quantity_kg", "quantity is required"))
    elif not math.isfinite(quantity) or quantity <= 0:
        errors.append(FieldError("quantity_kg", "quantity must be greater than 0 kg"))

    unit = (slots.unit or "").strip()
    if not unit:
        errors.append(FieldError("unit", "unit is required"))

    price = slots.price
    if not slots.market_quote:
        if price is None:
            errors.append(FieldError("price", "price is required unless selling at market price"))
        elif not math.isfinite(price) or price < 0:
            errors.append(FieldError("price", "price must be 0 or more"))

    currency = (slots.currency or default_currency).strip().upper()
    if not _CURRENCY.match(currency):
        errors.append(FieldError("currency", "currency must be a 3-letter code"))

    if errors:
        errors.sort(key=lambda e: FIELD_ORDER.index(e.field))
        return ValidationOutcome(errors=tuple(errors))

    info = commodity_catalog.lookup(commodity)
    values = dict(
        session_id=session_id,
        commodity=commodity,
        category=info.category,
        quantity_kg=quantity,
        unit=unit,
        price=None if slots.market_quote else price,
        currency=currency,
        grade=slots.grade,
        origin=slots.origin,
        perishability=slots.perishability or info.perishability,
        market_quote=slots.market_quote,
    )
    if listing_id is not None:
        values["listing_id"] = listing_id
    return ValidationOutcome(listing=Listing(**values))

"""
Dialogue stage table.

WHAT: Allowed stage edges and the deterministic next-stage selector
WHY: Stage selection must depend only on (stage, filled slots, confirmation)
HOW: Slot-presence bit flags plus an explicit transition map
"""

from enum import IntFlag

from ..models.dialogue import CollectedSlots, Stage
from ..utils.exceptions import InvalidTransitionError


class SlotBits(IntFlag):
    """Which slots are populated."""
    NONE = 0
    COMMODITY = 1
    QUANTITY = 2
    PRICE = 4
    MARKET = 8
    GRADE = 16


_COLLECTING = (
    Stage.COLLECTING_COMMODITY,
    Stage.COLLECTING_QUANTITY,
    Stage.ASKING_PRICE_PREFERENCE,
    Stage.SHOWING_MARKET_PRICES,
    Stage.COLLECTING_GRADE,
    Stage.CONFIRMING_LISTING,
)


def _forward_from(stage: Stage) -> set[Stage]:
    """Stage itself plus every collecting stage after it."""
    later = _COLLECTING[_COLLECTING.index(stage):]
    return set(later)


ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.GREETING: frozenset(_COLLECTING),
    Stage.COLLECTING_COMMODITY: frozenset(_forward_from(Stage.COLLECTING_COMMODITY)),
    Stage.COLLECTING_QUANTITY: frozenset(_forward_from(Stage.COLLECTING_QUANTITY)),
    Stage.ASKING_PRICE_PREFERENCE: frozenset(_forward_from(Stage.ASKING_PRICE_PREFERENCE)),
    # The two price branches may swap when the seller changes their mind
    Stage.SHOWING_MARKET_PRICES: frozenset({
        Stage.SHOWING_MARKET_PRICES, Stage.COLLECTING_GRADE, Stage.CONFIRMING_LISTING,
    }),
    Stage.COLLECTING_GRADE: frozenset({
        Stage.COLLECTING_GRADE, Stage.SHOWING_MARKET_PRICES, Stage.CONFIRMING_LISTING,
    }),
    Stage.CONFIRMING_LISTING: frozenset({
        Stage.CONFIRMING_LISTING,
        Stage.COLLECTING_COMMODITY,
        Stage.COLLECTING_QUANTITY,
        Stage.ASKING_PRICE_PREFERENCE,
        Stage.BROADCASTING,
        Stage.ABORTED,
    }),
    Stage.BROADCASTING: frozenset({Stage.BROADCASTING, Stage.SUCCESS, Stage.ABORTED}),
    Stage.SUCCESS: frozenset(),
    Stage.ABORTED: frozenset(),
}

# Listing field -> stage that collects it
FIELD_STAGE: dict[str, Stage] = {
    "commodity": Stage.COLLECTING_COMMODITY,
    "quantity_kg": Stage.COLLECTING_QUANTITY,
    "unit": Stage.COLLECTING_QUANTITY,
    "price": Stage.ASKING_PRICE_PREFERENCE,
    "currency": Stage.ASKING_PRICE_PREFERENCE,
}


def slot_bits(slots: CollectedSlots) -> SlotBits:
    """Presence bitset for the collected slots."""
    bits = SlotBits.NONE
    if slots.commodity:
        bits |= SlotBits.COMMODITY
    if slots.quantity_kg is not None:
        bits |= SlotBits.QUANTITY
    if slots.price is not None:
        bits |= SlotBits.PRICE
    if slots.market_quote:
        bits |= SlotBits.MARKET
    if slots.grade:
        bits |= SlotBits.GRADE
    return bits


def _first_missing(bits: SlotBits) -> Stage | None:
    """Stage for the first required slot still missing, if any."""
    if not bits & SlotBits.COMMODITY:
        return Stage.COLLECTING_COMMODITY
    if not bits & SlotBits.QUANTITY:
        return Stage.COLLECTING_QUANTITY
    if not bits & (SlotBits.PRICE | SlotBits.MARKET):
        return Stage.ASKING_PRICE_PREFERENCE
    return None


def _forward(bits: SlotBits) -> Stage:
    """Where a seller with these slots should be while still collecting."""
    missing = _first_missing(bits)
    if missing is not None:
        return missing
    if bits & SlotBits.MARKET and not bits & SlotBits.PRICE:
        return Stage.SHOWING_MARKET_PRICES
    if not bits & SlotBits.GRADE:
        return Stage.COLLECTING_GRADE
    return Stage.CONFIRMING_LISTING


def select_next_stage(stage: Stage, bits: SlotBits, confirmation: bool | None) -> Stage:
    """
    Deterministic next stage for one turn.

    WHAT: Map (current stage, slot bits after merge, confirmation) to a stage
    WHY: No hidden state; the same inputs always give the same stage
    HOW: Forward along the collecting order; special rules at the market,
         grade and confirmation stages

    Raises:
        InvalidTransitionError: Called for a terminal stage
    """
    if stage.is_terminal:
        raise InvalidTransitionError(stage.value, stage.value)

    if stage is Stage.BROADCASTING:
        return Stage.BROADCASTING

    if stage is Stage.CONFIRMING_LISTING:
        missing = _first_missing(bits)
        if missing is not None:
            return missing
        if confirmation is True:
            return Stage.BROADCASTING
        if confirmation is False:
            return Stage.ABORTED
        return Stage.CONFIRMING_LISTING

    if stage is Stage.SHOWING_MARKET_PRICES and bits & SlotBits.MARKET:
        # Seller accepts the market rate; market sales skip the grade question
        return Stage.CONFIRMING_LISTING if confirmation is True else Stage.SHOWING_MARKET_PRICES

    if stage is Stage.COLLECTING_GRADE and bits & SlotBits.PRICE and not bits & SlotBits.GRADE:
        # Any yes/no answer to the grade question moves on without a grade
        return Stage.CONFIRMING_LISTING if confirmation is not None else Stage.COLLECTING_GRADE

    return _forward(bits)


def check_transition(from_stage: Stage, to_stage: Stage) -> None:
    """
    Raises:
        InvalidTransitionError: Edge is not in ALLOWED_TRANSITIONS
    """
    if to_stage not in ALLOWED_TRANSITIONS[from_stage]:
        raise InvalidTransitionError(from_stage.value, to_stage.value)

"""
Counterparty selection for broadcasts.

WHAT: Pick the buyer platform that answers a listing
WHY: Only verified counterparties that trade the listing's category may bid
HOW: Filter the registry by verification and category affinity, then a
     uniform draw from the injected random source
"""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.broadcast import CounterpartyProfile
from ..utils.logger import get_logger

logger = get_logger(__name__)

_ALL_CATEGORIES = frozenset({"vegetables", "fruits", "grains", "pulses", "spices"})

DEFAULT_COUNTERPARTIES: Tuple[CounterpartyProfile, ...] = (
    CounterpartyProfile(
        counterparty_id="reliance-fresh",
        name="Reliance Fresh",
        verified=True,
        reliability=5,
        categories=_ALL_CATEGORIES,
        logo="/logos/reliance.png",
    ),
    CounterpartyProfile(
        counterparty_id="bigbasket",
        name="BigBasket",
        verified=True,
        reliability=5,
        categories=_ALL_CATEGORIES | {"other"},
        logo="/logos/bigbasket.png",
    ),
    CounterpartyProfile(
        counterparty_id="paytm-mall",
        name="Paytm Mall",
        verified=True,
        reliability=4,
        categories=frozenset({"grains", "pulses", "spices"}),
        logo="/logos/paytm.png",
    ),
    CounterpartyProfile(
        counterparty_id="flipkart-grocery",
        name="Flipkart Grocery",
        verified=True,
        reliability=4,
        categories=frozenset({"vegetables", "fruits", "grains", "pulses"}),
        logo="/logos/flipkart.png",
    ),
    CounterpartyProfile(
        counterparty_id="local-trader",
        name="Local Trader Co.",
        verified=False,
        reliability=2,
        categories=_ALL_CATEGORIES | {"other"},
    ),
)


@dataclass
class SelectionResult:
    """Result of counterparty filtering."""
    eligible: List[CounterpartyProfile]
    skipped: Dict[str, str]  # counterparty_id -> skip_reason


def validate_counterparty(
    counterparty: CounterpartyProfile,
    category: str
) -> Tuple[bool, Optional[str]]:
    """
    Check whether a counterparty may bid on a category.

    Returns:
        Tuple of (can_bid: bool, skip_reason: Optional[str])
    """
    if not counterparty.verified:
        return False, "unverified"
    if category not in counterparty.categories:
        return False, f"category_mismatch (does not buy {category})"
    return True, None


def select_counterparties(
    category: str,
    registry: Sequence[CounterpartyProfile] = DEFAULT_COUNTERPARTIES
) -> SelectionResult:
    """Every registry entry that may bid on the category, plus skip reasons."""
    eligible = []
    skipped = {}

    for counterparty in registry:
        can_bid, reason = validate_counterparty(counterparty, category)
        if can_bid:
            eligible.append(counterparty)
        else:
            skipped[counterparty.counterparty_id] = reason
            logger.debug(f"Skipped counterparty {counterparty.name}: {reason}")

    logger.info(
        f"Counterparty selection for {category}: "
        f"{len(eligible)} eligible, {len(skipped)} skipped"
    )
    return SelectionResult(eligible=eligible, skipped=skipped)


def choose_counterparty(
    category: str,
    registry: Sequence[CounterpartyProfile],
    rng: random.Random
) -> Optional[CounterpartyProfile]:
    """Uniform choice among eligible counterparties; None when nobody trades the category."""
    result = select_counterparties(category, registry)
    if not result.eligible:
        return None
    return rng.choice(result.eligible)

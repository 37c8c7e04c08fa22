"""
Commodity catalog.

WHAT: Canonical commodities with their category and perishability
WHY: Listings need a category for counterparty matching and a perishability tag
HOW: Static table keyed by canonical (lowercase, singular) commodity name
"""

from dataclasses import dataclass
from typing import Literal

Perishability = Literal["low", "medium", "high"]

DEFAULT_CATEGORY = "other"
DEFAULT_PERISHABILITY: Perishability = "medium"


@dataclass(frozen=True)
class CommodityInfo:
    """Static facts about one canonical commodity."""
    name: str
    category: str
    perishability: Perishability


_CATALOG: dict[str, CommodityInfo] = {
    info.name: info
    for info in (
        CommodityInfo("onion", "vegetables", "medium"),
        CommodityInfo("potato", "vegetables", "low"),
        CommodityInfo("tomato", "vegetables", "high"),
        CommodityInfo("cabbage", "vegetables", "medium"),
        CommodityInfo("cauliflower", "vegetables", "high"),
        CommodityInfo("carrot", "vegetables", "medium"),
        CommodityInfo("brinjal", "vegetables", "high"),
        CommodityInfo("cucumber", "vegetables", "high"),
        CommodityInfo("mango", "fruits", "high"),
        CommodityInfo("banana", "fruits", "high"),
        CommodityInfo("apple", "fruits", "medium"),
        CommodityInfo("wheat", "grains", "low"),
        CommodityInfo("rice", "grains", "low"),
        CommodityInfo("lentil", "pulses", "low"),
        CommodityInfo("garlic", "spices", "low"),
        CommodityInfo("ginger", "spices", "medium"),
        CommodityInfo("chilli", "spices", "medium"),
    )
}


def known_commodities() -> tuple[str, ...]:
    """Canonical names, in catalog order."""
    return tuple(_CATALOG)


def lookup(commodity: str) -> CommodityInfo:
    """Catalog entry for a commodity; unknown names get the default category."""
    key = commodity.strip().lower()
    info = _CATALOG.get(key)
    if info is None:
        return CommodityInfo(key, DEFAULT_CATEGORY, DEFAULT_PERISHABILITY)
    return info

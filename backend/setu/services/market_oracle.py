"""
Market price oracle.

WHAT: Per-kg mandi price spread and trend for a commodity
WHY: Sellers who ask for the market rate need a number, and market-quote
     listings need a base price for bids
HOW: data.gov.in AGMARKNET resource via httpx when an API key is configured;
     a static per-quintal spread otherwise or on any failure. Trend comes from
     an in-memory history of averages.
"""

from collections import deque
from statistics import mean
from typing import Optional

import httpx

from ..core.config import settings
from ..models.market import MarketQuote
from ..utils.logger import get_logger

logger = get_logger(__name__)

QUINTAL_KG = 100

# Typical AGMARKNET spreads, INR per quintal
FALLBACK_SPREADS: dict[str, tuple[float, float]] = {
    "onion": (1200, 2500),
    "potato": (800, 1800),
    "tomato": (1500, 4000),
    "wheat": (2200, 2800),
    "rice": (3500, 5500),
    "mango": (4000, 12000),
    "banana": (1500, 3000),
    "apple": (6000, 12000),
    "cabbage": (600, 1500),
    "cauliflower": (1000, 2500),
    "carrot": (1500, 3000),
    "garlic": (8000, 15000),
    "ginger": (4000, 8000),
    "chilli": (5000, 12000),
    "brinjal": (1000, 2500),
}
DEFAULT_SPREAD = (1500, 3500)

TREND_MIN_POINTS = 3
TREND_WINDOW = 10
TREND_THRESHOLD_PCT = 3.0
HISTORY_LIMIT = 100


def fallback_quote(commodity: str) -> MarketQuote:
    """Static estimate from the per-quintal spread table."""
    low, high = FALLBACK_SPREADS.get(commodity.strip().lower(), DEFAULT_SPREAD)
    min_kg = round(low / QUINTAL_KG, 2)
    max_kg = round(high / QUINTAL_KG, 2)
    return MarketQuote(
        commodity=commodity,
        min_per_kg=min_kg,
        max_per_kg=max_kg,
        avg_per_kg=round((min_kg + max_kg) / 2, 2),
        source="estimated",
    )


class MarketPriceOracle:
    """
    Lookup with live source and static fallback.

    lookup() never raises: any transport, status or payload problem
    degrades to the fallback spread.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url or settings.MARKET_API_BASE_URL
        self.api_key = api_key if api_key is not None else settings.MARKET_API_KEY
        self.timeout = timeout if timeout is not None else settings.MARKET_API_TIMEOUT
        self._client = client
        self._owns_client = client is None
        self._history: dict[str, deque] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client if this oracle created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def lookup(self, commodity: str, location: Optional[str] = None) -> MarketQuote:
        """Market estimate for a commodity, live when possible."""
        quote = None
        if self.api_key:
            quote = await self._fetch_live(commodity, location)
        else:
            logger.debug("MARKET_API_KEY not set; using estimated spread")

        if quote is None:
            logger.info(f"Using estimated market spread for {commodity}")
            quote = fallback_quote(commodity)

        trend = self.record_and_trend(commodity, quote.avg_per_kg)
        return quote.model_copy(update={"trend": trend})

    async def _fetch_live(self, commodity: str, location: Optional[str]) -> Optional[MarketQuote]:
        params = {
            "api-key": self.api_key,
            "format": "json",
            "limit": "50",
            "filters[commodity]": commodity.strip().capitalize(),
        }
        if location:
            params["filters[state]"] = location

        try:
            response = await self._get_client().get(self.base_url, params=params)
            response.raise_for_status()
            records = response.json().get("records") or []
            if not records:
                logger.warning(f"No live mandi records for {commodity}")
                return None

            mins = [float(r["min_price"]) for r in records]
            maxs = [float(r["max_price"]) for r in records]
            modals = [float(r["modal_price"]) for r in records]

            return MarketQuote(
                commodity=commodity,
                market=records[0].get("market") or "Local Mandi",
                min_per_kg=round(min(mins) / QUINTAL_KG, 2),
                max_per_kg=round(max(maxs) / QUINTAL_KG, 2),
                avg_per_kg=round(mean(modals) / QUINTAL_KG, 2),
                source="live",
            )

        except httpx.HTTPError as e:
            logger.warning(f"Mandi price request failed for {commodity}: {e}")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unusable mandi price payload for {commodity}: {e}")
        return None

    def record_and_trend(self, commodity: str, price: float) -> str:
        """
        Append a price to the commodity's history and classify the trend.

        Compares the mean of the older and newer halves of the last
        TREND_WINDOW points; a move beyond TREND_THRESHOLD_PCT is a trend.
        """
        key = commodity.strip().lower()
        history = self._history.setdefault(key, deque(maxlen=HISTORY_LIMIT))
        history.append(price)

        if len(history) < TREND_MIN_POINTS:
            return "stable"

        recent = list(history)[-TREND_WINDOW:]
        half = len(recent) // 2
        older = mean(recent[:half])
        newer = mean(recent[half:])
        if older == 0:
            return "stable"

        change_pct = (newer - older) / older * 100
        logger.debug(f"{key} trend: {change_pct:.2f}% over {len(recent)} points")
        if change_pct > TREND_THRESHOLD_PCT:
            return "rising"
        if change_pct < -TREND_THRESHOLD_PCT:
            return "falling"
        return "stable"


# Process-wide instance used by the API
market_oracle = MarketPriceOracle()

"""
Broadcast simulator.

WHAT: Simulated commerce-network broadcast of a listing, ending in one bid or one typed failure
WHY: The gateway has no live network yet; callers still need realistic
     latency, failures and bids that learn from history
HOW: Five timed phases on an injected sleep, one chaos roll, uniform
     counterparty choice, then a bid priced from the adaptive learner
"""

import asyncio
import math
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence
from uuid import uuid4

from ..core.config import settings
from ..models.broadcast import (
    AuditEvent,
    BidResult,
    BroadcastEvent,
    BroadcastOutcome,
    CounterpartyProfile,
    PhaseTiming,
)
from ..models.listing import Listing
from ..models.market import MarketQuote
from ..utils.exceptions import (
    BroadcastError,
    GatewayTimeoutError,
    NetworkError,
    NoSellersFoundError,
    RateLimitedError,
)
from ..utils.logger import get_logger
from .audit_sink import AuditSink
from .counterparty_selection import DEFAULT_COUNTERPARTIES, choose_counterparty
from .market_oracle import MarketPriceOracle, fallback_quote
from .pricing_learner import PricingLearner

logger = get_logger(__name__)

PHASES = ("gateway_handshake", "authentication", "fan_out", "matching", "bidding")

# Failure outcome -> (phase it is attributed to, exception type)
_FAILURES: dict[BroadcastOutcome, tuple[str, type[BroadcastError]]] = {
    BroadcastOutcome.NETWORK_ERROR: ("gateway_handshake", NetworkError),
    BroadcastOutcome.RATE_LIMITED: ("authentication", RateLimitedError),
    BroadcastOutcome.TIMEOUT: ("fan_out", GatewayTimeoutError),
    BroadcastOutcome.NO_SELLERS: ("matching", NoSellersFoundError),
}


@dataclass(frozen=True)
class SimulatorConfig:
    """Timing, chaos and pricing knobs for the simulator."""
    phase_ranges: tuple[tuple[float, float], ...] = (
        (1.0, 3.0), (0.5, 2.0), (2.0, 6.0), (1.5, 7.0), (1.0, 7.0),
    )
    p_network_error: float = 0.01
    p_timeout: float = 0.03
    p_no_sellers: float = 0.02
    p_rate_limited: float = 0.01
    ratio_low: float = 0.8
    ratio_high: float = 1.2
    warmup_threshold: int = 5
    warmup_noise: float = 0.10
    settled_noise: float = 0.05

    def __post_init__(self):
        if len(self.phase_ranges) != len(PHASES):
            raise ValueError(f"expected {len(PHASES)} phase ranges, got {len(self.phase_ranges)}")
        for low, high in self.phase_ranges:
            if low < 0 or high < low:
                raise ValueError(f"invalid phase range ({low}, {high})")
        total = self.p_network_error + self.p_timeout + self.p_no_sellers + self.p_rate_limited
        if total > 1.0:
            raise ValueError(f"chaos probabilities sum to {total:.3f}, must be <= 1")
        if self.ratio_low >= self.ratio_high:
            raise ValueError("ratio_low must be < ratio_high")

    @classmethod
    def from_settings(cls) -> "SimulatorConfig":
        return cls(
            phase_ranges=(
                tuple(settings.PHASE_GATEWAY_HANDSHAKE),
                tuple(settings.PHASE_AUTHENTICATION),
                tuple(settings.PHASE_FAN_OUT),
                tuple(settings.PHASE_MATCHING),
                tuple(settings.PHASE_BIDDING),
            ),
            p_network_error=settings.CHAOS_NETWORK_ERROR,
            p_timeout=settings.CHAOS_GATEWAY_TIMEOUT,
            p_no_sellers=settings.CHAOS_NO_SELLERS,
            p_rate_limited=settings.CHAOS_RATE_LIMITED,
            ratio_low=settings.BID_RATIO_MIN,
            ratio_high=settings.BID_RATIO_MAX,
            warmup_threshold=settings.PRICING_WARMUP_THRESHOLD,
            warmup_noise=settings.PRICING_WARMUP_NOISE,
            settled_noise=settings.PRICING_SETTLED_NOISE,
        )

    @property
    def elapsed_bounds(self) -> tuple[float, float]:
        return (
            sum(low for low, _ in self.phase_ranges),
            sum(high for _, high in self.phase_ranges),
        )


class BroadcastSimulator:
    """
    Simulate one broadcast per call.

    WHAT: broadcast(listing) -> BidResult, or a typed BroadcastError
    WHY: Exactly one outcome and one incoming_bid audit event per call
    HOW: Injected rng and sleep keep it deterministic and fast under test
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        learner: Optional[PricingLearner] = None,
        oracle: Optional[MarketPriceOracle] = None,
        audit_sink: Optional[AuditSink] = None,
        registry: Sequence[CounterpartyProfile] = DEFAULT_COUNTERPARTIES,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.config = config or SimulatorConfig.from_settings()
        self.learner = learner or PricingLearner(low=self.config.ratio_low, high=self.config.ratio_high)
        self.oracle = oracle
        self.audit_sink = audit_sink
        self.registry = tuple(registry)
        self.rng = rng or random.Random(settings.SIMULATOR_SEED)
        self._sleep = sleep

    def _audit(self, event: AuditEvent) -> None:
        if self.audit_sink is not None:
            self.audit_sink.record(event)

    def roll_outcome(self) -> BroadcastOutcome:
        """One uniform draw against cumulative chaos thresholds, in priority order."""
        roll = self.rng.random()
        threshold = 0.0
        for outcome, probability in (
            (BroadcastOutcome.NETWORK_ERROR, self.config.p_network_error),
            (BroadcastOutcome.TIMEOUT, self.config.p_timeout),
            (BroadcastOutcome.NO_SELLERS, self.config.p_no_sellers),
            (BroadcastOutcome.RATE_LIMITED, self.config.p_rate_limited),
        ):
            threshold += probability
            if roll < threshold:
                return outcome
        return BroadcastOutcome.SUCCESS

    def draw_ratio(self, commodity: str) -> float:
        """Learned ratio once warmed up, otherwise neutral with wider noise; always clamped."""
        stat = self.learner.get(commodity)
        if stat.sample_count >= self.config.warmup_threshold:
            noise = self.config.settled_noise
            ratio = stat.average_ratio * self.rng.uniform(1 - noise, 1 + noise)
        else:
            noise = self.config.warmup_noise
            ratio = self.rng.uniform(1 - noise, 1 + noise)
        return min(max(ratio, self.config.ratio_low), self.config.ratio_high)

    def price_bid(self, base: float, ratio: float) -> float:
        """Round base * ratio to paise without leaving the clamp band."""
        bid = round(base * ratio, 2)
        floor_bid = math.ceil(round(base * self.config.ratio_low * 100, 6)) / 100
        ceil_bid = math.floor(round(base * self.config.ratio_high * 100, 6)) / 100
        if floor_bid <= ceil_bid:
            bid = min(max(bid, floor_bid), ceil_bid)
        return bid

    async def broadcast(self, listing: Listing) -> BidResult:
        """
        Broadcast a listing and wait for a bid.

        Raises:
            NetworkError, GatewayTimeoutError, NoSellersFoundError, RateLimitedError
        """
        started = time.monotonic()
        event_id = str(uuid4())

        self._audit(AuditEvent(
            type="outgoing_listing",
            payload={
                "transaction_id": event_id,
                "listing": listing.model_dump(mode="json"),
            },
        ))
        logger.info(f"Broadcast {event_id} started for listing {listing.listing_id} ({listing.commodity})")

        estimate_task: Optional[asyncio.Task] = None
        if listing.market_quote and self.oracle is not None:
            estimate_task = asyncio.create_task(self.oracle.lookup(listing.commodity))

        try:
            phases = []
            for name, (low, high) in zip(PHASES, self.config.phase_ranges):
                seconds = round(self.rng.uniform(low, high), 3)
                phases.append(PhaseTiming(phase=name, seconds=seconds))
                logger.debug(f"Broadcast {event_id} phase {name}: {seconds}s")
                await self._sleep(seconds)
            elapsed = round(sum(p.seconds for p in phases), 3)

            outcome = self.roll_outcome()
            counterparty = None
            if outcome is BroadcastOutcome.SUCCESS:
                counterparty = choose_counterparty(listing.category, self.registry, self.rng)
                if counterparty is None:
                    outcome = BroadcastOutcome.NO_SELLERS

            if outcome is not BroadcastOutcome.SUCCESS:
                self._fail(event_id, listing, phases, elapsed, outcome)

            estimate = await self._ready_estimate(estimate_task)
            estimate_task = None
            bid = self._make_bid(event_id, listing, counterparty, estimate)

            event = BroadcastEvent(
                transaction_id=event_id,
                listing_id=listing.listing_id,
                phases=phases,
                elapsed_seconds=elapsed,
                outcome=BroadcastOutcome.SUCCESS,
                bid=bid,
            )
            self._audit(AuditEvent(type="incoming_bid", payload=event.model_dump(mode="json")))

            realized = bid.ratio if bid.base_price == 0 else bid.bid_amount / bid.base_price
            self.learner.update(listing.commodity, realized)

            logger.info(
                f"Broadcast {event_id} succeeded: {counterparty.name} bid "
                f"{bid.bid_amount} {bid.currency}/kg (ratio {bid.ratio:.4f}, "
                f"wall {time.monotonic() - started:.2f}s)"
            )
            return bid

        finally:
            if estimate_task is not None and not estimate_task.done():
                estimate_task.cancel()

    def _fail(
        self,
        event_id: str,
        listing: Listing,
        phases: list[PhaseTiming],
        elapsed: float,
        outcome: BroadcastOutcome
    ) -> None:
        phase, error_type = _FAILURES[outcome]
        event = BroadcastEvent(
            transaction_id=event_id,
            listing_id=listing.listing_id,
            phases=phases,
            elapsed_seconds=elapsed,
            outcome=outcome,
            failed_phase=phase,
            error=error_type.default_code,
        )
        self._audit(AuditEvent(type="incoming_bid", payload=event.model_dump(mode="json")))
        logger.warning(f"Broadcast {event_id} failed at {phase}: {outcome.value}")
        raise error_type(event)

    async def _ready_estimate(self, task: Optional[asyncio.Task]) -> Optional[MarketQuote]:
        """The concurrent oracle result if it finished during the phases."""
        if task is None:
            return None
        if not task.done():
            logger.info("Market estimate not ready after phases; using fallback spread")
            task.cancel()
            return None
        if task.cancelled():
            return None
        if task.exception() is not None:
            logger.warning(f"Market estimate lookup failed: {task.exception()}")
            return None
        return task.result()

    def _make_bid(
        self,
        event_id: str,
        listing: Listing,
        counterparty: CounterpartyProfile,
        estimate: Optional[MarketQuote]
    ) -> BidResult:
        used_estimate = listing.market_quote or listing.price is None
        if not used_estimate:
            base = listing.price
        elif estimate is not None:
            base = estimate.avg_per_kg
        else:
            base = fallback_quote(listing.commodity).avg_per_kg

        ratio = self.draw_ratio(listing.commodity)
        return BidResult(
            transaction_id=event_id,
            listing_id=listing.listing_id,
            counterparty_id=counterparty.counterparty_id,
            counterparty_name=counterparty.name,
            counterparty_logo=counterparty.logo,
            bid_amount=self.price_bid(base, ratio),
            base_price=base,
            ratio=ratio,
            currency=listing.currency,
            used_market_estimate=used_estimate,
        )

"""
Adaptive pricing learner.

WHAT: Per-commodity running estimate of the counterparty bid-to-ask ratio
WHY: Bids should drift toward what buyers actually paid for that commodity
HOW: Exponential moving average with clamping and a saturating sample count.
     One threading.Lock per commodity; statistics are immutable values
     replaced whole, so readers never see a half-written update.
"""

import math
import threading
from dataclasses import dataclass

from ..core.config import settings
from ..utils.exceptions import LearnerCorruptionError
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PricingStatistic:
    """Learned ratio and how many bids it has seen."""
    average_ratio: float = 1.0
    sample_count: int = 0


NEUTRAL_PRIOR = PricingStatistic()


class PricingLearner:
    """
    Keyed EMA learner shared by all broadcasts.

    WHAT: get/update/snapshot/reset per commodity
    WHY: The only shared mutable state in the gateway
    HOW: Per-key locks guarded by a registry lock; values are swapped, never edited
    """

    def __init__(
        self,
        alpha: float | None = None,
        low: float | None = None,
        high: float | None = None,
        saturation_cap: int | None = None
    ):
        self.alpha = alpha if alpha is not None else settings.PRICING_ALPHA
        self.low = low if low is not None else settings.BID_RATIO_MIN
        self.high = high if high is not None else settings.BID_RATIO_MAX
        self.saturation_cap = saturation_cap if saturation_cap is not None else settings.PRICING_SATURATION_CAP

        if not 0.0 < self.alpha <= 1.0:
            raise ValueError(f"alpha must be within (0, 1], got {self.alpha}")
        if self.low >= self.high:
            raise ValueError("low must be < high")

        self._stats: dict[str, PricingStatistic] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @staticmethod
    def _key(commodity: str) -> str:
        return commodity.strip().lower()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def initialize(self, commodities) -> None:
        """Seed every commodity with the neutral prior (existing entries are kept)."""
        for commodity in commodities:
            key = self._key(commodity)
            with self._lock_for(key):
                self._stats.setdefault(key, NEUTRAL_PRIOR)
        logger.info(f"Pricing learner initialized with {len(self._stats)} commodities")

    def _check(self, key: str, stat: PricingStatistic) -> None:
        """
        Raises:
            LearnerCorruptionError: Ratio non-finite or out of band, or negative count
        """
        if not math.isfinite(stat.average_ratio):
            raise LearnerCorruptionError(key, f"non-finite ratio {stat.average_ratio}")
        if not self.low <= stat.average_ratio <= self.high:
            raise LearnerCorruptionError(key, f"ratio {stat.average_ratio} outside [{self.low}, {self.high}]")
        if stat.sample_count < 0:
            raise LearnerCorruptionError(key, f"negative sample count {stat.sample_count}")

    def _read_locked(self, key: str) -> PricingStatistic:
        # Caller holds the key lock
        stat = self._stats.get(key, NEUTRAL_PRIOR)
        try:
            self._check(key, stat)
        except LearnerCorruptionError as e:
            logger.error(f"{e.message}; resetting to neutral prior")
            stat = NEUTRAL_PRIOR
            self._stats[key] = stat
        return stat

    def get(self, commodity: str) -> PricingStatistic:
        """Current statistic; unknown commodities read as the neutral prior."""
        key = self._key(commodity)
        with self._lock_for(key):
            return self._read_locked(key)

    def update(self, commodity: str, observed_ratio: float) -> PricingStatistic:
        """
        Fold one realized bid ratio into the statistic.

        Raises:
            ValueError: observed_ratio is not finite
        """
        if not math.isfinite(observed_ratio):
            raise ValueError(f"observed ratio must be finite, got {observed_ratio}")

        observed = min(max(observed_ratio, self.low), self.high)
        key = self._key(commodity)

        with self._lock_for(key):
            current = self._read_locked(key)
            average = (1 - self.alpha) * current.average_ratio + self.alpha * observed
            updated = PricingStatistic(
                average_ratio=min(max(average, self.low), self.high),
                sample_count=min(current.sample_count + 1, self.saturation_cap),
            )
            self._stats[key] = updated

        logger.info(
            f"Pricing update for {key}: observed={observed:.4f} "
            f"average={updated.average_ratio:.4f} samples={updated.sample_count}"
        )
        return updated

    def snapshot(self) -> dict[str, PricingStatistic]:
        """Copy of all statistics."""
        with self._guard:
            return dict(self._stats)

    def reset(self, commodity: str) -> None:
        """Return one commodity to the neutral prior."""
        key = self._key(commodity)
        with self._lock_for(key):
            self._stats[key] = NEUTRAL_PRIOR
        logger.info(f"Pricing statistic for {key} reset")

    def _put(self, commodity: str, stat: PricingStatistic) -> None:
        """Overwrite a statistic without checks (restores and tests)."""
        key = self._key(commodity)
        with self._lock_for(key):
            self._stats[key] = stat


# Process-wide instance used by the API
pricing_learner = PricingLearner()

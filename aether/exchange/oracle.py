"""
AetherDEX TWAP Oracle

Time-weighted average price oracle for a single pool:
  - Arithmetic-mean TWAP:  (C(now) - C(now - window)) / window
  - Cumulative price C(t) is a running integral of price over time
  - Fixed ring of OBSERVATION_SLOTS slots keyed by timestamp % slots, so
    reads and writes are O(1) and memory is bounded
  - Updated by OracleHook after every reserve change

Security features:
  - Timestamps must never move backwards
  - Same-second updates replace the current price without adding time
  - Reads of overwritten or never-written slots fail loudly
  - Staleness check
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..clock import Clock, SystemClock
from ..constants import OBSERVATION_SLOTS, ORACLE_STALENESS_SECONDS, TWAP_WINDOW_SECONDS
from ..exceptions import InvalidPrice, InvalidTimestamp, ObservationNotFound

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class Observation:
    """Cumulative price as of ``timestamp`` (price-seconds)."""
    timestamp: int
    cumulative_price: int


# ---------------------------------------------------------------------------
# TWAP Oracle
# ---------------------------------------------------------------------------

class TWAPOracle:
    """
    Ring buffer of cumulative-price observations.

    ``price`` is whatever fixed-point scale the caller uses (OracleHook
    feeds token1-per-token0 scaled by PRICE_PRECISION); the TWAP comes back
    in the same scale, floored.
    """

    def __init__(
        self,
        pool_id: str = "",
        clock: Optional[Clock] = None,
        slots: int = OBSERVATION_SLOTS,
        window: int = TWAP_WINDOW_SECONDS,
    ):
        if slots <= 0:
            raise ValueError("Oracle needs at least one slot")
        self.pool_id = pool_id
        self.clock = clock or SystemClock()
        self.slots = slots
        self.window = window
        self._ring: List[Optional[Observation]] = [None] * slots
        self._last_timestamp: Optional[int] = None
        self._last_cumulative: int = 0
        self._last_price: int = 0
        self._count: int = 0

    # -- Queries ------------------------------------------------------------

    @property
    def observation_count(self) -> int:
        """Distinct seconds ever written (not capped by the ring size)."""
        return self._count

    @property
    def latest_price(self) -> Optional[int]:
        return self._last_price if self._last_timestamp is not None else None

    @property
    def last_timestamp(self) -> Optional[int]:
        return self._last_timestamp

    def observation(self, timestamp: int) -> Optional[Observation]:
        """The observation stored for exactly ``timestamp``, if still in the ring."""
        obs = self._ring[timestamp % self.slots]
        if obs is None or obs.timestamp != timestamp:
            return None
        return obs

    # -- Recording ----------------------------------------------------------

    def update(self, price: int, timestamp: Optional[int] = None) -> Observation:
        """
        Record ``price`` as the spot price from ``timestamp`` onwards.

        The cumulative written is the integral up to ``timestamp`` of the
        price in force before it; ``price`` starts accruing afterwards.
        """
        if price <= 0:
            raise InvalidPrice("Price must be positive")
        now = self.clock.now() if timestamp is None else timestamp
        if self._last_timestamp is not None and now < self._last_timestamp:
            raise InvalidTimestamp(
                f"Timestamp {now} is before the last observation {self._last_timestamp}"
            )

        if self._last_timestamp is None:
            cumulative = 0
        else:
            elapsed = now - self._last_timestamp
            cumulative = self._last_cumulative + self._last_price * elapsed

        slot = now % self.slots
        obs = self._ring[slot]
        if obs is not None and obs.timestamp == now:
            # Same second: the integral up to `now` is unchanged, only the
            # price going forward changes.
            obs.cumulative_price = cumulative
        else:
            obs = Observation(timestamp=now, cumulative_price=cumulative)
            self._ring[slot] = obs
            self._count += 1

        self._last_timestamp = now
        self._last_cumulative = cumulative
        self._last_price = price
        return obs

    # -- TWAP computation ---------------------------------------------------

    def cumulative_at(self, timestamp: int) -> int:
        """
        C(timestamp): the stored value when that second was observed,
        extrapolated from the latest observation for later timestamps.
        """
        if self._last_timestamp is None:
            raise ObservationNotFound("Oracle has no observations")
        if timestamp >= self._last_timestamp:
            return self._last_cumulative + self._last_price * (timestamp - self._last_timestamp)
        obs = self.observation(timestamp)
        if obs is None:
            raise ObservationNotFound(f"No observation at {timestamp}")
        return obs.cumulative_price

    def get_twap(self, now: Optional[int] = None, window: Optional[int] = None) -> int:
        """
        Average price over ``[now - window, now]``.

        Raises:
            ObservationNotFound: the window start is not observed and lies
                before the latest observation
        """
        window = self.window if window is None else window
        if window <= 0:
            raise ValueError("TWAP window must be positive")
        now = self.clock.now() if now is None else now
        start = now - window
        return (self.cumulative_at(now) - self.cumulative_at(start)) // window

    # -- Health -------------------------------------------------------------

    def age(self, now: Optional[int] = None) -> Optional[int]:
        """Seconds since the last observation (None when empty)."""
        if self._last_timestamp is None:
            return None
        now = self.clock.now() if now is None else now
        return now - self._last_timestamp

    def is_stale(self, now: Optional[int] = None, threshold: int = ORACLE_STALENESS_SECONDS) -> bool:
        age = self.age(now)
        return age is None or age > threshold

    def __repr__(self) -> str:
        return (
            f"<TWAPOracle pool={self.pool_id or '-'} observations={self._count} "
            f"last={self._last_timestamp}>"
        )

"""
Fee Tiers & Dynamic Fees

Implements:
  - Fee validation on the MIN_FEE..MAX_FEE range and FEE_STEP grid
  - FeeTierCatalog: fee tier CRUD (fee, tick spacing, active flag)
  - PoolFeeRegistry: per-pool base fee, market metrics and the dynamic
    fee calculation consumed by DynamicFeeHook

All fees are integer parts-per-million (3000 = 0.30 %).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..logger import get_logger
from ..constants import (
    BPS,
    DEFAULT_FEE_TIERS,
    FEE_STEP,
    MAX_FEE,
    MAX_TICK_SPACING,
    MAX_VOLUME_MULTIPLIER,
    MIN_FEE,
    VOLUME_THRESHOLD,
)
from ..exceptions import (
    FeeTierExists,
    FeeTierNotFound,
    InvalidFee,
    InvalidPercentage,
    InvalidTickSpacing,
    PoolAlreadyExists,
    PoolNotFound,
)

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  VALIDATION
# ══════════════════════════════════════════════════════════════════════

def validate_fee(fee: int) -> bool:
    """True iff ``fee`` is in [MIN_FEE, MAX_FEE] and on the FEE_STEP grid."""
    if not isinstance(fee, int) or isinstance(fee, bool):
        return False
    return MIN_FEE <= fee <= MAX_FEE and (fee - MIN_FEE) % FEE_STEP == 0


def snap_fee(fee: int) -> int:
    """Clamp into [MIN_FEE, MAX_FEE], then round down onto the fee grid."""
    fee = max(MIN_FEE, min(MAX_FEE, fee))
    return fee - (fee - MIN_FEE) % FEE_STEP


# ══════════════════════════════════════════════════════════════════════
#  FEE TIERS
# ══════════════════════════════════════════════════════════════════════

@dataclass
class FeeTier:
    """A fee level pools can be created with."""
    fee: int
    tick_spacing: int
    active: bool = True
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fee": self.fee,
            "tickSpacing": self.tick_spacing,
            "active": self.active,
            "description": self.description,
        }


class FeeTierCatalog:
    """
    Registry of fee tiers keyed by fee.

    Authorization is enforced by the FeeGovernance facade; the catalog
    itself only validates values.
    """

    def __init__(self, seed_defaults: bool = True):
        self._tiers: Dict[int, FeeTier] = {}
        if seed_defaults:
            for fee, (spacing, description) in DEFAULT_FEE_TIERS.items():
                self._tiers[fee] = FeeTier(fee, spacing, True, description)

    @staticmethod
    def _check_spacing(tick_spacing: int) -> None:
        if not isinstance(tick_spacing, int) or not 1 <= tick_spacing <= MAX_TICK_SPACING:
            raise InvalidTickSpacing(
                f"Tick spacing {tick_spacing} outside [1, {MAX_TICK_SPACING}]"
            )

    def add_fee_tier(self, fee: int, tick_spacing: int, description: str = "") -> FeeTier:
        if not validate_fee(fee):
            raise InvalidFee(f"Fee {fee} is not a valid fee value")
        self._check_spacing(tick_spacing)
        if fee in self._tiers:
            raise FeeTierExists(f"Fee tier {fee} already exists")
        tier = FeeTier(fee, tick_spacing, True, description)
        self._tiers[fee] = tier
        logger.info(f"Fee tier added: {fee} ppm (spacing={tick_spacing})")
        return tier

    def update_fee_tier(
        self,
        fee: int,
        tick_spacing: Optional[int] = None,
        active: Optional[bool] = None,
        description: Optional[str] = None,
    ) -> FeeTier:
        tier = self.get_fee_tier(fee)
        if tick_spacing is not None:
            self._check_spacing(tick_spacing)
            tier.tick_spacing = tick_spacing
        if active is not None:
            tier.active = bool(active)
        if description is not None:
            tier.description = description
        logger.info(f"Fee tier updated: {fee} ppm (spacing={tier.tick_spacing}, active={tier.active})")
        return tier

    def remove_fee_tier(self, fee: int) -> FeeTier:
        tier = self._tiers.pop(fee, None)
        if tier is None:
            raise FeeTierNotFound(f"Fee tier {fee} not found")
        logger.info(f"Fee tier removed: {fee} ppm")
        return tier

    def get_fee_tier(self, fee: int) -> FeeTier:
        tier = self._tiers.get(fee)
        if tier is None:
            raise FeeTierNotFound(f"Fee tier {fee} not found")
        return tier

    def list_fee_tiers(self, active_only: bool = False) -> List[FeeTier]:
        tiers = sorted(self._tiers.values(), key=lambda t: t.fee)
        if active_only:
            return [t for t in tiers if t.active]
        return tiers

    def is_active_tier(self, fee: int) -> bool:
        tier = self._tiers.get(fee)
        return tier is not None and tier.active

    def __len__(self) -> int:
        return len(self._tiers)


# ══════════════════════════════════════════════════════════════════════
#  POOL FEES
# ══════════════════════════════════════════════════════════════════════

@dataclass
class PoolMetrics:
    """Market scores in basis points (0 = calm / thin / idle, BPS = extreme)."""
    volatility: int = 0
    liquidity: int = 0
    activity: int = 0


@dataclass
class PoolFeeConfig:
    pool_id: str
    fee: int
    metrics: PoolMetrics = field(default_factory=PoolMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poolId": self.pool_id,
            "fee": self.fee,
            "volatility": self.metrics.volatility,
            "liquidity": self.metrics.liquidity,
            "activity": self.metrics.activity,
        }


class PoolFeeRegistry:
    """
    Base fee and market metrics for every pool.

    Dynamic fee:
        multiplier = min(1 + amount // VOLUME_THRESHOLD, MAX_VOLUME_MULTIPLIER)
        fee = base * multiplier
              * (1 + volatility/2)     up to +50 %
              * (1 - liquidity/4)      up to -25 %
              * (1 - activity/10)      up to -10 %
    clamped to [MIN_FEE, MAX_FEE] and snapped down to the fee grid.
    """

    def __init__(self) -> None:
        self._pools: Dict[str, PoolFeeConfig] = {}

    def register_pool(self, pool_id: str, fee: int) -> PoolFeeConfig:
        if pool_id in self._pools:
            raise PoolAlreadyExists(f"Pool {pool_id} already has a fee")
        if not validate_fee(fee):
            raise InvalidFee(f"Fee {fee} is not a valid fee value")
        config = PoolFeeConfig(pool_id, fee)
        self._pools[pool_id] = config
        return config

    def is_registered(self, pool_id: str) -> bool:
        return pool_id in self._pools

    def _require(self, pool_id: str) -> PoolFeeConfig:
        config = self._pools.get(pool_id)
        if config is None:
            raise PoolNotFound(f"Pool {pool_id} has no registered fee")
        return config

    def get_pool_fee(self, pool_id: str) -> int:
        return self._require(pool_id).fee

    def set_pool_fee(self, pool_id: str, fee: int) -> int:
        """Set the base fee; returns the previous one."""
        config = self._require(pool_id)
        if not validate_fee(fee):
            raise InvalidFee(f"Fee {fee} is not a valid fee value")
        old = config.fee
        config.fee = fee
        logger.info(f"Pool {pool_id} fee: {old} → {fee} ppm")
        return old

    def set_pool_metrics(self, pool_id: str, volatility: int, liquidity: int, activity: int) -> PoolMetrics:
        config = self._require(pool_id)
        for label, score in (("volatility", volatility), ("liquidity", liquidity), ("activity", activity)):
            if not 0 <= score <= BPS:
                raise InvalidPercentage(f"{label} score {score} outside [0, {BPS}]")
        config.metrics = PoolMetrics(volatility, liquidity, activity)
        return config.metrics

    def get_pool_metrics(self, pool_id: str) -> PoolMetrics:
        return self._require(pool_id).metrics

    def calculate_fee(self, pool_id: str, amount: int) -> int:
        config = self._require(pool_id)
        base = config.fee
        if not MIN_FEE <= base <= MAX_FEE:
            raise InvalidFee(f"Stored fee {base} for pool {pool_id} is out of range")

        multiplier = min(1 + max(amount, 0) // VOLUME_THRESHOLD, MAX_VOLUME_MULTIPLIER)
        m = config.metrics
        volatility_adj = BPS + m.volatility // 2
        liquidity_adj = BPS - m.liquidity // 4
        activity_adj = BPS - m.activity // 10

        fee = base * multiplier * volatility_adj * liquidity_adj * activity_adj // BPS ** 3
        return snap_fee(fee)

    def to_dict(self) -> Dict[str, Any]:
        return {pid: c.to_dict() for pid, c in self._pools.items()}

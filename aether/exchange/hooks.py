"""
AetherDEX Hook Dispatcher

Provides capability-gated extension points around every pool operation:
  - before/after initialize
  - before/after modify_position (mint + burn)
  - before/after swap
  - before/after donate

Hooks are registered once in an arena and referenced by integer id. Each
registration asks the hook for its permissions at runtime; a hook that
cannot answer gets no permissions at all. Pools keep the ids of the hooks
attached to them and call ``dispatch`` at each point.

Hooks run synchronously inside the pool's lock and can:
  - Veto the operation (``allow=False``)
  - Override the fee of a single swap
  - Observe the balance delta of a completed operation

Built-in hooks:
  - DynamicFeeHook: swap fee from the fee registry
  - OracleHook: feeds the TWAP oracle after every reserve change
  - CircuitBreaker: halts swaps and position changes on extreme volume or
    price moves
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from ..constants import BPS, PRICE_PRECISION
from ..exceptions import (
    HookCallFailed,
    HookNotRegistered,
    HookRejected,
    InvalidHookResponse,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Hook points and permissions
# ---------------------------------------------------------------------------

class HookPoint(IntEnum):
    BEFORE_INITIALIZE = 0
    AFTER_INITIALIZE = 1
    BEFORE_MODIFY_POSITION = 2
    AFTER_MODIFY_POSITION = 3
    BEFORE_SWAP = 4
    AFTER_SWAP = 5
    BEFORE_DONATE = 6
    AFTER_DONATE = 7

    @property
    def method_name(self) -> str:
        """Name of the hook method invoked at this point, e.g. ``before_swap``."""
        return self.name.lower()

    @property
    def is_before(self) -> bool:
        return self.name.startswith("BEFORE_")


@dataclass(frozen=True)
class Permissions:
    """Which hook points a hook is allowed to receive."""
    before_initialize: bool = False
    after_initialize: bool = False
    before_modify_position: bool = False
    after_modify_position: bool = False
    before_swap: bool = False
    after_swap: bool = False
    before_donate: bool = False
    after_donate: bool = False

    def allows(self, point: HookPoint) -> bool:
        return getattr(self, point.method_name)

    def union(self, other: "Permissions") -> "Permissions":
        return Permissions(**{
            f.name: getattr(self, f.name) or getattr(other, f.name)
            for f in fields(self)
        })

    @classmethod
    def of(cls, *points: HookPoint) -> "Permissions":
        return cls(**{p.method_name: True for p in points})

    @classmethod
    def all(cls) -> "Permissions":
        return cls.of(*HookPoint)

    def to_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# Context and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BalanceDelta:
    """Signed token movement from the caller's side (+ paid in, - paid out)."""
    amount0: int = 0
    amount1: int = 0


@dataclass
class HookContext:
    """Data passed to hook callbacks."""
    pool_id: str = ""
    sender: str = ""
    token0: str = ""
    token1: str = ""
    fee: int = 0
    token_in: str = ""
    amount_in: int = 0
    amount_out: int = 0
    shares: int = 0
    reserve0: int = 0
    reserve1: int = 0
    timestamp: int = 0
    delta: Optional[BalanceDelta] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HookResult:
    """
    What a hook hands back from a dispatch.

    ``ack`` must echo the point being dispatched; anything else is treated
    as a malformed response.
    """
    ack: Optional[HookPoint] = None
    allow: bool = True
    reason: str = ""
    fee_override: Optional[int] = None

    @classmethod
    def ok(cls, point: HookPoint, fee_override: Optional[int] = None) -> "HookResult":
        return cls(ack=point, fee_override=fee_override)

    @classmethod
    def reject(cls, point: HookPoint, reason: str) -> "HookResult":
        return cls(ack=point, allow=False, reason=reason)


# ---------------------------------------------------------------------------
# Hook interface
# ---------------------------------------------------------------------------

class PoolHook(Protocol):
    """Structural type that registered hooks satisfy."""

    def get_hook_permissions(self) -> Permissions: ...


class BaseHook:
    """
    Convenience base: every point acknowledges and allows.

    Subclasses override ``get_hook_permissions`` and the points they care
    about.
    """

    def get_hook_permissions(self) -> Permissions:
        return Permissions()

    def before_initialize(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.BEFORE_INITIALIZE)

    def after_initialize(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.AFTER_INITIALIZE)

    def before_modify_position(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.BEFORE_MODIFY_POSITION)

    def after_modify_position(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.AFTER_MODIFY_POSITION)

    def before_swap(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.BEFORE_SWAP)

    def after_swap(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.AFTER_SWAP)

    def before_donate(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.BEFORE_DONATE)

    def after_donate(self, ctx: HookContext) -> HookResult:
        return HookResult.ok(HookPoint.AFTER_DONATE)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class HookDispatcher:
    """
    Arena of registered hooks plus a parallel permissions table.

    ``register`` returns the hook's id; ids are never reused.
    """

    def __init__(self) -> None:
        self._hooks: List[Any] = []
        self._permissions: List[Permissions] = []

    @property
    def hook_count(self) -> int:
        return len(self._hooks)

    def register(self, hook: PoolHook) -> int:
        try:
            permissions = hook.get_hook_permissions()
        except Exception as e:
            logger.warning("Hook %s permission query failed, denying all points: %s",
                           type(hook).__name__, e)
            permissions = Permissions()
        if not isinstance(permissions, Permissions):
            logger.warning("Hook %s returned malformed permissions, denying all points",
                           type(hook).__name__)
            permissions = Permissions()

        hook_id = len(self._hooks)
        self._hooks.append(hook)
        self._permissions.append(permissions)
        logger.info("Hook %d registered: %s %s", hook_id, type(hook).__name__, permissions.to_dict())
        return hook_id

    def get(self, hook_id: int) -> Any:
        self._check(hook_id)
        return self._hooks[hook_id]

    def permissions(self, hook_id: int) -> Permissions:
        self._check(hook_id)
        return self._permissions[hook_id]

    def combined_permissions(self, hook_ids: Iterable[int]) -> Permissions:
        merged = Permissions()
        for hook_id in hook_ids:
            merged = merged.union(self.permissions(hook_id))
        return merged

    def dispatch(self, hook_id: int, point: HookPoint, ctx: HookContext) -> Optional[HookResult]:
        """
        Invoke ``point`` on the hook if its permissions allow it.

        Returns:
            The hook's result, or None when the point is not permitted.

        Raises:
            HookNotRegistered: unknown id
            HookCallFailed: the hook raised
            InvalidHookResponse: the result does not acknowledge ``point``
            HookRejected: the hook vetoed the operation
        """
        self._check(hook_id)
        if not self._permissions[hook_id].allows(point):
            return None

        hook = self._hooks[hook_id]
        method: Optional[Callable[[HookContext], Any]] = getattr(hook, point.method_name, None)
        if method is None:
            raise InvalidHookResponse(
                f"Hook {hook_id} ({type(hook).__name__}) has no {point.method_name}"
            )
        try:
            result = method(ctx)
        except Exception as e:
            logger.error("Hook %d %s.%s failed: %s", hook_id, type(hook).__name__, point.method_name, e)
            raise HookCallFailed(f"Hook {hook_id} failed at {point.method_name}: {e}") from e

        if not isinstance(result, HookResult) or result.ack != point:
            raise InvalidHookResponse(
                f"Hook {hook_id} returned an invalid acknowledgement for {point.method_name}"
            )
        if not result.allow:
            raise HookRejected(result.reason or f"Hook {hook_id} rejected {point.method_name}")
        return result

    def dispatch_all(self, hook_ids: Iterable[int], point: HookPoint, ctx: HookContext) -> Optional[int]:
        """Dispatch to every id in order; returns the last fee override seen."""
        fee_override = None
        for hook_id in hook_ids:
            result = self.dispatch(hook_id, point, ctx)
            if result is not None and result.fee_override is not None:
                fee_override = result.fee_override
        return fee_override

    def _check(self, hook_id: int) -> None:
        if not isinstance(hook_id, int) or not 0 <= hook_id < len(self._hooks):
            raise HookNotRegistered(f"Hook {hook_id} is not registered")


# ---------------------------------------------------------------------------
# Dynamic fee hook
# ---------------------------------------------------------------------------

class DynamicFeeHook(BaseHook):
    """Replaces each swap's fee with ``calculate_fee(pool_id, amount_in)``."""

    def __init__(self, fee_source: Any):
        self._fees = fee_source

    def get_hook_permissions(self) -> Permissions:
        return Permissions.of(HookPoint.BEFORE_SWAP)

    def before_swap(self, ctx: HookContext) -> HookResult:
        fee = self._fees.calculate_fee(ctx.pool_id, ctx.amount_in)
        return HookResult.ok(HookPoint.BEFORE_SWAP, fee_override=fee)


# ---------------------------------------------------------------------------
# Oracle hook
# ---------------------------------------------------------------------------

class OracleHook(BaseHook):
    """
    Keeps one TWAP oracle per pool, fed with the post-operation spot price
    (token1 per token0, scaled by ``PRICE_PRECISION``).
    """

    def __init__(self, oracle_factory: Callable[[str], Any]):
        self._factory = oracle_factory
        self.oracles: Dict[str, Any] = {}

    def get_hook_permissions(self) -> Permissions:
        return Permissions.of(
            HookPoint.AFTER_INITIALIZE,
            HookPoint.AFTER_MODIFY_POSITION,
            HookPoint.AFTER_SWAP,
        )

    def oracle_for(self, pool_id: str) -> Any:
        if pool_id not in self.oracles:
            self.oracles[pool_id] = self._factory(pool_id)
        return self.oracles[pool_id]

    def _observe(self, ctx: HookContext) -> None:
        if ctx.reserve0 <= 0 or ctx.reserve1 <= 0:
            return
        price = ctx.reserve1 * PRICE_PRECISION // ctx.reserve0
        if price > 0:
            self.oracle_for(ctx.pool_id).update(price, ctx.timestamp)

    def after_initialize(self, ctx: HookContext) -> HookResult:
        self.oracle_for(ctx.pool_id)
        return HookResult.ok(HookPoint.AFTER_INITIALIZE)

    def after_modify_position(self, ctx: HookContext) -> HookResult:
        self._observe(ctx)
        return HookResult.ok(HookPoint.AFTER_MODIFY_POSITION)

    def after_swap(self, ctx: HookContext) -> HookResult:
        self._observe(ctx)
        return HookResult.ok(HookPoint.AFTER_SWAP)


# ---------------------------------------------------------------------------
# Circuit Breaker
# ---------------------------------------------------------------------------

@dataclass
class _BlockWindow:
    """Per-pool accumulators for the current block."""
    volume: Dict[str, int] = field(default_factory=dict)
    start_price: Optional[int] = None


class CircuitBreaker(BaseHook):
    """
    Halts trading when extreme conditions are detected.

    Conditions, tracked per pool:
      - Volume of one token per block above ``max_volume_per_block``
        (that token's units)
      - Spot price (token1 per token0) moving more than
        ``max_price_deviation_bps`` from where the block opened
      - Manual trip (emergency), for one pool or for every pool

    A tripped pool rejects swaps and position changes until ``reset``;
    other pools keep trading.
    """

    def __init__(
        self,
        max_price_deviation_bps: int = 1_500,
        max_volume_per_block: int = 10_000_000 * 10**18,
    ):
        self.max_price_deviation_bps = max_price_deviation_bps
        self.max_volume_per_block = max_volume_per_block
        self._global_reason: str = ""
        self._pool_reasons: Dict[str, str] = {}
        self._windows: Dict[str, _BlockWindow] = {}

    def get_hook_permissions(self) -> Permissions:
        return Permissions.of(
            HookPoint.BEFORE_SWAP,
            HookPoint.AFTER_SWAP,
            HookPoint.BEFORE_MODIFY_POSITION,
        )

    @property
    def is_tripped(self) -> bool:
        """True when any pool, or every pool, is halted."""
        return bool(self._global_reason or self._pool_reasons)

    @property
    def trip_reason(self) -> str:
        return self._global_reason or next(iter(self._pool_reasons.values()), "")

    def is_pool_tripped(self, pool_id: str) -> bool:
        return bool(self._halt_reason(pool_id))

    def _halt_reason(self, pool_id: str) -> str:
        return self._global_reason or self._pool_reasons.get(pool_id, "")

    @staticmethod
    def _spot_price(ctx: HookContext) -> Optional[int]:
        if ctx.reserve0 <= 0 or ctx.reserve1 <= 0:
            return None
        return ctx.reserve1 * PRICE_PRECISION // ctx.reserve0

    def new_block(self) -> None:
        """Reset per-block accumulators."""
        self._windows.clear()

    def trip(self, reason: str = "Manual emergency trip", pool_id: Optional[str] = None) -> None:
        if pool_id is None:
            self._global_reason = reason
            logger.warning("Circuit breaker TRIPPED for all pools: %s", reason)
        else:
            self._pool_reasons[pool_id] = reason
            logger.warning("Circuit breaker TRIPPED for pool %s: %s", pool_id, reason)

    def reset(self, pool_id: Optional[str] = None) -> None:
        if pool_id is None:
            self._global_reason = ""
            self._pool_reasons.clear()
            logger.info("Circuit breaker RESET")
        else:
            self._pool_reasons.pop(pool_id, None)
            logger.info("Circuit breaker RESET for pool %s", pool_id)

    def before_swap(self, ctx: HookContext) -> HookResult:
        reason = self._halt_reason(ctx.pool_id)
        if reason:
            return HookResult.reject(HookPoint.BEFORE_SWAP, f"Circuit breaker active: {reason}")

        window = self._windows.setdefault(ctx.pool_id, _BlockWindow())
        if window.start_price is None:
            window.start_price = self._spot_price(ctx)

        volume = window.volume.get(ctx.token_in, 0) + ctx.amount_in
        if volume > self.max_volume_per_block:
            self.trip(f"Block volume exceeded: {volume} of {ctx.token_in}", ctx.pool_id)
            return HookResult.reject(HookPoint.BEFORE_SWAP, self._pool_reasons[ctx.pool_id])
        window.volume[ctx.token_in] = volume
        return HookResult.ok(HookPoint.BEFORE_SWAP)

    def after_swap(self, ctx: HookContext) -> HookResult:
        window = self._windows.get(ctx.pool_id)
        price = self._spot_price(ctx)
        if window is not None and window.start_price and price is not None:
            deviation = abs(price - window.start_price) * BPS // window.start_price
            if deviation > self.max_price_deviation_bps:
                # The swap that moved the price has settled; later ones are halted.
                self.trip(f"Price deviation {deviation} bps in block", ctx.pool_id)
        return HookResult.ok(HookPoint.AFTER_SWAP)

    def before_modify_position(self, ctx: HookContext) -> HookResult:
        reason = self._halt_reason(ctx.pool_id)
        if reason:
            return HookResult.reject(
                HookPoint.BEFORE_MODIFY_POSITION, f"Circuit breaker active: {reason}"
            )
        return HookResult.ok(HookPoint.BEFORE_MODIFY_POSITION)

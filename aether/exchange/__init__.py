"""
AetherDEX Exchange Core

Components:
  - Pool Engine (constant product, x * y = k, fungible LP shares)
  - Pool Manager (one pool per ordered pair and fee)
  - Hook Dispatcher (capability-gated lifecycle callbacks)
  - TWAP Oracle (arithmetic time-weighted average price)
  - Local Router (multi-hop swaps, optimal liquidity, quotes)
"""

from .hooks import (
    BalanceDelta,
    BaseHook,
    CircuitBreaker,
    DynamicFeeHook,
    HookContext,
    HookDispatcher,
    HookPoint,
    HookResult,
    OracleHook,
    Permissions,
    PoolHook,
)
from .oracle import (
    Observation,
    TWAPOracle,
)
from .pool import (
    PoolEngine,
    PoolManager,
    PoolState,
    get_amount_out,
    pool_address,
)
from .router import (
    Router,
    RouteHopQuote,
    SwapQuote,
    apply_slippage,
    price_impact,
    quote,
)

__all__ = [
    # Hooks
    "BalanceDelta",
    "BaseHook",
    "CircuitBreaker",
    "DynamicFeeHook",
    "HookContext",
    "HookDispatcher",
    "HookPoint",
    "HookResult",
    "OracleHook",
    "Permissions",
    "PoolHook",
    # Oracle
    "Observation",
    "TWAPOracle",
    # Pools
    "PoolEngine",
    "PoolManager",
    "PoolState",
    "get_amount_out",
    "pool_address",
    # Router
    "Router",
    "RouteHopQuote",
    "SwapQuote",
    "apply_slippage",
    "price_impact",
    "quote",
]

"""
AetherDEX Engine  (owned context)

Holds every piece of exchange state in one object that is passed around
explicitly instead of living in module globals, so independent engines
can coexist (tests, simulations) and be torn down by dropping them.

Responsibilities:
  - Builds ledger, event log, hook dispatcher, governance, pools, local
    router, relay registry and cross-chain router from one EngineConfig
  - Registers the built-in hooks (oracle, dynamic fee, circuit breaker)
  - Keeps pool fees in sync with governance (FeeUpdated)
  - Computes a deterministic state root over pools, oracles and routes
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Optional, Sequence

from .bridge.router import CrossChainRouter, RelayRegistry
from .clock import Clock, SystemClock
from .config.loader import EngineConfig, load_config
from .events import Event, EventLog, FeeUpdated
from .exceptions import InvalidFee
from .exchange.hooks import CircuitBreaker, DynamicFeeHook, HookDispatcher, OracleHook
from .exchange.oracle import TWAPOracle
from .exchange.pool import PoolEngine, PoolManager
from .exchange.router import Router
from .governance.fee_governance import FeeGovernance
from .logger import set_log_level
from .tokens.ledger import TokenLedger

logger = logging.getLogger(__name__)


class AetherEngine:
    """
    One independent AetherDEX instance.

    Usage:

        engine = AetherEngine(EngineConfig(), clock=ManualClock(1_700_000_000))
        pool = engine.create_pool(USDC, WETH, 3000)
        engine.ledger.mint(USDC, alice, 10**12)
        ...
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        ledger: Optional[TokenLedger] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.config.validate()
        set_log_level(self.config.engine.log_level)
        self.clock = clock or SystemClock()

        # --- Shared infrastructure ---
        self.events = EventLog()
        self.ledger = ledger or TokenLedger()
        self.hooks = HookDispatcher()

        # --- Governance ---
        self.governance = FeeGovernance(
            owner=self.config.governance.owner,
            ledger=self.ledger,
            clock=self.clock,
            events=self.events,
            config=self.config.governance,
        )

        # --- Exchange ---
        self.pools = PoolManager(self.ledger, self.hooks, self.events, self.clock)
        self.router = Router(self.pools, self.clock, self.config.router.slippage_bps)

        # --- Built-in hooks ---
        self.oracle_hook = OracleHook(self._new_oracle)
        self.oracle_hook_id = self.hooks.register(self.oracle_hook)
        self.dynamic_fee_hook_id = self.hooks.register(DynamicFeeHook(self.governance))
        self.circuit_breaker = CircuitBreaker()
        self.circuit_breaker_hook_id = self.hooks.register(self.circuit_breaker)

        # --- Cross-chain ---
        self.relays = RelayRegistry.from_config(self.config.bridge, self.clock)
        self.cross_chain = CrossChainRouter(
            ledger=self.ledger,
            local_router=self.router,
            relays=self.relays,
            local_chain_id=self.config.engine.local_chain_id,
            supported_chains=self.config.router.supported_chains,
            events=self.events,
            clock=self.clock,
            default_deadline_seconds=self.config.router.default_deadline_seconds,
        )

        self._unsubscribe = self.events.subscribe(self._on_event)
        logger.info(
            "Engine ready: chain=%d owner=%s relays=%s",
            self.config.engine.local_chain_id, self.governance.owner, self.relays.names,
        )

    @classmethod
    def from_config_file(cls, path: Optional[str] = None, clock: Optional[Clock] = None) -> AetherEngine:
        return cls(load_config(path), clock=clock)

    # =====================================================================
    #  Wiring
    # =====================================================================

    def _new_oracle(self, pool_id: str) -> TWAPOracle:
        return TWAPOracle(pool_id=pool_id, clock=self.clock, window=self.config.oracle.window_seconds)

    def _on_event(self, event: Event) -> None:
        if isinstance(event, FeeUpdated):
            pool = self.pools.get_pool(event.pool_id)
            if pool is not None:
                pool.state.fee = event.new_fee
                logger.info("Pool %s fee %d → %d", event.pool_id, event.old_fee, event.new_fee)

    def close(self) -> None:
        """Detach engine-level subscribers."""
        self._unsubscribe()

    # =====================================================================
    #  Pools
    # =====================================================================

    def create_pool(
        self,
        token_a: str,
        token_b: str,
        fee: int,
        hook_ids: Sequence[int] = (),
        oracle: bool = True,
        dynamic_fee: bool = False,
        circuit_breaker: bool = False,
    ) -> PoolEngine:
        """
        Create a pool at an active fee tier and register its fee with
        governance.

        Raises:
            InvalidFee: ``fee`` is not an active fee tier
        """
        if not self.governance.is_active_tier(fee):
            raise InvalidFee(f"Fee {fee} is not an active fee tier")

        hooks: List[int] = []
        if circuit_breaker:
            hooks.append(self.circuit_breaker_hook_id)
        if dynamic_fee:
            hooks.append(self.dynamic_fee_hook_id)
        if oracle:
            hooks.append(self.oracle_hook_id)
        hooks.extend(h for h in hook_ids if h not in hooks)

        token0, token1 = sorted((token_a, token_b))
        pool_id = PoolManager._deterministic_pool_id(token0, token1, fee)
        if not self.governance.pool_fees.is_registered(pool_id):
            self.governance.register_pool(pool_id, fee)
        return self.pools.create_pool(token_a, token_b, fee, tuple(hooks))

    def get_pool(self, pool_id: str) -> PoolEngine:
        return self.pools.require_pool(pool_id)

    def oracle(self, pool_id: str) -> TWAPOracle:
        self.pools.require_pool(pool_id)
        return self.oracle_hook.oracle_for(pool_id)

    def get_twap(self, pool_id: str, window: Optional[int] = None) -> int:
        return self.oracle(pool_id).get_twap(window=window)

    # =====================================================================
    #  State root
    # =====================================================================

    def compute_state_root(self) -> str:
        """
        Deterministic hash of pools, oracles and cross-chain routes.

        Returns:
            64-char hex string (blake2b-256)
        """
        hasher = hashlib.blake2b(digest_size=32)

        for pool in sorted(self.pools.get_all_pools(), key=lambda p: p.state.id):
            s = pool.state
            hasher.update(hashlib.blake2b(
                f"{s.id}:{s.fee}:{s.reserve0}:{s.reserve1}:{s.total_shares}".encode(),
                digest_size=16,
            ).digest())

        for pool_id in sorted(self.oracle_hook.oracles):
            oracle = self.oracle_hook.oracles[pool_id]
            hasher.update(hashlib.blake2b(
                f"{pool_id}:{oracle.latest_price}:{oracle.observation_count}".encode(),
                digest_size=16,
            ).digest())

        for route in sorted(self.cross_chain.list_routes(), key=lambda r: r.id):
            hasher.update(f"{route.id}:{int(route.status)}:{route.refunded}".encode())

        return hasher.hexdigest()

    # =====================================================================
    #  Query interface
    # =====================================================================

    @property
    def pool_count(self) -> int:
        return self.pools.pool_count

    def get_stats(self) -> Dict[str, Any]:
        return {
            "chainId": self.config.engine.local_chain_id,
            "pools": self.pool_count,
            "hooks": self.hooks.hook_count,
            "feeTiers": len(self.governance.list_fee_tiers(active_only=True)),
            "proposals": len(self.governance.list_proposals()),
            "routes": len(self.cross_chain.list_routes()),
            "events": len(self.events),
            "relays": self.relays.names,
        }

    def __repr__(self) -> str:
        return f"<AetherEngine chain={self.config.engine.local_chain_id} pools={self.pool_count}>"

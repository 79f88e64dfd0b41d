"""
AetherDEX Constant-Product Pool Engine

Two-token liquidity pools priced by x * y = k with:
  - Integer reserves and shares, exact floor arithmetic
  - Parts-per-million swap fee (per-swap override from a before_swap hook)
  - Fungible LP shares, MINIMUM_LIQUIDITY locked to the zero address
  - Donations that grow reserves without minting shares

Security features:
  - Reentrancy lock on every mutation (re-entry raises Locked)
  - Reserve width capped at 112 bits
  - k-invariant post-condition on every swap
  - Operations are atomic: a failure anywhere (hooks and token callbacks
    included) restores reserves, shares and balances
  - Deterministic pool IDs (blake2b over the pair and fee)
"""

from __future__ import annotations

import copy
import hashlib
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..clock import Clock, SystemClock
from ..constants import (
    FEE_DENOMINATOR,
    MAX_UINT112,
    MINIMUM_LIQUIDITY,
    PRICE_PRECISION,
    ZERO_ADDRESS,
)
from ..events import Burn, Donate, Event, EventLog, Mint, PoolCreated, Swap
from ..exceptions import (
    AlreadyInitialized,
    HookNotRegistered,
    IdenticalAddresses,
    InsufficientLiquidity,
    InsufficientLiquidityBurned,
    InsufficientLiquidityMinted,
    InsufficientOutputAmount,
    InvalidAmountIn,
    InvalidFee,
    InvalidToken,
    KInvariantFailed,
    Locked,
    NotInitialized,
    Overflow,
    PoolAlreadyExists,
    PoolNotFound,
    ZeroAddress,
    ZeroAmount,
)
from ..governance.fees import validate_fee
from ..tokens.ledger import TokenLedger
from .hooks import BalanceDelta, HookContext, HookDispatcher, HookPoint, Permissions

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pricing math
# ---------------------------------------------------------------------------

def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee: int) -> int:
    """Exact-in constant-product output with a ppm fee, floored."""
    amount_in_with_fee = amount_in * (FEE_DENOMINATOR - fee)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def pool_address(pool_id: str) -> str:
    """Ledger address that holds a pool's reserves."""
    return "0x" + pool_id.rjust(40, "0")


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class PoolState:
    """
    State of a constant-product pool.

    token0 < token1 (canonical ordering). ``shares`` always sums to
    ``total_shares``; the zero address holds the locked minimum.
    """
    id: str
    token0: str = ""
    token1: str = ""
    fee: int = 0
    reserve0: int = 0
    reserve1: int = 0
    total_shares: int = 0
    shares: Dict[str, int] = field(default_factory=dict)
    hook_ids: List[int] = field(default_factory=list)
    hook_capabilities: Permissions = field(default_factory=Permissions)
    initialized: bool = False
    total_volume0: int = 0
    total_volume1: int = 0
    created_at: int = 0

    @property
    def address(self) -> str:
        return pool_address(self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "token0": self.token0,
            "token1": self.token1,
            "fee": self.fee,
            "reserve0": self.reserve0,
            "reserve1": self.reserve1,
            "totalShares": self.total_shares,
            "hookIds": list(self.hook_ids),
            "initialized": self.initialized,
            "totalVolume0": self.total_volume0,
            "totalVolume1": self.total_volume1,
            "createdAt": self.created_at,
        }


# ---------------------------------------------------------------------------
# Pool Engine
# ---------------------------------------------------------------------------

class PoolEngine:
    """
    Single constant-product pool.

    Implements:
      - initialize / initial liquidity / proportional liquidity
      - burn of LP shares
      - exact-in swaps
      - donations
      - hook dispatch around each of the above
    """

    def __init__(
        self,
        state: PoolState,
        ledger: TokenLedger,
        hooks: Optional[HookDispatcher] = None,
        events: Optional[EventLog] = None,
        clock: Optional[Clock] = None,
    ):
        self.state = state
        self.ledger = ledger
        self.hooks = hooks
        self.events = events
        self.clock = clock or SystemClock()
        self._locked: bool = False   # reentrancy guard

    # -- Reentrancy guard ---------------------------------------------------

    def _acquire_lock(self) -> None:
        if self._locked:
            raise Locked(f"Reentrancy detected: pool {self.state.id} is locked")
        self._locked = True

    def _release_lock(self) -> None:
        self._locked = False

    @property
    def is_locked(self) -> bool:
        return self._locked

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Restore pool state and ledger balances if the block raises."""
        saved = copy.deepcopy(self.state)
        with self.ledger.atomic():
            try:
                yield
            except BaseException:
                self.state.__dict__.update(saved.__dict__)
                raise

    # -- Hooks --------------------------------------------------------------

    def attach_hook(self, hook_id: int) -> None:
        """Attach a registered hook; it receives the points it was granted."""
        if self.hooks is None:
            raise HookNotRegistered(f"Pool {self.state.id} has no hook dispatcher")
        self.hooks.permissions(hook_id)
        if hook_id not in self.state.hook_ids:
            self.state.hook_ids.append(hook_id)
            self.state.hook_capabilities = self.hooks.combined_permissions(self.state.hook_ids)

    def _context(self, **kwargs: Any) -> HookContext:
        s = self.state
        return HookContext(
            pool_id=s.id,
            token0=s.token0,
            token1=s.token1,
            fee=s.fee,
            reserve0=s.reserve0,
            reserve1=s.reserve1,
            timestamp=self.clock.now(),
            **kwargs,
        )

    def _run_hooks(self, point: HookPoint, ctx: HookContext) -> Optional[int]:
        if self.hooks is None or not self.state.hook_capabilities.allows(point):
            return None
        return self.hooks.dispatch_all(self.state.hook_ids, point, ctx)

    def _emit(self, event: Event) -> None:
        if self.events is not None:
            self.events.emit(event)

    # -- Validation helpers -------------------------------------------------

    def _require_liquidity(self) -> None:
        if not self.state.initialized or self.state.total_shares == 0:
            raise NotInitialized(f"Pool {self.state.id} has no liquidity yet")

    @staticmethod
    def _check_width(*values: int) -> None:
        for v in values:
            if v > MAX_UINT112:
                raise Overflow(f"Value {v} exceeds 112-bit reserve width")

    # -- Initialize ---------------------------------------------------------

    def initialize(self, token0: str, token1: str, fee: int) -> None:
        """
        Bind the pool to an ordered token pair and a fee.

        Raises:
            AlreadyInitialized, IdenticalAddresses, ZeroAddress,
            InvalidToken (token0 must sort before token1), InvalidFee
        """
        s = self.state
        if s.initialized:
            raise AlreadyInitialized(f"Pool {s.id} already initialized")
        if token0 == token1:
            raise IdenticalAddresses("Pool tokens must differ")
        if token0 == ZERO_ADDRESS or token1 == ZERO_ADDRESS:
            raise ZeroAddress("Pool token cannot be the zero address")
        if not token0 < token1:
            raise InvalidToken("token0 must sort before token1")
        if not validate_fee(fee):
            raise InvalidFee(f"Fee {fee} is not a valid fee value")

        self._acquire_lock()
        try:
            with self._atomic():
                self._run_hooks(
                    HookPoint.BEFORE_INITIALIZE,
                    HookContext(pool_id=s.id, token0=token0, token1=token1, fee=fee,
                                timestamp=self.clock.now()),
                )
                s.token0, s.token1, s.fee = token0, token1, fee
                s.initialized = True
                s.created_at = self.clock.now()
                self._run_hooks(HookPoint.AFTER_INITIALIZE, self._context())
        finally:
            self._release_lock()

        logger.info("Pool %s initialized: %s/%s fee=%d", s.id, token0, token1, fee)
        self._emit(PoolCreated(s.id, token0, token1, fee, timestamp=s.created_at))

    # -- Liquidity ----------------------------------------------------------

    def add_initial_liquidity(self, amount0: int, amount1: int, provider: str) -> int:
        """
        First deposit. Mints ``isqrt(amount0 * amount1) - MINIMUM_LIQUIDITY``
        shares to ``provider`` and locks MINIMUM_LIQUIDITY forever.
        """
        s = self.state
        if not s.initialized:
            raise NotInitialized(f"Pool {s.id} is not initialized")
        if s.total_shares > 0:
            raise AlreadyInitialized(f"Pool {s.id} already has liquidity")
        if provider == ZERO_ADDRESS:
            raise ZeroAddress("Provider cannot be the zero address")
        if amount0 <= 0 or amount1 <= 0:
            raise InsufficientLiquidityMinted("Initial liquidity needs both tokens")
        self._check_width(amount0, amount1)

        liquidity = math.isqrt(amount0 * amount1)
        shares = liquidity - MINIMUM_LIQUIDITY
        if shares <= 0:
            raise InsufficientLiquidityMinted(
                f"Initial liquidity {liquidity} does not exceed the locked minimum"
            )
        self.ledger.require_balance(s.token0, provider, amount0)
        self.ledger.require_balance(s.token1, provider, amount1)

        self._acquire_lock()
        try:
            with self._atomic():
                delta = BalanceDelta(amount0, amount1)
                self._run_hooks(HookPoint.BEFORE_MODIFY_POSITION,
                                self._context(sender=provider, shares=shares, delta=delta))
                self.ledger.transfer(s.token0, provider, s.address, amount0)
                self.ledger.transfer(s.token1, provider, s.address, amount1)
                s.reserve0 += amount0
                s.reserve1 += amount1
                s.shares[ZERO_ADDRESS] = MINIMUM_LIQUIDITY
                s.shares[provider] = s.shares.get(provider, 0) + shares
                s.total_shares = liquidity
                self._run_hooks(HookPoint.AFTER_MODIFY_POSITION,
                                self._context(sender=provider, shares=shares, delta=delta))
        finally:
            self._release_lock()

        logger.info("Pool %s seeded by %s: %d/%d -> %d shares", s.id, provider, amount0, amount1, shares)
        self._emit(Mint(s.id, provider, provider, amount0, amount1, shares, timestamp=self.clock.now()))
        return shares

    def add_liquidity(
        self,
        recipient: str,
        amount0_desired: int,
        amount1_desired: int,
        payer: Optional[str] = None,
    ) -> int:
        """
        Proportional deposit: ``min(a0 * S / r0, a1 * S / r1)`` shares.

        The full desired amounts are taken; the router computes optimal
        amounts so nothing is donated by accident.
        """
        s = self.state
        if recipient == ZERO_ADDRESS:
            raise ZeroAddress("Recipient cannot be the zero address")
        self._require_liquidity()
        if amount0_desired < 0 or amount1_desired < 0:
            raise InsufficientLiquidityMinted("Amounts cannot be negative")
        self._check_width(s.reserve0 + amount0_desired, s.reserve1 + amount1_desired)

        payer = payer or recipient
        shares = min(
            amount0_desired * s.total_shares // s.reserve0,
            amount1_desired * s.total_shares // s.reserve1,
        )
        if shares <= 0:
            raise InsufficientLiquidityMinted("Deposit mints zero shares")
        self.ledger.require_balance(s.token0, payer, amount0_desired)
        self.ledger.require_balance(s.token1, payer, amount1_desired)

        self._acquire_lock()
        try:
            with self._atomic():
                delta = BalanceDelta(amount0_desired, amount1_desired)
                self._run_hooks(HookPoint.BEFORE_MODIFY_POSITION,
                                self._context(sender=payer, shares=shares, delta=delta))
                self.ledger.transfer(s.token0, payer, s.address, amount0_desired)
                self.ledger.transfer(s.token1, payer, s.address, amount1_desired)
                s.reserve0 += amount0_desired
                s.reserve1 += amount1_desired
                s.shares[recipient] = s.shares.get(recipient, 0) + shares
                s.total_shares += shares
                self._run_hooks(HookPoint.AFTER_MODIFY_POSITION,
                                self._context(sender=payer, shares=shares, delta=delta))
        finally:
            self._release_lock()

        self._emit(Mint(s.id, payer, recipient, amount0_desired, amount1_desired, shares,
                        timestamp=self.clock.now()))
        return shares

    mint = add_liquidity

    def burn(self, owner: str, shares: int, to: Optional[str] = None) -> Tuple[int, int]:
        """Redeem ``shares`` for ``shares * reserve_i / S`` of each token."""
        s = self.state
        to = to or owner
        if owner == ZERO_ADDRESS:
            raise InsufficientLiquidityBurned("Locked liquidity cannot be burned")
        if to == ZERO_ADDRESS:
            raise ZeroAddress("Recipient cannot be the zero address")
        if shares <= 0:
            raise InsufficientLiquidityBurned("Shares to burn must be positive")
        owned = s.shares.get(owner, 0)
        if shares > owned:
            raise InsufficientLiquidityBurned(f"{owner} owns {owned} shares, cannot burn {shares}")

        amount0 = shares * s.reserve0 // s.total_shares
        amount1 = shares * s.reserve1 // s.total_shares
        if amount0 == 0 and amount1 == 0:
            raise InsufficientLiquidityBurned("Burn returns nothing")

        self._acquire_lock()
        try:
            with self._atomic():
                delta = BalanceDelta(-amount0, -amount1)
                self._run_hooks(HookPoint.BEFORE_MODIFY_POSITION,
                                self._context(sender=owner, shares=shares, delta=delta))
                s.shares[owner] = owned - shares
                if s.shares[owner] == 0:
                    del s.shares[owner]
                s.total_shares -= shares
                s.reserve0 -= amount0
                s.reserve1 -= amount1
                self.ledger.transfer(s.token0, s.address, to, amount0)
                self.ledger.transfer(s.token1, s.address, to, amount1)
                self._run_hooks(HookPoint.AFTER_MODIFY_POSITION,
                                self._context(sender=owner, shares=shares, delta=delta))
        finally:
            self._release_lock()

        self._emit(Burn(s.id, owner, to, amount0, amount1, shares, timestamp=self.clock.now()))
        return amount0, amount1

    # -- Swap ---------------------------------------------------------------

    def swap(self, amount_in: int, token_in: str, to: str, payer: Optional[str] = None) -> int:
        """
        Exact-in swap of ``amount_in`` of ``token_in``; output goes to ``to``.

        Returns:
            amount_out

        Raises:
            InvalidAmountIn, InvalidToken, ZeroAddress, InsufficientLiquidity,
            Overflow, InvalidFee (bad hook override), InsufficientOutputAmount,
            KInvariantFailed, Locked
        """
        s = self.state
        if amount_in <= 0:
            raise InvalidAmountIn("Swap amount must be positive")
        if not s.initialized or token_in not in (s.token0, s.token1):
            raise InvalidToken(f"{token_in} is not a token of pool {s.id}")
        if to == ZERO_ADDRESS:
            raise ZeroAddress("Recipient cannot be the zero address")

        zero_for_one = token_in == s.token0
        token_out = s.token1 if zero_for_one else s.token0
        reserve_in, reserve_out = (s.reserve0, s.reserve1) if zero_for_one else (s.reserve1, s.reserve0)
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientLiquidity(f"Pool {s.id} has no liquidity")
        self._check_width(amount_in, reserve_in + amount_in)

        payer = payer or to
        self.ledger.require_balance(token_in, payer, amount_in)

        self._acquire_lock()
        try:
            with self._atomic():
                fee = s.fee
                override = self._run_hooks(
                    HookPoint.BEFORE_SWAP,
                    self._context(sender=payer, token_in=token_in, amount_in=amount_in),
                )
                if override is not None:
                    if not validate_fee(override):
                        raise InvalidFee(f"Hook fee override {override} is not a valid fee value")
                    fee = override

                amount_out = get_amount_out(amount_in, reserve_in, reserve_out, fee)
                if amount_out == 0:
                    raise InsufficientOutputAmount("Swap output rounds to zero")
                if amount_out >= reserve_out:
                    raise InsufficientLiquidity("Swap would drain the pool")

                new_in = reserve_in + amount_in
                new_out = reserve_out - amount_out
                if new_in * new_out < reserve_in * reserve_out:
                    raise KInvariantFailed("reserve product decreased")

                self.ledger.transfer(token_in, payer, s.address, amount_in)
                self.ledger.transfer(token_out, s.address, to, amount_out)
                if zero_for_one:
                    s.reserve0, s.reserve1 = new_in, new_out
                    s.total_volume0 += amount_in
                    delta = BalanceDelta(amount_in, -amount_out)
                else:
                    s.reserve1, s.reserve0 = new_in, new_out
                    s.total_volume1 += amount_in
                    delta = BalanceDelta(-amount_out, amount_in)

                self._run_hooks(
                    HookPoint.AFTER_SWAP,
                    self._context(sender=payer, token_in=token_in, amount_in=amount_in,
                                  amount_out=amount_out, delta=delta),
                )
        finally:
            self._release_lock()

        fee_amount = amount_in * fee // FEE_DENOMINATOR
        logger.debug("Pool %s swap: %d %s → %d %s (fee=%d ppm)",
                     s.id, amount_in, token_in, amount_out, token_out, fee)
        self._emit(Swap(s.id, payer, to, token_in, token_out, amount_in, amount_out, fee_amount,
                        timestamp=self.clock.now()))
        return amount_out

    # -- Donate -------------------------------------------------------------

    def donate(self, amount0: int, amount1: int, donor: str) -> None:
        """Add to reserves without minting shares (a tip to current LPs)."""
        s = self.state
        if amount0 < 0 or amount1 < 0:
            raise InvalidAmountIn("Donation amounts cannot be negative")
        if amount0 == 0 and amount1 == 0:
            raise ZeroAmount("Donation is empty")
        self._require_liquidity()
        self._check_width(s.reserve0 + amount0, s.reserve1 + amount1)
        self.ledger.require_balance(s.token0, donor, amount0)
        self.ledger.require_balance(s.token1, donor, amount1)

        self._acquire_lock()
        try:
            with self._atomic():
                delta = BalanceDelta(amount0, amount1)
                self._run_hooks(HookPoint.BEFORE_DONATE, self._context(sender=donor, delta=delta))
                self.ledger.transfer(s.token0, donor, s.address, amount0)
                self.ledger.transfer(s.token1, donor, s.address, amount1)
                s.reserve0 += amount0
                s.reserve1 += amount1
                self._run_hooks(HookPoint.AFTER_DONATE, self._context(sender=donor, delta=delta))
        finally:
            self._release_lock()

        self._emit(Donate(s.id, donor, amount0, amount1, timestamp=self.clock.now()))

    # -- Read-only ----------------------------------------------------------

    def quote(self, amount_in: int, token_in: str) -> int:
        """Output of an exact-in swap at the pool's stored fee (no hooks)."""
        reserve_in, reserve_out = self.reserves_for(token_in)
        if amount_in <= 0:
            raise InvalidAmountIn("Quote amount must be positive")
        if reserve_in == 0 or reserve_out == 0:
            raise InsufficientLiquidity(f"Pool {self.state.id} has no liquidity")
        return get_amount_out(amount_in, reserve_in, reserve_out, self.state.fee)

    def reserves_for(self, token_in: str) -> Tuple[int, int]:
        """(reserve_in, reserve_out) when selling ``token_in``."""
        s = self.state
        if not s.initialized or token_in not in (s.token0, s.token1):
            raise InvalidToken(f"{token_in} is not a token of pool {s.id}")
        if token_in == s.token0:
            return s.reserve0, s.reserve1
        return s.reserve1, s.reserve0

    def other_token(self, token: str) -> str:
        s = self.state
        if token == s.token0:
            return s.token1
        if token == s.token1:
            return s.token0
        raise InvalidToken(f"{token} is not a token of pool {s.id}")

    def get_reserves(self) -> Tuple[int, int]:
        return self.state.reserve0, self.state.reserve1

    @property
    def fee(self) -> int:
        return self.state.fee

    @property
    def total_supply(self) -> int:
        return self.state.total_shares

    def shares_of(self, owner: str) -> int:
        return self.state.shares.get(owner, 0)

    @property
    def price(self) -> int:
        """token1 per token0, scaled by PRICE_PRECISION (0 while empty)."""
        if self.state.reserve0 == 0:
            return 0
        return self.state.reserve1 * PRICE_PRECISION // self.state.reserve0

    def __repr__(self) -> str:
        s = self.state
        return f"<PoolEngine {s.id} {s.token0}/{s.token1} fee={s.fee} reserves=({s.reserve0}, {s.reserve1})>"


# ---------------------------------------------------------------------------
# Pool Manager
# ---------------------------------------------------------------------------

class PoolManager:
    """
    Owns every pool.

    Handles:
      - Pool creation (one pool per ordered pair and fee)
      - Lookup by id and by pair
      - Deterministic pool IDs
    """

    def __init__(
        self,
        ledger: TokenLedger,
        hooks: Optional[HookDispatcher] = None,
        events: Optional[EventLog] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.ledger = ledger
        self.hooks = hooks
        self.events = events
        self.clock = clock or SystemClock()
        self._pools: Dict[str, PoolEngine] = {}
        self._pair_index: Dict[str, List[str]] = {}  # "token0:token1" → [pool_ids]

    @property
    def pool_count(self) -> int:
        return len(self._pools)

    def create_pool(
        self,
        token_a: str,
        token_b: str,
        fee: int,
        hook_ids: Tuple[int, ...] = (),
    ) -> PoolEngine:
        """Create and initialize a pool; tokens may be given in either order."""
        if token_a == token_b:
            raise IdenticalAddresses("Pool tokens must differ")
        token0, token1 = (token_a, token_b) if token_a < token_b else (token_b, token_a)

        pair_key = f"{token0}:{token1}"
        for pid in self._pair_index.get(pair_key, []):
            if self._pools[pid].fee == fee:
                raise PoolAlreadyExists(f"Pool already exists for {pair_key} with fee {fee}")

        pool_id = self._deterministic_pool_id(token0, token1, fee)
        pool = PoolEngine(PoolState(id=pool_id), self.ledger, self.hooks, self.events, self.clock)
        for hook_id in hook_ids:
            pool.attach_hook(hook_id)
        pool.initialize(token0, token1, fee)

        self._pools[pool_id] = pool
        self._pair_index.setdefault(pair_key, []).append(pool_id)
        logger.info("Pool %s created: %s/%s fee=%d hooks=%s", pool_id, token0, token1, fee, list(hook_ids))
        return pool

    def get_pool(self, pool_id: str) -> Optional[PoolEngine]:
        return self._pools.get(pool_id)

    def require_pool(self, pool_id: str) -> PoolEngine:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise PoolNotFound(f"Pool {pool_id} not found")
        return pool

    def get_pools_for_pair(self, token_a: str, token_b: str) -> List[PoolEngine]:
        if token_a > token_b:
            token_a, token_b = token_b, token_a
        return [self._pools[pid] for pid in self._pair_index.get(f"{token_a}:{token_b}", [])]

    def get_pool_for_pair(self, token_a: str, token_b: str, fee: Optional[int] = None) -> PoolEngine:
        """Pool for the pair at ``fee``, or the deepest one when fee is None."""
        pools = self.get_pools_for_pair(token_a, token_b)
        if fee is not None:
            pools = [p for p in pools if p.fee == fee]
        if not pools:
            raise PoolNotFound(f"No pool for {token_a}/{token_b}" + (f" fee={fee}" if fee else ""))
        return max(pools, key=lambda p: p.state.reserve0 * p.state.reserve1)

    def get_all_pools(self) -> List[PoolEngine]:
        return list(self._pools.values())

    @staticmethod
    def _deterministic_pool_id(token0: str, token1: str, fee: int) -> str:
        raw = f"{token0}:{token1}:{fee}".encode()
        return hashlib.blake2b(raw, digest_size=8).hexdigest()

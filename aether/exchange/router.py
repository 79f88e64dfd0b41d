"""
AetherDEX Local Router

The Router:
  - Chains exact-in swaps along a token path through the deepest pool of
    each pair
  - Adds liquidity at the optimal ratio and removes it with minimums
  - Quotes swaps read-only (amount out, slippage-protected minimum,
    price impact, fee, route)

Security features:
  - Deadline enforcement on every mutating call
  - Slippage enforcement (amount_out_min, amount_a_min / amount_b_min)
  - Multi-hop calls are all-or-nothing: pool states and balances are
    restored if any hop fails
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..clock import Clock
from ..constants import BPS, DEFAULT_SLIPPAGE_BPS, FEE_DENOMINATOR, ZERO_ADDRESS
from ..exceptions import (
    DeadlineExpired,
    InsufficientAmount,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    InvalidAmountIn,
    InvalidPath,
    InvalidPercentage,
    PoolNotFound,
    ZeroAddress,
    ZeroAmount,
)
from .pool import PoolEngine, PoolManager

logger = logging.getLogger(__name__)

DEFAULT_POOL_FEE = 3000
PRICE_IMPACT_QUANTUM = Decimal("0.0001")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def quote(amount_a: int, reserve_a: int, reserve_b: int) -> int:
    """Amount of B worth ``amount_a`` of A at the current reserve ratio."""
    if amount_a <= 0:
        raise ZeroAmount("Quote amount must be positive")
    if reserve_a <= 0 or reserve_b <= 0:
        raise InsufficientLiquidity("Pool has no liquidity")
    return amount_a * reserve_b // reserve_a


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Minimum acceptable output for ``amount`` with ``slippage_bps`` tolerance."""
    if not 0 <= slippage_bps <= BPS:
        raise InvalidPercentage(f"Slippage {slippage_bps} bps is outside [0, {BPS}]")
    return amount * (BPS - slippage_bps) // BPS


def price_impact(amount_in: int, amount_out: int, reserve_in: int, reserve_out: int) -> Decimal:
    """
    Percent move of ``reserve_out / reserve_in`` caused by the swap,
    rounded to four decimal places.
    """
    initial = Decimal(reserve_out) / Decimal(reserve_in)
    final = Decimal(reserve_out - amount_out) / Decimal(reserve_in + amount_in)
    return abs((initial - final) / initial * 100).quantize(PRICE_IMPACT_QUANTUM, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class RouteHopQuote:
    pool_id: str
    token_in: str
    token_out: str
    fee: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poolId": self.pool_id,
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "fee": self.fee,
        }


@dataclass
class SwapQuote:
    """Read-only quote for a single-pool exact-in swap."""
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    min_amount_out: int
    price_impact: Decimal          # percent, 4 decimal places
    fee: int                       # fee amount in token_in
    fee_rate: int                  # ppm
    route: List[RouteHopQuote] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amountIn": self.amount_in,
            "amountOut": self.amount_out,
            "minAmountOut": self.min_amount_out,
            "priceImpact": str(self.price_impact),
            "fee": self.fee,
            "feeRate": self.fee_rate,
            "route": [hop.to_dict() for hop in self.route],
        }


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class Router:
    """
    Periphery over ``PoolManager``.

    Quotes use each pool's stored fee; executed swaps may differ when a
    before_swap hook overrides the fee, so slippage is checked against the
    amounts actually received.
    """

    def __init__(
        self,
        pool_manager: PoolManager,
        clock: Optional[Clock] = None,
        default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ):
        self.pool_manager = pool_manager
        self.ledger = pool_manager.ledger
        self.clock = clock or pool_manager.clock
        self.default_slippage_bps = default_slippage_bps

    # -- Guards -------------------------------------------------------------

    def _ensure(self, deadline: int) -> None:
        now = self.clock.now()
        if now > deadline:
            raise DeadlineExpired(f"Transaction deadline {deadline} passed (now={now})")

    @contextmanager
    def _atomic(self, pools: Sequence[PoolEngine]) -> Iterator[None]:
        """Restore every touched pool and all balances if the block raises."""
        saved = [(pool, copy.deepcopy(pool.state)) for pool in pools]
        with self.ledger.atomic():
            try:
                yield
            except BaseException:
                for pool, state in saved:
                    pool.state.__dict__.update(state.__dict__)
                raise

    def _pools_for_path(self, path: Sequence[str]) -> List[PoolEngine]:
        if len(path) < 2:
            raise InvalidPath("Path needs at least two tokens")
        pools = []
        for token_in, token_out in zip(path, path[1:]):
            if token_in == token_out:
                raise InvalidPath(f"Path repeats {token_in} in consecutive hops")
            pools.append(self.pool_manager.get_pool_for_pair(token_in, token_out))
        return pools

    # -- Quoting ------------------------------------------------------------

    def get_amounts_out(self, amount_in: int, path: Sequence[str]) -> List[int]:
        """Amounts at every step of ``path`` for an exact-in swap."""
        if amount_in <= 0:
            raise InvalidAmountIn("Amount in must be positive")
        amounts = [amount_in]
        for pool, token_in in zip(self._pools_for_path(path), path):
            amounts.append(pool.quote(amounts[-1], token_in))
        return amounts

    def quote_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        slippage_bps: Optional[int] = None,
    ) -> SwapQuote:
        """
        Quote ``amount_in`` of ``token_in`` through the deepest pool.

        Price impact is ``(initial - final) / initial * 100`` where the
        prices are ``reserve_out / reserve_in`` before and after the swap.
        """
        if slippage_bps is None:
            slippage_bps = self.default_slippage_bps
        pool = self._pools_for_path([token_in, token_out])[0]
        reserve_in, reserve_out = pool.reserves_for(token_in)
        amount_out = pool.quote(amount_in, token_in)

        impact = price_impact(amount_in, amount_out, reserve_in, reserve_out)

        return SwapQuote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            min_amount_out=apply_slippage(amount_out, slippage_bps),
            price_impact=impact,
            fee=amount_in * pool.fee // FEE_DENOMINATOR,
            fee_rate=pool.fee,
            route=[RouteHopQuote(pool.state.id, token_in, token_out, pool.fee)],
        )

    # -- Swaps --------------------------------------------------------------

    def swap_exact_tokens_for_tokens(
        self,
        caller: str,
        amount_in: int,
        amount_out_min: int,
        path: Sequence[str],
        to: str,
        deadline: int,
    ) -> List[int]:
        """
        Swap exactly ``amount_in`` along ``path``; intermediate hops settle
        to ``caller`` and the final hop to ``to``.

        Returns:
            Amounts actually moved at every step.
        """
        self._ensure(deadline)
        if to == ZERO_ADDRESS:
            raise ZeroAddress("Recipient cannot be the zero address")
        quoted = self.get_amounts_out(amount_in, path)
        if quoted[-1] < amount_out_min:
            raise InsufficientOutputAmount(
                f"Quoted output {quoted[-1]} below minimum {amount_out_min}"
            )

        pools = self._pools_for_path(path)
        amounts = [amount_in]
        with self._atomic(pools):
            for i, pool in enumerate(pools):
                recipient = to if i == len(pools) - 1 else caller
                amounts.append(pool.swap(amounts[-1], path[i], recipient, payer=caller))
            if amounts[-1] < amount_out_min:
                raise InsufficientOutputAmount(
                    f"Output {amounts[-1]} below minimum {amount_out_min}"
                )

        logger.info("Routed swap %s: %d → %d via %d pool(s)",
                    "→".join(path), amount_in, amounts[-1], len(pools))
        return amounts

    # -- Liquidity ----------------------------------------------------------

    def _optimal_amounts(
        self,
        pool: PoolEngine,
        token_a: str,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
    ) -> Tuple[int, int]:
        reserve_a, reserve_b = pool.reserves_for(token_a)
        if reserve_a == 0 and reserve_b == 0:
            return amount_a_desired, amount_b_desired

        amount_b_optimal = quote(amount_a_desired, reserve_a, reserve_b)
        if amount_b_optimal <= amount_b_desired:
            if amount_b_optimal < amount_b_min:
                raise InsufficientAmount(f"Optimal B {amount_b_optimal} below minimum {amount_b_min}")
            return amount_a_desired, amount_b_optimal

        amount_a_optimal = quote(amount_b_desired, reserve_b, reserve_a)
        if amount_a_optimal < amount_a_min:
            raise InsufficientAmount(f"Optimal A {amount_a_optimal} below minimum {amount_a_min}")
        return amount_a_optimal, amount_b_desired

    def add_liquidity(
        self,
        caller: str,
        token_a: str,
        token_b: str,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
        to: str,
        deadline: int,
        fee: Optional[int] = None,
    ) -> Tuple[int, int, int]:
        """
        Deposit at the pool's current ratio, creating and seeding the pool
        when it does not exist yet.

        Returns:
            (amount_a, amount_b, shares)
        """
        self._ensure(deadline)
        if amount_a_desired <= 0 or amount_b_desired <= 0:
            raise InsufficientAmount("Both desired amounts must be positive")
        try:
            pool = self.pool_manager.get_pool_for_pair(token_a, token_b, fee)
        except PoolNotFound:
            pool = self.pool_manager.create_pool(token_a, token_b, fee or DEFAULT_POOL_FEE)

        amount_a, amount_b = self._optimal_amounts(
            pool, token_a, amount_a_desired, amount_b_desired, amount_a_min, amount_b_min,
        )
        amount0, amount1 = (amount_a, amount_b) if token_a == pool.state.token0 else (amount_b, amount_a)

        if pool.total_supply == 0:
            if to != caller:
                raise InvalidPath("Initial liquidity must be minted to the provider")
            shares = pool.add_initial_liquidity(amount0, amount1, caller)
        else:
            shares = pool.add_liquidity(to, amount0, amount1, payer=caller)
        return amount_a, amount_b, shares

    def remove_liquidity(
        self,
        caller: str,
        token_a: str,
        token_b: str,
        shares: int,
        amount_a_min: int,
        amount_b_min: int,
        to: str,
        deadline: int,
        fee: Optional[int] = None,
    ) -> Tuple[int, int]:
        """Burn ``shares`` and return (amount_a, amount_b) to ``to``."""
        self._ensure(deadline)
        pool = self.pool_manager.get_pool_for_pair(token_a, token_b, fee)
        reserve_a, reserve_b = pool.reserves_for(token_a)
        total = pool.total_supply
        if total > 0:
            if shares * reserve_a // total < amount_a_min:
                raise InsufficientAmount(f"Burn returns less than {amount_a_min} of {token_a}")
            if shares * reserve_b // total < amount_b_min:
                raise InsufficientAmount(f"Burn returns less than {amount_b_min} of {token_b}")

        amount0, amount1 = pool.burn(caller, shares, to)
        if token_a == pool.state.token0:
            return amount0, amount1
        return amount1, amount0

    def __repr__(self) -> str:
        return f"<Router pools={self.pool_manager.pool_count}>"


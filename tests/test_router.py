"""
Test suite for the Local Router

Covers:
  - add_liquidity: pool creation, optimal amounts, minimums, deadlines
  - Exact-in swaps, single and multi-hop, with all-or-nothing rollback
  - remove_liquidity minimums
  - quote_swap and the quote / slippage helpers
"""

from decimal import Decimal

import pytest

from aether.clock import ManualClock
from aether.constants import ZERO_ADDRESS
from aether.events import EventLog
from aether.exceptions import (
    DeadlineExpired,
    HookRejected,
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
from aether.exchange import Router, apply_slippage, quote
from aether.exchange.hooks import BaseHook, HookDispatcher, HookPoint, HookResult, Permissions
from aether.exchange.pool import PoolManager
from aether.tokens.ledger import TokenLedger

DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
ALICE = "0x00000000000000000000000000000000000a11ce"
BOB = "0x0000000000000000000000000000000000000b0b"

T0 = 1_700_000_000
DEADLINE = T0 + 600


class VetoSwapHook(BaseHook):
    def get_hook_permissions(self):
        return Permissions.of(HookPoint.BEFORE_SWAP)

    def before_swap(self, ctx):
        return HookResult.reject(HookPoint.BEFORE_SWAP, "paused pair")


def _router():
    ledger = TokenLedger()
    dispatcher = HookDispatcher()
    events = EventLog()
    clock = ManualClock(T0)
    manager = PoolManager(ledger, dispatcher, events, clock)
    router = Router(manager, clock)
    for holder in (ALICE, BOB):
        for token in (DAI, USDC, WETH):
            ledger.mint(token, holder, 10**9)
    return router, ledger, events, clock


def _seed(router, token_a, token_b, amount=10**6):
    return router.add_liquidity(ALICE, token_a, token_b, amount, amount, 0, 0, ALICE, DEADLINE)


class TestAddLiquidity:

    def test_creates_and_seeds_pool(self):
        router, ledger, events, _ = _router()
        assert _seed(router, USDC, WETH) == (10**6, 10**6, 999_000)
        pool = router.pool_manager.get_pool_for_pair(USDC, WETH)
        assert pool.fee == 3000
        assert pool.shares_of(ZERO_ADDRESS) == 1000
        assert events.last("PoolCreated").pool_id == pool.state.id
        assert ledger.balance_of(USDC, ALICE) == 10**9 - 10**6

    def test_initial_deposit_must_go_to_provider(self):
        router, *_ = _router()
        with pytest.raises(InvalidPath):
            router.add_liquidity(ALICE, USDC, WETH, 10**6, 10**6, 0, 0, BOB, DEADLINE)

    def test_optimal_amounts(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        assert router.add_liquidity(BOB, USDC, WETH, 1000, 2000, 0, 0, BOB, DEADLINE) == (1000, 1000, 1000)
        assert router.add_liquidity(BOB, USDC, WETH, 3000, 1000, 0, 0, BOB, DEADLINE) == (1000, 1000, 1000)

    def test_deposit_for_someone_else(self):
        router, *_ = _router()
        pool_shares = _seed(router, USDC, WETH)[2]
        router.add_liquidity(BOB, USDC, WETH, 1000, 1000, 0, 0, ALICE, DEADLINE)
        pool = router.pool_manager.get_pool_for_pair(USDC, WETH)
        assert pool.shares_of(ALICE) == pool_shares + 1000
        assert pool.shares_of(BOB) == 0

    def test_b_minimum(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(InsufficientAmount):
            router.add_liquidity(BOB, USDC, WETH, 1000, 2000, 0, 1500, BOB, DEADLINE)

    def test_a_minimum(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(InsufficientAmount):
            router.add_liquidity(BOB, USDC, WETH, 2000, 1000, 1500, 0, BOB, DEADLINE)

    def test_deadline(self):
        router, _, _, clock = _router()
        clock.advance(601)
        with pytest.raises(DeadlineExpired):
            _seed(router, USDC, WETH)
        assert router.pool_manager.pool_count == 0

    def test_deadline_is_inclusive(self):
        router, _, _, clock = _router()
        clock.set(DEADLINE)
        _seed(router, USDC, WETH)

    def test_zero_desired(self):
        router, *_ = _router()
        with pytest.raises(InsufficientAmount):
            router.add_liquidity(ALICE, USDC, WETH, 0, 10**6, 0, 0, ALICE, DEADLINE)


class TestSwapExactTokens:

    def test_single_hop(self):
        router, ledger, _, _ = _router()
        _seed(router, USDC, WETH)
        amounts = router.swap_exact_tokens_for_tokens(BOB, 1000, 990, [USDC, WETH], BOB, DEADLINE)
        assert amounts == [1000, 996]
        assert ledger.balance_of(WETH, BOB) == 10**9 + 996

    def test_multi_hop(self):
        router, ledger, _, _ = _router()
        _seed(router, USDC, WETH)
        _seed(router, WETH, DAI)
        amounts = router.swap_exact_tokens_for_tokens(BOB, 1000, 0, [USDC, WETH, DAI], ALICE, DEADLINE)
        assert amounts == [1000, 996, 992]
        assert router.get_amounts_out(1000, [USDC, WETH, DAI])[-1] < 992
        # the intermediate hop settles to the caller and is spent straight away
        assert ledger.balance_of(WETH, BOB) == 10**9
        assert ledger.balance_of(USDC, BOB) == 10**9 - 1000

    def test_get_amounts_out(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        _seed(router, WETH, DAI)
        assert router.get_amounts_out(1000, [USDC, WETH, DAI]) == [1000, 996, 992]

    def test_minimum_out_not_met(self):
        router, ledger, _, _ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(InsufficientOutputAmount):
            router.swap_exact_tokens_for_tokens(BOB, 1000, 997, [USDC, WETH], BOB, DEADLINE)
        assert ledger.balance_of(USDC, BOB) == 10**9

    def test_failing_second_hop_restores_first(self):
        router, ledger, _, _ = _router()
        _seed(router, USDC, WETH)
        veto = router.pool_manager.hooks.register(VetoSwapHook())
        gated = router.pool_manager.create_pool(WETH, DAI, 3000, hook_ids=(veto,))
        gated.add_initial_liquidity(10**6, 10**6, ALICE)
        first = router.pool_manager.get_pool_for_pair(USDC, WETH)

        with pytest.raises(HookRejected, match="paused pair"):
            router.swap_exact_tokens_for_tokens(BOB, 1000, 0, [USDC, WETH, DAI], BOB, DEADLINE)

        assert first.get_reserves() == (10**6, 10**6)
        assert ledger.balance_of(USDC, BOB) == 10**9
        assert ledger.balance_of(WETH, BOB) == 10**9
        assert ledger.balance_of(USDC, first.state.address) == 10**6

    def test_short_path(self):
        router, *_ = _router()
        with pytest.raises(InvalidPath):
            router.swap_exact_tokens_for_tokens(BOB, 1000, 0, [USDC], BOB, DEADLINE)

    def test_repeated_token(self):
        router, *_ = _router()
        with pytest.raises(InvalidPath):
            router.get_amounts_out(1000, [USDC, USDC])

    def test_missing_pool(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(PoolNotFound):
            router.swap_exact_tokens_for_tokens(BOB, 1000, 0, [USDC, DAI], BOB, DEADLINE)

    def test_zero_amount(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(InvalidAmountIn):
            router.swap_exact_tokens_for_tokens(BOB, 0, 0, [USDC, WETH], BOB, DEADLINE)

    def test_zero_recipient(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(ZeroAddress):
            router.swap_exact_tokens_for_tokens(BOB, 1000, 0, [USDC, WETH], ZERO_ADDRESS, DEADLINE)

    def test_expired(self):
        router, _, _, clock = _router()
        _seed(router, USDC, WETH)
        clock.advance(3600)
        with pytest.raises(DeadlineExpired):
            router.swap_exact_tokens_for_tokens(BOB, 1000, 0, [USDC, WETH], BOB, DEADLINE)

    def test_deepest_pool_is_used(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        router.add_liquidity(ALICE, USDC, WETH, 10**4, 10**4, 0, 0, ALICE, DEADLINE, fee=500)
        quoted = router.quote_swap(USDC, WETH, 1000)
        assert quoted.route[0].fee == 3000


class TestRemoveLiquidity:

    def test_remove(self):
        router, ledger, events, _ = _router()
        _seed(router, USDC, WETH)
        assert router.remove_liquidity(ALICE, WETH, USDC, 1000, 1000, 1000, BOB, DEADLINE) == (1000, 1000)
        assert ledger.balance_of(USDC, BOB) == 10**9 + 1000
        assert events.last("Burn").shares == 1000

    def test_minimum_checked_before_burn(self):
        router, ledger, events, _ = _router()
        _seed(router, USDC, WETH)
        with pytest.raises(InsufficientAmount):
            router.remove_liquidity(ALICE, USDC, WETH, 1000, 1001, 0, ALICE, DEADLINE)
        assert events.filter("Burn") == []
        assert router.pool_manager.get_pool_for_pair(USDC, WETH).shares_of(ALICE) == 999_000

    def test_unknown_pair(self):
        router, *_ = _router()
        with pytest.raises(PoolNotFound):
            router.remove_liquidity(ALICE, USDC, DAI, 1, 0, 0, ALICE, DEADLINE)


class TestQuotes:

    def test_quote_swap(self):
        router, *_ = _router()
        _seed(router, USDC, WETH)
        quoted = router.quote_swap(USDC, WETH, 1000, slippage_bps=50)
        assert quoted.amount_out == 996
        assert quoted.min_amount_out == 991
        assert quoted.price_impact == Decimal("0.1994")
        assert quoted.fee == 3
        assert quoted.fee_rate == 3000
        assert quoted.to_dict()["priceImpact"] == "0.1994"

    def test_quote_swap_is_read_only(self):
        router, ledger, events, _ = _router()
        _seed(router, USDC, WETH)
        before = len(events)
        router.quote_swap(USDC, WETH, 1000)
        assert len(events) == before
        assert router.pool_manager.get_pool_for_pair(USDC, WETH).get_reserves() == (10**6, 10**6)

    def test_quote_helper(self):
        assert quote(1000, 10**6, 2 * 10**6) == 2000
        with pytest.raises(ZeroAmount):
            quote(0, 1, 1)
        with pytest.raises(InsufficientLiquidity):
            quote(1, 0, 1)

    def test_apply_slippage(self):
        assert apply_slippage(1000, 50) == 995
        assert apply_slippage(1000, 0) == 1000
        with pytest.raises(InvalidPercentage):
            apply_slippage(1000, 10_001)

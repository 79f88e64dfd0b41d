"""
Test suite for the Hook Dispatcher and built-in hooks

Covers:
  - Registration, permissions, fail-closed permission queries
  - Dispatch acknowledgement, vetoes and hook failures
  - Fee overrides from before_swap
  - DynamicFeeHook, CircuitBreaker
"""

import pytest

from aether.clock import ManualClock
from aether.config import EngineConfig
from aether.engine import AetherEngine
from aether.events import EventLog
from aether.exceptions import (
    HookCallFailed,
    HookNotRegistered,
    HookRejected,
    InvalidFee,
    InvalidHookResponse,
)
from aether.exchange.hooks import (
    BaseHook,
    CircuitBreaker,
    HookContext,
    HookDispatcher,
    HookPoint,
    HookResult,
    Permissions,
)
from aether.exchange.pool import PoolManager
from aether.tokens.ledger import TokenLedger

DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
ALICE = "0x00000000000000000000000000000000000a11ce"
BOB = "0x0000000000000000000000000000000000000b0b"

T0 = 1_700_000_000


# ---------------------------------------------------------------------------
# Test hooks
# ---------------------------------------------------------------------------

class RecordingHook(BaseHook):
    def __init__(self, *points):
        self.points = points
        self.calls = []

    def get_hook_permissions(self):
        return Permissions.of(*self.points)

    def before_swap(self, ctx):
        self.calls.append(HookPoint.BEFORE_SWAP)
        return super().before_swap(ctx)

    def after_swap(self, ctx):
        self.calls.append(HookPoint.AFTER_SWAP)
        return super().after_swap(ctx)

    def after_modify_position(self, ctx):
        self.calls.append(HookPoint.AFTER_MODIFY_POSITION)
        return super().after_modify_position(ctx)


class VetoSwapHook(BaseHook):
    def get_hook_permissions(self):
        return Permissions.of(HookPoint.BEFORE_SWAP)

    def before_swap(self, ctx):
        return HookResult.reject(HookPoint.BEFORE_SWAP, "swaps disabled")


class WrongAckHook(BaseHook):
    def get_hook_permissions(self):
        return Permissions.of(HookPoint.BEFORE_SWAP)

    def before_swap(self, ctx):
        return HookResult.ok(HookPoint.AFTER_SWAP)


class RaisingHook(BaseHook):
    def get_hook_permissions(self):
        return Permissions.of(HookPoint.AFTER_SWAP)

    def after_swap(self, ctx):
        raise RuntimeError("boom")


class BrokenPermissionsHook(BaseHook):
    def get_hook_permissions(self):
        raise RuntimeError("cannot answer")

    def before_swap(self, ctx):
        raise AssertionError("must never be called")


class FeeOverrideHook(BaseHook):
    def __init__(self, fee):
        self.fee = fee

    def get_hook_permissions(self):
        return Permissions.of(HookPoint.BEFORE_SWAP)

    def before_swap(self, ctx):
        return HookResult.ok(HookPoint.BEFORE_SWAP, fee_override=self.fee)


def _pool_with(*hooks):
    ledger = TokenLedger()
    dispatcher = HookDispatcher()
    ids = tuple(dispatcher.register(h) for h in hooks)
    manager = PoolManager(ledger, dispatcher, EventLog(), ManualClock(T0))
    pool = manager.create_pool(USDC, WETH, 3000, hook_ids=ids)
    for holder in (ALICE, BOB):
        ledger.mint(USDC, holder, 10**9)
        ledger.mint(WETH, holder, 10**9)
    pool.add_initial_liquidity(10**6, 10**6, ALICE)
    return pool, ledger, dispatcher


def _pools_sharing(hook, reserves=(10**9, 2 * 10**9)):
    """USDC/WETH and DAI/USDC pools behind the same hook."""
    ledger = TokenLedger()
    dispatcher = HookDispatcher()
    hook_id = dispatcher.register(hook)
    manager = PoolManager(ledger, dispatcher, EventLog(), ManualClock(T0))
    for holder in (ALICE, BOB):
        for token in (DAI, USDC, WETH):
            ledger.mint(token, holder, 10**12)
    pools = []
    for token_a, token_b in ((USDC, WETH), (DAI, USDC)):
        pool = manager.create_pool(token_a, token_b, 3000, hook_ids=(hook_id,))
        pool.add_initial_liquidity(*reserves, ALICE)
        pools.append(pool)
    return pools


class TestRegistration:

    def test_ids_are_sequential(self):
        dispatcher = HookDispatcher()
        assert dispatcher.register(BaseHook()) == 0
        assert dispatcher.register(BaseHook()) == 1
        assert dispatcher.hook_count == 2

    def test_permissions_recorded(self):
        dispatcher = HookDispatcher()
        hook_id = dispatcher.register(RecordingHook(HookPoint.AFTER_SWAP))
        perms = dispatcher.permissions(hook_id)
        assert perms.after_swap
        assert not perms.before_swap

    def test_failed_permission_query_denies_everything(self):
        dispatcher = HookDispatcher()
        hook_id = dispatcher.register(BrokenPermissionsHook())
        assert dispatcher.permissions(hook_id) == Permissions()
        assert dispatcher.dispatch(hook_id, HookPoint.BEFORE_SWAP, HookContext()) is None

    def test_malformed_permissions_deny_everything(self):
        class Odd(BaseHook):
            def get_hook_permissions(self):
                return {"before_swap": True}

        dispatcher = HookDispatcher()
        hook_id = dispatcher.register(Odd())
        assert dispatcher.permissions(hook_id) == Permissions()

    def test_unknown_id(self):
        dispatcher = HookDispatcher()
        with pytest.raises(HookNotRegistered):
            dispatcher.dispatch(3, HookPoint.BEFORE_SWAP, HookContext())

    def test_attach_unknown_hook(self):
        pool, _, _ = _pool_with()
        with pytest.raises(HookNotRegistered):
            pool.attach_hook(7)

    def test_combined_permissions(self):
        dispatcher = HookDispatcher()
        a = dispatcher.register(RecordingHook(HookPoint.BEFORE_SWAP))
        b = dispatcher.register(RecordingHook(HookPoint.AFTER_DONATE))
        merged = dispatcher.combined_permissions([a, b])
        assert merged.before_swap and merged.after_donate
        assert not merged.after_swap

    def test_permissions_all(self):
        assert all(Permissions.all().to_dict().values())


class TestDispatch:

    def test_only_permitted_points_are_called(self):
        hook = RecordingHook(HookPoint.AFTER_SWAP)
        pool, _, _ = _pool_with(hook)
        pool.swap(1000, USDC, BOB)
        assert hook.calls == [HookPoint.AFTER_SWAP]

    def test_position_points(self):
        hook = RecordingHook(HookPoint.AFTER_MODIFY_POSITION)
        pool, _, _ = _pool_with(hook)
        assert hook.calls == [HookPoint.AFTER_MODIFY_POSITION]
        pool.burn(ALICE, 1000)
        assert hook.calls.count(HookPoint.AFTER_MODIFY_POSITION) == 2

    def test_veto_aborts_swap(self):
        pool, ledger, _ = _pool_with(VetoSwapHook())
        bob_usdc = ledger.balance_of(USDC, BOB)
        with pytest.raises(HookRejected, match="swaps disabled"):
            pool.swap(1000, USDC, BOB)
        assert pool.get_reserves() == (10**6, 10**6)
        assert ledger.balance_of(USDC, BOB) == bob_usdc

    def test_wrong_acknowledgement(self):
        pool, _, _ = _pool_with(WrongAckHook())
        with pytest.raises(InvalidHookResponse):
            pool.swap(1000, USDC, BOB)

    def test_raising_hook_rolls_back(self):
        pool, ledger, _ = _pool_with(RaisingHook())
        bob_weth = ledger.balance_of(WETH, BOB)
        with pytest.raises(HookCallFailed, match="boom"):
            pool.swap(1000, USDC, BOB)
        assert pool.get_reserves() == (10**6, 10**6)
        assert ledger.balance_of(WETH, BOB) == bob_weth

    def test_fee_override(self):
        pool, _, _ = _pool_with(FeeOverrideHook(10_000))
        assert pool.swap(1000, USDC, BOB) == 989
        assert pool.fee == 3000

    def test_invalid_fee_override(self):
        pool, _, _ = _pool_with(FeeOverrideHook(123))
        with pytest.raises(InvalidFee, match="override"):
            pool.swap(1000, USDC, BOB)

    def test_last_override_wins(self):
        pool, _, _ = _pool_with(FeeOverrideHook(10_000), FeeOverrideHook(3000))
        assert pool.swap(1000, USDC, BOB) == 996


class TestCircuitBreaker:

    def test_manual_trip_and_reset(self):
        breaker = CircuitBreaker()
        pool, _, _ = _pool_with(breaker)
        breaker.trip("maintenance")
        with pytest.raises(HookRejected, match="maintenance"):
            pool.swap(1000, USDC, BOB)
        with pytest.raises(HookRejected):
            pool.add_liquidity(BOB, 1000, 1000)
        breaker.reset()
        assert pool.swap(1000, USDC, BOB) == 996

    def test_volume_limit(self):
        breaker = CircuitBreaker(max_volume_per_block=1500)
        pool, _, _ = _pool_with(breaker)
        pool.swap(1000, USDC, BOB)
        with pytest.raises(HookRejected, match="volume"):
            pool.swap(1000, USDC, BOB)
        assert breaker.is_tripped

    def test_new_block_resets_volume(self):
        breaker = CircuitBreaker(max_volume_per_block=1500)
        pool, _, _ = _pool_with(breaker)
        pool.swap(1000, USDC, BOB)
        breaker.new_block()
        pool.swap(1000, USDC, BOB)
        assert not breaker.is_tripped

    def test_price_deviation_trips_after_settling(self):
        breaker = CircuitBreaker(max_price_deviation_bps=100)
        pool, _, _ = _pool_with(breaker)
        pool.swap(1000, USDC, BOB)
        pool.swap(200_000, USDC, BOB)
        assert breaker.is_tripped
        with pytest.raises(HookRejected):
            pool.swap(1000, USDC, BOB)

    def test_swaps_in_both_directions(self):
        breaker = CircuitBreaker()
        pool, _ = _pools_sharing(breaker)
        pool.swap(1000, pool.state.token0, BOB)
        pool.swap(1000, pool.state.token1, BOB)
        assert not breaker.is_tripped

    def test_trip_is_scoped_to_the_pool(self):
        breaker = CircuitBreaker(max_price_deviation_bps=100)
        moved, other = _pools_sharing(breaker)
        moved.swap(10**8, moved.state.token0, BOB)

        assert breaker.is_pool_tripped(moved.state.id)
        assert not breaker.is_pool_tripped(other.state.id)
        with pytest.raises(HookRejected, match="Price deviation"):
            moved.swap(1000, moved.state.token0, BOB)
        assert other.swap(1000, other.state.token0, BOB) > 0

        breaker.reset(moved.state.id)
        assert not breaker.is_tripped

    def test_volume_is_counted_per_pool_and_token(self):
        breaker = CircuitBreaker(max_volume_per_block=1500)
        first, second = _pools_sharing(breaker)
        first.swap(1000, first.state.token0, BOB)
        first.swap(1000, first.state.token1, BOB)
        second.swap(1000, second.state.token0, BOB)
        assert not breaker.is_tripped
        with pytest.raises(HookRejected, match="volume"):
            first.swap(1000, first.state.token0, BOB)
        assert not breaker.is_pool_tripped(second.state.id)

    def test_global_trip_halts_every_pool(self):
        breaker = CircuitBreaker()
        first, second = _pools_sharing(breaker)
        breaker.trip("bridge exploit")
        for pool in (first, second):
            with pytest.raises(HookRejected, match="bridge exploit"):
                pool.swap(1000, pool.state.token0, BOB)


class TestDynamicFeeHook:

    def test_fee_follows_metrics(self):
        engine = AetherEngine(EngineConfig(), clock=ManualClock(T0))
        owner = engine.governance.owner
        engine.ledger.mint(USDC, ALICE, 10**9)
        engine.ledger.mint(WETH, ALICE, 10**9)
        pool = engine.create_pool(USDC, WETH, 3000, dynamic_fee=True)
        pool.add_initial_liquidity(10**6, 10**6, ALICE)

        assert engine.governance.calculate_fee(pool.state.id, 1000) == 3000
        assert pool.swap(1000, USDC, ALICE) == 996
        engine.governance.set_pool_metrics(owner, pool.state.id, 10_000, 0, 0)
        assert engine.governance.calculate_fee(pool.state.id, 1000) == 4500

    def test_dynamic_fee_applied_to_swap(self):
        engine = AetherEngine(EngineConfig(), clock=ManualClock(T0))
        owner = engine.governance.owner
        engine.ledger.mint(USDC, ALICE, 10**9)
        engine.ledger.mint(WETH, ALICE, 10**9)
        pool = engine.create_pool(USDC, WETH, 3000, dynamic_fee=True)
        pool.add_initial_liquidity(10**6, 10**6, ALICE)
        engine.governance.set_pool_metrics(owner, pool.state.id, 10_000, 0, 0)
        assert pool.swap(1000, USDC, ALICE) == 994
        assert engine.events.last("Swap").fee == 4

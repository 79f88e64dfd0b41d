"""
Test suite for the engine context and its shared infrastructure

Covers:
  - EventLog subscribe / filter / last and event serialization
  - TokenLedger transfers, callbacks and atomic rollback
  - ManualClock
  - AetherEngine wiring: fee tier gating, governance fee sync, state root
"""

import logging

import pytest

from aether.clock import ManualClock
from aether.config import EngineConfig
from aether.engine import AetherEngine
from aether.events import EventLog, FeeTierRemoved, Swap
from aether.exceptions import (
    InsufficientBalance,
    InvalidFee,
    PoolNotFound,
    ZeroAddress,
    ZeroAmount,
)
from aether.logger import set_log_level
from aether.tokens.ledger import TokenLedger

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
ALICE = "0x00000000000000000000000000000000000a11ce"
BOB = "0x0000000000000000000000000000000000000b0b"

T0 = 1_700_000_000


def _swap_event(pool_id="p1", amount_out=996):
    return Swap(pool_id, ALICE, BOB, USDC, WETH, 1000, amount_out, 3, timestamp=T0)


def _engine():
    engine = AetherEngine(EngineConfig(), clock=ManualClock(T0))
    engine.ledger.mint(USDC, ALICE, 10**12)
    engine.ledger.mint(WETH, ALICE, 10**12)
    return engine


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestEventLog:

    def test_subscribe_and_unsubscribe(self):
        log = EventLog()
        seen = []
        unsubscribe = log.subscribe(seen.append)
        log.emit(_swap_event())
        unsubscribe()
        log.emit(_swap_event())
        assert len(seen) == 1
        assert len(log) == 2

    def test_filter_and_last(self):
        log = EventLog()
        log.emit(_swap_event("p1"))
        log.emit(FeeTierRemoved(500))
        log.emit(_swap_event("p2", 990))
        assert len(log.filter("Swap")) == 2
        assert log.filter("Swap", pool_id="p2")[0].amount_out == 990
        assert log.last().name == "Swap"
        assert log.last("Swap").pool_id == "p2"
        assert log.last("Donate") is None

    def test_subscriber_errors_propagate(self):
        log = EventLog()

        def explode(event):
            raise RuntimeError("subscriber failed")

        log.subscribe(explode)
        with pytest.raises(RuntimeError):
            log.emit(_swap_event())

    def test_to_dict(self):
        data = _swap_event().to_dict()
        assert data["event"] == "Swap"
        assert data["poolId"] == "p1"
        assert data["amountOut"] == 996
        assert data["tokenIn"] == USDC


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class TestTokenLedger:

    def test_transfer(self):
        ledger = TokenLedger()
        ledger.mint(USDC, ALICE, 100)
        ledger.transfer(USDC, ALICE, BOB, 40)
        assert ledger.balance_of(USDC, ALICE) == 60
        assert ledger.balance_of(USDC, BOB) == 40
        assert ledger.total_supply(USDC) == 100

    def test_transfer_checks(self):
        ledger = TokenLedger()
        ledger.mint(USDC, ALICE, 100)
        with pytest.raises(InsufficientBalance):
            ledger.transfer(USDC, ALICE, BOB, 101)
        with pytest.raises(ZeroAddress):
            ledger.transfer(USDC, ALICE, "0x" + "0" * 40, 1)
        with pytest.raises(ZeroAmount):
            ledger.mint(USDC, ALICE, 0)
        assert ledger.balance_of(USDC, ALICE) == 100

    def test_callbacks(self):
        ledger = TokenLedger()
        seen = []
        remove = ledger.on_transfer(seen.append)
        ledger.mint(USDC, ALICE, 10)
        ledger.transfer(USDC, ALICE, BOB, 5)
        remove()
        ledger.transfer(USDC, ALICE, BOB, 5)
        assert [(t.sender, t.recipient, t.amount) for t in seen] == [(ALICE, BOB, 5)]

    def test_atomic_rollback(self):
        ledger = TokenLedger()
        ledger.mint(USDC, ALICE, 100)
        with pytest.raises(InsufficientBalance):
            with ledger.atomic():
                ledger.transfer(USDC, ALICE, BOB, 60)
                ledger.mint(WETH, BOB, 7)
                ledger.transfer(USDC, ALICE, BOB, 60)
        assert ledger.balance_of(USDC, ALICE) == 100
        assert ledger.balance_of(USDC, BOB) == 0
        assert ledger.total_supply(WETH) == 0

    def test_nested_rollback_is_scoped(self):
        ledger = TokenLedger()
        ledger.mint(USDC, ALICE, 100)
        with ledger.atomic():
            ledger.transfer(USDC, ALICE, BOB, 10)
            try:
                with ledger.atomic():
                    ledger.transfer(USDC, ALICE, BOB, 20)
                    raise RuntimeError("inner")
            except RuntimeError:
                pass
        assert ledger.balance_of(USDC, BOB) == 10


class TestManualClock:

    def test_advance_and_set(self):
        clock = ManualClock(T0)
        assert clock.advance(5) == T0 + 5
        assert clock.set(T0 + 10) == T0 + 10
        assert clock.now() == T0 + 10

    def test_never_goes_backwards(self):
        clock = ManualClock(T0)
        with pytest.raises(ValueError):
            clock.advance(-1)
        with pytest.raises(ValueError):
            clock.set(T0 - 1)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TestEngine:

    def test_pool_needs_active_tier(self):
        engine = _engine()
        with pytest.raises(InvalidFee):
            engine.create_pool(USDC, WETH, 2500)
        engine.governance.add_fee_tier(engine.governance.owner, 2500, 50)
        pool = engine.create_pool(USDC, WETH, 2500)
        assert engine.governance.get_pool_fee(pool.state.id) == 2500

    def test_deactivated_tier(self):
        engine = _engine()
        engine.governance.update_fee_tier(engine.governance.owner, 500, active=False)
        with pytest.raises(InvalidFee):
            engine.create_pool(USDC, WETH, 500)

    def test_governance_fee_reaches_pool(self):
        engine = _engine()
        owner = engine.governance.owner
        pool = engine.create_pool(USDC, WETH, 3000)
        engine.governance.set_pool_fee(owner, pool.state.id, 500)
        assert pool.fee == 500

        engine.close()
        engine.governance.set_pool_fee(owner, pool.state.id, 10000)
        assert pool.fee == 500

    def test_unknown_pool(self):
        engine = _engine()
        with pytest.raises(PoolNotFound):
            engine.get_pool("ffffffffffffffff")

    def test_state_root_is_deterministic(self):
        roots = []
        for _ in range(2):
            engine = _engine()
            pool = engine.create_pool(USDC, WETH, 3000)
            pool.add_initial_liquidity(10**6, 10**6, ALICE)
            roots.append(engine.compute_state_root())
        assert roots[0] == roots[1]
        assert len(roots[0]) == 64

    def test_state_root_tracks_swaps(self):
        engine = _engine()
        pool = engine.create_pool(USDC, WETH, 3000)
        pool.add_initial_liquidity(10**6, 10**6, ALICE)
        before = engine.compute_state_root()
        pool.swap(1000, USDC, ALICE)
        assert engine.compute_state_root() != before

    def test_stats(self):
        engine = _engine()
        engine.create_pool(USDC, WETH, 3000)
        stats = engine.get_stats()
        assert stats["chainId"] == 1
        assert stats["pools"] == 1
        assert stats["hooks"] == 3
        assert stats["feeTiers"] == 3
        assert stats["relays"] == ["layerzero", "hyperlane"]
        assert stats["routes"] == 0

    def test_log_level_is_applied(self):
        root = logging.getLogger()
        previous = logging.getLevelName(root.level)
        try:
            AetherEngine(EngineConfig.from_dict({"engine": {"log_level": "DEBUG"}}), clock=ManualClock(T0))
            assert root.level == logging.DEBUG
            AetherEngine(EngineConfig.from_dict({"engine": {"log_level": "WARNING"}}), clock=ManualClock(T0))
            assert root.level == logging.WARNING
        finally:
            set_log_level(previous)

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="LOUD"):
            set_log_level("LOUD")

    def test_independent_engines(self):
        a, b = _engine(), _engine()
        a.create_pool(USDC, WETH, 3000)
        assert a.pool_count == 1
        assert b.pool_count == 0

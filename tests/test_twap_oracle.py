"""
Test suite for the TWAP Oracle

Covers:
  - Running cumulative price and arithmetic TWAP
  - Same-second updates, monotonic timestamps
  - Ring overwrite and missing observations
  - Staleness
  - OracleHook wiring through a live pool
"""

import pytest

from aether.clock import ManualClock
from aether.config import EngineConfig
from aether.constants import PRICE_PRECISION
from aether.engine import AetherEngine
from aether.exceptions import InvalidPrice, InvalidTimestamp, ObservationNotFound
from aether.exchange.oracle import TWAPOracle

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
ALICE = "0x00000000000000000000000000000000000a11ce"

T0 = 1_700_000_000
P = 2_000 * PRICE_PRECISION


class TestTWAPBasics:

    def test_constant_price_for_a_window(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock, window=3600)
        oracle.update(P)
        clock.advance(3600)
        assert oracle.get_twap() == P

    def test_constant_price_updated_every_second(self):
        oracle = TWAPOracle(clock=ManualClock(T0), window=3600)
        for t in range(T0, T0 + 3601):
            oracle.update(P, t)
        assert oracle.observation_count == 3601
        assert oracle.get_twap(now=T0 + 3600) == P

    def test_two_prices_average(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock, window=3600)
        oracle.update(100)
        clock.advance(1800)
        oracle.update(300)
        clock.advance(1800)
        assert oracle.get_twap() == 200

    def test_time_weighting(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock, window=100)
        oracle.update(1000)
        clock.advance(90)
        oracle.update(2000)
        clock.advance(10)
        # 90 s at 1000, 10 s at 2000
        assert oracle.get_twap() == 1100

    def test_cumulative_is_running_integral(self):
        oracle = TWAPOracle(clock=ManualClock(T0))
        oracle.update(10, T0)
        oracle.update(20, T0 + 5)
        obs = oracle.update(30, T0 + 8)
        assert obs.cumulative_price == 10 * 5 + 20 * 3
        assert oracle.cumulative_at(T0 + 10) == 110 + 30 * 2

    def test_explicit_window(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock)
        oracle.update(500)
        clock.advance(60)
        assert oracle.get_twap(window=60) == 500

    def test_non_positive_window(self):
        oracle = TWAPOracle(clock=ManualClock(T0))
        oracle.update(1)
        with pytest.raises(ValueError):
            oracle.get_twap(window=0)


class TestTWAPUpdates:

    def test_same_second_replaces_price(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock, window=100)
        oracle.update(100)
        oracle.update(400)
        assert oracle.observation_count == 1
        assert oracle.observation(T0).cumulative_price == 0
        clock.advance(100)
        assert oracle.get_twap() == 400

    def test_timestamp_cannot_go_backwards(self):
        oracle = TWAPOracle(clock=ManualClock(T0))
        oracle.update(100, T0 + 10)
        with pytest.raises(InvalidTimestamp):
            oracle.update(100, T0 + 9)

    def test_price_must_be_positive(self):
        oracle = TWAPOracle(clock=ManualClock(T0))
        with pytest.raises(InvalidPrice):
            oracle.update(0)

    def test_latest_price(self):
        oracle = TWAPOracle(clock=ManualClock(T0))
        assert oracle.latest_price is None
        oracle.update(42)
        assert oracle.latest_price == 42
        assert oracle.last_timestamp == T0


class TestTWAPFailures:

    def test_empty_oracle(self):
        oracle = TWAPOracle(clock=ManualClock(T0))
        with pytest.raises(ObservationNotFound):
            oracle.get_twap()

    def test_window_start_before_first_observation(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock, window=3600)
        oracle.update(P)
        clock.advance(100)
        oracle.update(P)
        with pytest.raises(ObservationNotFound):
            oracle.get_twap()

    def test_overwritten_slot(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock, slots=10, window=10)
        for _ in range(11):
            oracle.update(7)
            clock.advance(1)
        # T0 and T0 + 10 share a slot
        assert oracle.observation(T0) is None
        assert oracle.observation(T0 + 10) is not None
        with pytest.raises(ObservationNotFound):
            oracle.cumulative_at(T0)

    def test_needs_a_slot(self):
        with pytest.raises(ValueError):
            TWAPOracle(slots=0)


class TestTWAPHealth:

    def test_staleness(self):
        clock = ManualClock(T0)
        oracle = TWAPOracle(clock=clock)
        assert oracle.is_stale()
        oracle.update(1)
        assert not oracle.is_stale()
        clock.advance(301)
        assert oracle.is_stale()
        assert oracle.age() == 301


class TestOracleHook:

    def _engine(self):
        clock = ManualClock(T0)
        engine = AetherEngine(EngineConfig(), clock=clock)
        engine.ledger.mint(USDC, ALICE, 10**12)
        engine.ledger.mint(WETH, ALICE, 10**12)
        return engine, clock

    def test_pool_feeds_oracle(self):
        engine, clock = self._engine()
        pool = engine.create_pool(USDC, WETH, 3000)
        pool.add_initial_liquidity(10**6, 2 * 10**6, ALICE)
        clock.advance(3600)
        assert engine.get_twap(pool.state.id) == 2 * PRICE_PRECISION

    def test_swap_moves_twap(self):
        engine, clock = self._engine()
        pool = engine.create_pool(USDC, WETH, 3000)
        pool.add_initial_liquidity(10**6, 10**6, ALICE)
        clock.advance(1800)
        pool.swap(100_000, USDC, ALICE)
        spot = pool.price
        clock.advance(1800)
        assert engine.get_twap(pool.state.id) == (PRICE_PRECISION + spot) // 2

    def test_oracle_knows_its_pool(self):
        engine, _ = self._engine()
        pool = engine.create_pool(USDC, WETH, 3000)
        assert engine.oracle(pool.state.id).pool_id == pool.state.id

    def test_pool_without_oracle(self):
        engine, _ = self._engine()
        pool = engine.create_pool(USDC, WETH, 3000, oracle=False)
        pool.add_initial_liquidity(10**6, 10**6, ALICE)
        assert engine.oracle(pool.state.id).observation_count == 0

"""
Tests for the enhanced arbitrage detector.
"""

import decimal
import logging
import threading
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from prometheus_client import CollectorRegistry

from dex.arbitrage_detector import EnhancedArbitrageDetector, classify_confidence
from dex.fixed_point import U128_MAX
from dex.liquidity_monitor import LiquidityMonitor
from dex.opportunity_math import evaluate_trade_size
from dex.pool_cache import PoolStateCache
from dex.types import (
    ConfidenceLevel,
    DetectorSettings,
    DexKind,
    MonitoredPair,
    PoolState,
)
from pool_arbitrage.exceptions import InvalidConfiguration
from pool_arbitrage.metrics import ScannerMetrics


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class CancelAfter:
    """Cancellation signal that trips after n checks."""

    def __init__(self, n):
        self.remaining = n

    def is_set(self):
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


def cp_pool(address, reserve_a, reserve_b, last_update=1000.0, token_a="SOL", token_b="USDC"):
    return PoolState(
        address=address,
        dex_kind=DexKind.CONSTANT_PRODUCT,
        token_a=token_a,
        token_b=token_b,
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        fee_rate_bps=25,
        last_update=last_update,
    )


def sol_usdc(name="SOL/USDC", min_size="1", max_size="50", **kwargs):
    return MonitoredPair(
        name=name,
        token_a="SOL",
        token_b="USDC",
        min_trade_size=Decimal(min_size),
        max_trade_size=Decimal(max_size),
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return ScannerMetrics(CollectorRegistry())


@pytest.fixture
def monitor(clock, metrics):
    return LiquidityMonitor(PoolStateCache(), max_pool_age=30.0, clock=clock, metrics=metrics)


@pytest.fixture
def detector(monitor):
    return EnhancedArbitrageDetector(monitor, [sol_usdc()])


def load(monitor, *pools):
    for pool in pools:
        monitor.update_pool(pool)


class TestClassifyConfidence:
    @pytest.mark.parametrize(
        "prob,net,expected",
        [
            (0.81, 1.01, ConfidenceLevel.VERY_HIGH),
            (0.8, 1.0, ConfidenceLevel.HIGH),
            (0.9, 1.0, ConfidenceLevel.HIGH),
            (0.61, 0.51, ConfidenceLevel.HIGH),
            (0.6, 0.5, ConfidenceLevel.MEDIUM),
            (0.41, 0.31, ConfidenceLevel.MEDIUM),
            (0.4, 0.3, ConfidenceLevel.LOW),
            (0.9, 0.1, ConfidenceLevel.LOW),
            (0.21, -1.0, ConfidenceLevel.LOW),
            (0.2, 5.0, ConfidenceLevel.VERY_LOW),
            (0.0, 0.0, ConfidenceLevel.VERY_LOW),
        ],
    )
    def test_boundaries_are_strict(self, prob, net, expected):
        assert classify_confidence(prob, Decimal(str(net))) is expected


RANK = {
    ConfidenceLevel.VERY_LOW: 0,
    ConfidenceLevel.LOW: 1,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.HIGH: 3,
    ConfidenceLevel.VERY_HIGH: 4,
}


@given(
    prob=st.floats(min_value=0, max_value=1),
    net=st.floats(min_value=-5, max_value=5),
    bump_prob=st.floats(min_value=0, max_value=0.5),
    bump_net=st.floats(min_value=0, max_value=2),
)
def test_confidence_never_drops_when_inputs_improve(prob, net, bump_prob, bump_net):
    better = classify_confidence(min(prob + bump_prob, 1.0), net + bump_net)
    assert RANK[better] >= RANK[classify_confidence(prob, net)]


class TestScan:
    def test_simple_two_pool_arbitrage(self, monitor, detector, metrics):
        """Pool B prices SOL 1.5% above pool A: buy on A, sell on B."""
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))

        opportunities = detector.scan_opportunities()

        assert len(opportunities) == 1
        opp = opportunities[0]
        assert opp.buy_pool == "A"
        assert opp.sell_pool == "B"
        assert opp.buy_price == Decimal("100")
        assert opp.sell_price == Decimal("101.5")
        assert opp.spread_pct == Decimal("1.5")
        assert opp.optimal_trade_size == Decimal("1")
        assert Decimal("1") <= opp.optimal_trade_size <= Decimal("50")
        assert opp.net_profit > 0
        assert opp.net_profit_pct == pytest.approx(Decimal("0.5788"), abs=Decimal("0.001"))
        assert opp.combined_execution_prob >= 0.3
        assert opp.combined_execution_prob == pytest.approx(
            opp.buy_execution_prob * opp.sell_execution_prob
        )
        assert opp.expected_value == pytest.approx(
            opp.net_profit * Decimal(str(opp.combined_execution_prob))
        )
        assert opp.confidence_level is ConfidenceLevel.HIGH
        assert opp.timestamp == 1000.0

        assert detector.last_opportunities == opportunities
        assert metrics.registry.get_sample_value("pool_arbitrage_scans_total") == 1.0
        assert metrics.registry.get_sample_value(
            "pool_arbitrage_opportunities_found_total",
            {"pair": "SOL/USDC", "confidence": "High"},
        ) == 1.0

    def test_breakdown_is_consistent(self, monitor, detector):
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
        (opp,) = detector.scan_opportunities()

        assert opp.notional == opp.optimal_trade_size * opp.buy_price
        assert opp.total_fees == opp.flash_loan_fee + opp.swap_fees
        assert opp.net_profit == opp.gross_profit - opp.total_fees - opp.gas_cost
        assert opp.swap_fees == opp.notional * Decimal("0.005")
        assert opp.flash_loan_fee == opp.notional * Decimal("0.0009")
        assert 0 < opp.buy_impact < Decimal("0.01")
        assert 0 < opp.sell_impact < Decimal("0.01")

    def test_thin_pool_is_not_reported(self, monitor, detector):
        """Same spread, but the expensive pool is too shallow to sell into."""
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 10, 1015))

        opportunities = detector.scan_opportunities()

        assert all(o.combined_execution_prob < 0.3 for o in opportunities)
        assert opportunities == []

    def test_unenriched_pool_is_skipped(self, monitor, detector, metrics):
        zero_liquidity = PoolState(
            address="C",
            dex_kind=DexKind.CONCENTRATED_LIQUIDITY,
            token_a="SOL",
            token_b="USDC",
            liquidity=0,
            sqrt_price_x64=10 << 64,
            last_update=1000.0,
        )
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500), zero_liquidity)

        opportunities = detector.scan_opportunities()

        assert [(o.buy_pool, o.sell_pool) for o in opportunities] == [("A", "B")]
        assert metrics.registry.get_sample_value(
            "pool_arbitrage_samples_skipped_total", {"reason": "insufficient_liquidity"}
        ) >= 1.0

    def test_overflowing_pool_is_skipped_with_warning(self, monitor, detector, metrics, caplog):
        overflow = PoolState(
            address="X",
            dex_kind=DexKind.CONCENTRATED_LIQUIDITY,
            token_a="SOL",
            token_b="USDC",
            liquidity=U128_MAX,
            sqrt_price_x64=int(Decimal("10.1") * (1 << 64)),
            last_update=1000.0,
        )
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500), overflow)

        with caplog.at_level(logging.WARNING, logger="dex.arbitrage_detector"):
            opportunities = detector.scan_opportunities()

        assert all("X" not in (o.buy_pool, o.sell_pool) for o in opportunities)
        assert len(opportunities) == 1
        assert any("overflow" in r.getMessage() for r in caplog.records)
        assert metrics.registry.get_sample_value(
            "pool_arbitrage_samples_skipped_total", {"reason": "arithmetic_overflow"}
        ) >= 1.0

    def test_reversed_token_order(self, monitor, detector):
        """A pool listing USDC/SOL is oriented before comparison."""
        load(
            monitor,
            cp_pool("A", 1000, 100000),
            cp_pool("B", 101500, 1000, token_a="USDC", token_b="SOL"),
        )

        (opp,) = detector.scan_opportunities()

        assert (opp.buy_pool, opp.sell_pool) == ("A", "B")
        assert opp.sell_price == pytest.approx(Decimal("101.5"))
        assert opp.optimal_trade_size == Decimal("1")
        assert opp.net_profit_pct == pytest.approx(Decimal("0.5788"), abs=Decimal("0.001"))

    def test_identical_prices_yield_nothing(self, monitor, detector):
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 2000, 200000))
        assert detector.scan_opportunities() == []

    def test_single_pool_yields_nothing(self, monitor, detector):
        load(monitor, cp_pool("A", 1000, 100000))
        assert detector.scan_opportunities() == []

    def test_opportunities_sorted_by_score(self, monitor):
        detector = EnhancedArbitrageDetector(
            monitor, [sol_usdc()], DetectorSettings(ev_full_scale=Decimal("1"))
        )
        load(
            monitor,
            cp_pool("A", 1000, 100000),
            cp_pool("B", 1000, 101500),
            cp_pool("C", 1000, 102000),
        )

        opportunities = detector.scan_opportunities()

        assert [(o.buy_pool, o.sell_pool) for o in opportunities] == [("A", "C"), ("A", "B")]
        scores = [o.ev_score for o in opportunities]
        assert scores == sorted(scores, reverse=True)

    def test_max_opportunities(self, monitor):
        detector = EnhancedArbitrageDetector(
            monitor, [sol_usdc()], DetectorSettings(max_opportunities=1)
        )
        load(
            monitor,
            cp_pool("A", 1000, 100000),
            cp_pool("B", 1000, 101500),
            cp_pool("C", 1000, 102000),
        )
        (opp,) = detector.scan_opportunities()
        assert (opp.buy_pool, opp.sell_pool) == ("A", "C")

    def test_allowlist_restricts_pools(self, monitor):
        pair = sol_usdc(pool_allowlist=frozenset({"A", "B"}))
        detector = EnhancedArbitrageDetector(monitor, [pair])
        load(
            monitor,
            cp_pool("A", 1000, 100000),
            cp_pool("B", 1000, 101500),
            cp_pool("C", 1000, 102000),
        )
        opportunities = detector.scan_opportunities()
        assert [(o.buy_pool, o.sell_pool) for o in opportunities] == [("A", "B")]

    def test_thresholds_filter_results(self, monitor):
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
        strict_profit = EnhancedArbitrageDetector(
            monitor, [sol_usdc()], DetectorSettings(min_net_profit_pct=Decimal("1"))
        )
        strict_prob = EnhancedArbitrageDetector(
            monitor, [sol_usdc()], DetectorSettings(min_execution_prob=0.95)
        )
        assert strict_profit.scan_opportunities() == []
        assert strict_prob.scan_opportunities() == []


class TestGridSearch:
    def test_explicit_trade_sizes_choose_max_ev(self, monitor):
        """The reported size is the sample with the highest expected value."""
        sizes = tuple(Decimal(s) for s in ("1", "10", "20", "30", "50"))
        pair = sol_usdc(trade_sizes=sizes)
        settings = DetectorSettings()
        detector = EnhancedArbitrageDetector(monitor, [pair], settings)
        pool_a = cp_pool("A", 10000, 1000000)
        pool_b = cp_pool("B", 10000, 1015000)
        load(monitor, pool_a, pool_b)

        (opp,) = detector.scan_opportunities()

        expected = {}
        for size in sizes:
            buy_input = size * Decimal("100")
            evaluation = evaluate_trade_size(
                trade_size=size,
                buy_price=Decimal("100"),
                sell_price=Decimal("101.5"),
                buy_impact=monitor.price_impact(pool_a, buy_input, is_a_to_b=False),
                sell_impact=monitor.price_impact(pool_b, size, is_a_to_b=True),
                buy_fee_bps=25,
                sell_fee_bps=25,
                buy_prob=monitor.execution_probability(pool_a, buy_input, is_a_to_b=False),
                sell_prob=monitor.execution_probability(pool_b, size, is_a_to_b=True),
                settings=settings,
            )
            expected[size] = evaluation.expected_value

        best_size = max(expected, key=expected.get)
        assert best_size == Decimal("20")
        assert opp.optimal_trade_size == best_size
        assert opp.expected_value == expected[best_size]

    def test_default_grid_has_twenty_samples(self, detector):
        grid = detector.trade_sizes(detector.pairs[0])
        assert len(grid) == 20
        assert grid[0] == Decimal("1")
        assert grid[-1] == Decimal("50")

    def test_log_grid(self, monitor):
        detector = EnhancedArbitrageDetector(
            monitor,
            [sol_usdc(min_size="1", max_size="1000")],
            DetectorSettings(trade_size_samples=4, grid_spacing="log"),
        )
        grid = detector.trade_sizes(detector.pairs[0])
        assert [float(s) for s in grid] == pytest.approx([1, 10, 100, 1000])

    def test_no_positive_sample_returns_none(self, monitor, detector):
        pool_a = cp_pool("A", 1000, 100000)
        pool_b = cp_pool("B", 1000, 100100)
        load(monitor, pool_a, pool_b)
        assert detector.evaluate_opportunity(pool_a, pool_b, detector.pairs[0]) is None


@settings(max_examples=30, deadline=None)
@given(
    spreads=st.lists(st.integers(min_value=0, max_value=400), min_size=2, max_size=4),
    depth=st.integers(min_value=50, max_value=5000),
)
def test_every_result_passes_filters(spreads, depth):
    clock = FakeClock()
    monitor = LiquidityMonitor(PoolStateCache(), max_pool_age=30.0, clock=clock)
    pair = sol_usdc(max_size="20")
    detector = EnhancedArbitrageDetector(monitor, [pair], DetectorSettings(trade_size_samples=5))
    for i, bps in enumerate(spreads):
        monitor.update_pool(cp_pool(f"P{i}", depth, depth * (10000 + bps) // 100))

    opportunities = detector.scan_opportunities()

    for opp in opportunities:
        assert opp.net_profit_pct >= detector.settings.min_net_profit_pct
        assert opp.combined_execution_prob >= detector.settings.min_execution_prob
        assert opp.buy_price < opp.sell_price
        assert pair.min_trade_size <= opp.optimal_trade_size <= pair.max_trade_size
        assert 0 <= opp.ev_score <= 100
    scores = [o.ev_score for o in opportunities]
    assert scores == sorted(scores, reverse=True)


class TestFreshness:
    def test_stale_pool_disappears_from_later_scans(self, monitor, detector, clock):
        load(
            monitor,
            cp_pool("A", 1000, 100000),
            cp_pool("B", 1000, 101500),
            cp_pool("C", 1000, 102000),
        )
        first = detector.scan_opportunities()
        assert any("C" in (o.buy_pool, o.sell_pool) for o in first)

        clock.now += 31
        load(
            monitor,
            cp_pool("A", 1000, 100000, last_update=clock.now),
            cp_pool("B", 1000, 101500, last_update=clock.now),
        )
        assert monitor.prune_stale() == 1

        second = detector.scan_opportunities()
        assert [(o.buy_pool, o.sell_pool) for o in second] == [("A", "B")]

    def test_stale_pool_ignored_before_prune(self, monitor, detector, clock):
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500, last_update=960.0))
        assert detector.scan_opportunities() == []

    @pytest.mark.parametrize("stale_leg", ["buy", "sell"])
    def test_evaluate_rejects_stale_pool(self, detector, metrics, stale_leg):
        # age 100 against max_pool_age 30
        buy = cp_pool("A", 1000, 100000, last_update=900.0 if stale_leg == "buy" else 1000.0)
        sell = cp_pool("B", 1000, 101500, last_update=900.0 if stale_leg == "sell" else 1000.0)

        assert detector.evaluate_opportunity(buy, sell, sol_usdc()) is None
        assert metrics.registry.get_sample_value(
            "pool_arbitrage_samples_skipped_total", {"reason": "stale_pool"}
        ) == 1.0

    def test_evaluate_accepts_pool_at_max_age(self, detector, clock):
        buy = cp_pool("A", 1000, 100000, last_update=clock.now - 30)
        sell = cp_pool("B", 1000, 101500)
        assert detector.evaluate_opportunity(buy, sell, sol_usdc()) is not None


class TestCancellation:
    def test_cancel_before_start(self, monitor, detector, metrics):
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
        event = threading.Event()
        event.set()

        assert detector.scan_opportunities(cancel_event=event) == []
        assert metrics.registry.get_sample_value("pool_arbitrage_scans_cancelled_total") == 1.0

    def test_cancel_returns_partial_results(self, monitor):
        pairs = [
            sol_usdc(),
            MonitoredPair("BONK/USDC", "BONK", "USDC", Decimal("1"), Decimal("50")),
        ]
        detector = EnhancedArbitrageDetector(monitor, pairs)
        load(
            monitor,
            cp_pool("A", 1000, 100000),
            cp_pool("B", 1000, 101500),
            cp_pool("D", 1000, 100000, token_a="BONK"),
            cp_pool("E", 1000, 101500, token_a="BONK"),
        )

        assert len(detector.scan_opportunities()) == 2
        partial = detector.scan_opportunities(cancel_event=CancelAfter(1))
        assert [o.pair_name for o in partial] == ["SOL/USDC"]
        assert detector.last_opportunities == partial


def test_concurrent_scans_are_independent(monitor, detector):
    load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
    results = []

    def scan():
        results.append(detector.scan_opportunities())

    threads = [threading.Thread(target=scan) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 4
    assert all(r == results[0] for r in results)


def test_worker_thread_precision_matches_main_thread(monitor, detector):
    load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
    expected = detector.scan_opportunities()
    results = []

    def scan():
        # Fresh threads start from the default context; force a coarse one
        decimal.getcontext().prec = 6
        results.append(detector.scan_opportunities())

    worker = threading.Thread(target=scan)
    worker.start()
    worker.join()

    assert results == [expected]


class TestExecutable:
    def test_default_thresholds(self, monitor, detector):
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
        (opp,) = detector.scan_opportunities()
        # EV of ~0.52 against a full scale of 100 scores well below 10
        assert opp.ev_score < 10
        assert not detector.is_executable(opp)
        assert detector.is_executable(opp, min_ev_score=0.1)
        assert not detector.is_executable(opp, min_ev_score=0.1, min_net_profit_pct=Decimal("1"))

    def test_full_scale_controls_score(self, monitor):
        detector = EnhancedArbitrageDetector(
            monitor, [sol_usdc()], DetectorSettings(ev_full_scale=Decimal("1"))
        )
        load(monitor, cp_pool("A", 1000, 100000), cp_pool("B", 1000, 101500))
        (opp,) = detector.scan_opportunities()
        assert opp.ev_score == pytest.approx(float(opp.expected_value) * 100)
        assert detector.is_executable(opp)


class TestInvalidConfiguration:
    @pytest.mark.parametrize(
        "pair",
        [
            sol_usdc(min_size="60", max_size="50"),
            sol_usdc(min_size="0"),
            MonitoredPair("SOL/SOL", "SOL", "SOL", Decimal("1"), Decimal("2")),
            sol_usdc(trade_sizes=(Decimal("1"), Decimal("100"))),
            sol_usdc(trade_sizes=()),
        ],
    )
    def test_invalid_pairs(self, monitor, pair):
        with pytest.raises(InvalidConfiguration):
            EnhancedArbitrageDetector(monitor, [pair])

    @pytest.mark.parametrize(
        "settings",
        [
            DetectorSettings(min_execution_prob=1.5),
            DetectorSettings(min_execution_prob=-0.1),
            DetectorSettings(trade_size_samples=0),
            DetectorSettings(grid_spacing="cubic"),
            DetectorSettings(ev_full_scale=Decimal("0")),
            DetectorSettings(max_opportunities=0),
        ],
    )
    def test_invalid_settings(self, monitor, settings):
        with pytest.raises(InvalidConfiguration):
            EnhancedArbitrageDetector(monitor, [sol_usdc()], settings)

    def test_duplicate_pair_names(self, monitor):
        with pytest.raises(InvalidConfiguration, match="Duplicate"):
            EnhancedArbitrageDetector(monitor, [sol_usdc(), sol_usdc()])

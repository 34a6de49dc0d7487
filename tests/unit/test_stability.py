"""Tests for the price stability tracker."""

from decimal import Decimal

import pytest

from dex.stability import PriceStabilityMonitor


@pytest.fixture
def monitor():
    return PriceStabilityMonitor(window_size=5, cv_ceiling=0.02)


def test_score_unavailable_below_two_observations(monitor):
    assert monitor.score("pool") is None
    monitor.add_observation("pool", Decimal("100"))
    assert monitor.score("pool") is None
    assert monitor.get_sigma("pool") is None


def test_constant_price_is_fully_stable(monitor):
    for _ in range(3):
        monitor.add_observation("pool", Decimal("100"))
    assert monitor.get_sigma("pool") == 0.0
    assert monitor.score("pool") == 1.0


def test_volatile_price_scores_low(monitor):
    for price in ("90", "110", "90", "110"):
        monitor.add_observation("pool", Decimal(price))
    # cv = 10 / 100 = 0.1, far above the 0.02 ceiling
    assert monitor.get_sigma("pool") == pytest.approx(10.0)
    assert monitor.score("pool") == 0.0


def test_partial_credit(monitor):
    monitor.add_observation("pool", Decimal("99"))
    monitor.add_observation("pool", Decimal("101"))
    # sigma = 1, mean = 100, cv = 0.01 -> half credit
    assert monitor.score("pool") == pytest.approx(0.5)


def test_window_is_bounded(monitor):
    for i in range(20):
        monitor.add_observation("pool", Decimal(100 + i))
    assert monitor.count("pool") == 5


def test_forget(monitor):
    monitor.add_observation("a", Decimal("1"))
    monitor.add_observation("b", Decimal("1"))
    assert len(monitor) == 2
    monitor.forget("a")
    assert monitor.count("a") == 0
    assert len(monitor) == 1
    monitor.forget("missing")


def test_score_uses_sigma_over_mean(monitor):
    for price in ("100", "100.5", "99.5"):
        monitor.add_observation("pool", Decimal(price))
    sigma = monitor.get_sigma("pool")
    assert monitor.score("pool") == pytest.approx(1.0 - (sigma / 100.0) / 0.02)

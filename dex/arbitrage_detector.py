"""
Liquidity-aware cross-pool arbitrage detection.

Ranks opportunities by expected value (net profit * execution probability)
instead of raw spread. For each monitored pair every fresh pool combination
is evaluated over a grid of trade sizes and the size with the highest
expected value is kept.

Grid search is used instead of gradient or ternary search because the
objective is not unimodal: concentrated-liquidity impact is discontinuous at
tick boundaries. The chosen size is the best sample, not a proven optimum.
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from pool_arbitrage.exceptions import (
    ArithmeticOverflow,
    InsufficientLiquidity,
    InvalidConfiguration,
    StalePoolData,
)
from pool_arbitrage.metrics import ScannerMetrics

from .fixed_point import decimal_context
from .liquidity_monitor import LiquidityMonitor
from .opportunity_math import (
    TradeEvaluation,
    ev_score,
    evaluate_trade_size,
    spread_pct,
    trade_size_grid,
)
from .types import (
    ArbitrageOpportunity,
    ConfidenceLevel,
    DetectorSettings,
    MonitoredPair,
    PoolState,
)

logger = logging.getLogger(__name__)

GRID_SPACINGS = ("linear", "log")


def classify_confidence(prob: float, net_profit_pct) -> ConfidenceLevel:
    """
    Map execution probability and net profit to a confidence tier.

    First match wins; all comparisons are strict, so a value sitting exactly
    on a threshold falls to the tier below (prob=0.8, net=1.0 is High).

        VeryHigh: prob > 0.8 and net > 1.0%
        High:     prob > 0.6 and net > 0.5%
        Medium:   prob > 0.4 and net > 0.3%
        Low:      prob > 0.2
        VeryLow:  otherwise
    """
    net = float(net_profit_pct)
    if prob > 0.8 and net > 1.0:
        return ConfidenceLevel.VERY_HIGH
    elif prob > 0.6 and net > 0.5:
        return ConfidenceLevel.HIGH
    elif prob > 0.4 and net > 0.3:
        return ConfidenceLevel.MEDIUM
    elif prob > 0.2:
        return ConfidenceLevel.LOW
    return ConfidenceLevel.VERY_LOW


def validate_settings(settings: DetectorSettings) -> DetectorSettings:
    """Raise InvalidConfiguration for out-of-range detector settings."""
    problems = []
    if not 0.0 <= settings.min_execution_prob <= 1.0:
        problems.append(f"min_execution_prob {settings.min_execution_prob} not in [0, 1]")
    if not 0.0 <= settings.min_ev_score <= 100.0:
        problems.append(f"min_ev_score {settings.min_ev_score} not in [0, 100]")
    if settings.trade_size_samples < 1:
        problems.append(f"trade_size_samples must be >= 1: {settings.trade_size_samples}")
    if settings.grid_spacing not in GRID_SPACINGS:
        problems.append(f"grid_spacing must be one of {GRID_SPACINGS}")
    if not Decimal("0") <= settings.flash_loan_fee_rate < Decimal("1"):
        problems.append(f"flash_loan_fee_rate {settings.flash_loan_fee_rate} not in [0, 1)")
    for name in ("base_fee", "priority_fee", "tip_pct_of_gross"):
        if getattr(settings, name) < 0:
            problems.append(f"{name} cannot be negative")
    if settings.ev_full_scale <= 0:
        problems.append("ev_full_scale must be positive")
    if settings.max_opportunities < 1:
        problems.append("max_opportunities must be >= 1")

    if problems:
        raise InvalidConfiguration(
            "Invalid detector settings: " + "; ".join(problems),
            details={"problems": problems},
        )
    return settings


def validate_pair(pair: MonitoredPair) -> MonitoredPair:
    """Raise InvalidConfiguration for an unusable monitored pair."""
    details = {"pair": pair.name}
    if not pair.token_a or not pair.token_b or pair.token_a == pair.token_b:
        raise InvalidConfiguration(
            f"Pair '{pair.name}' needs two distinct tokens", details=details
        )
    if pair.min_trade_size <= 0:
        raise InvalidConfiguration(
            f"Pair '{pair.name}' min_trade_size must be positive", details=details
        )
    if pair.min_trade_size > pair.max_trade_size:
        raise InvalidConfiguration(
            f"Pair '{pair.name}' min_trade_size {pair.min_trade_size} > "
            f"max_trade_size {pair.max_trade_size}",
            details=details,
        )
    if pair.trade_sizes is not None:
        if not pair.trade_sizes:
            raise InvalidConfiguration(
                f"Pair '{pair.name}' trade_sizes cannot be empty", details=details
            )
        outside = [
            s
            for s in pair.trade_sizes
            if s < pair.min_trade_size or s > pair.max_trade_size
        ]
        if outside:
            raise InvalidConfiguration(
                f"Pair '{pair.name}' trade_sizes outside "
                f"[{pair.min_trade_size}, {pair.max_trade_size}]: {outside}",
                details=details,
            )
    return pair


class EnhancedArbitrageDetector:
    """
    Scans monitored pairs for expected-value-ranked arbitrage.

    Configuration is fixed at construction. Scans hold no shared mutable
    state apart from the last-result slot, so overlapping scans (timer and
    event driven) produce independent result lists.
    """

    def __init__(
        self,
        monitor: LiquidityMonitor,
        pairs: Iterable[MonitoredPair],
        settings: Optional[DetectorSettings] = None,
        metrics: Optional[ScannerMetrics] = None,
    ):
        self.monitor = monitor
        self.settings = validate_settings(settings or DetectorSettings())
        self.metrics = metrics if metrics is not None else monitor.metrics

        self.pairs: Tuple[MonitoredPair, ...] = tuple(validate_pair(p) for p in pairs)
        names = [p.name for p in self.pairs]
        if len(set(names)) != len(names):
            raise InvalidConfiguration(f"Duplicate monitored pair names: {names}")

        self._grids: Dict[str, List[Decimal]] = {
            pair.name: self._build_grid(pair) for pair in self.pairs
        }

        self._lock = threading.Lock()
        self._last_opportunities: List[ArbitrageOpportunity] = []

    def _build_grid(self, pair: MonitoredPair) -> List[Decimal]:
        if pair.trade_sizes is not None:
            return sorted(set(pair.trade_sizes))
        try:
            return trade_size_grid(
                pair.min_trade_size,
                pair.max_trade_size,
                self.settings.trade_size_samples,
                self.settings.grid_spacing,
            )
        except ValueError as e:
            raise InvalidConfiguration(
                f"Pair '{pair.name}' trade size grid: {e}", details={"pair": pair.name}
            ) from e

    def trade_sizes(self, pair: MonitoredPair) -> List[Decimal]:
        """Candidate sizes evaluated for a pair."""
        return list(self._grids[pair.name])

    @property
    def last_opportunities(self) -> List[ArbitrageOpportunity]:
        """Result of the most recently completed scan."""
        with self._lock:
            return list(self._last_opportunities)

    # === SCANNING ===

    def scan_opportunities(
        self, cancel_event: Optional[threading.Event] = None
    ) -> List[ArbitrageOpportunity]:
        """
        Evaluate every monitored pair and return opportunities by EV score.

        Only opportunities with net_profit_pct >= min_net_profit_pct and
        combined_execution_prob >= min_execution_prob are returned. When
        cancel_event is set, scanning stops before the next pair and the
        opportunities gathered so far are returned.
        """
        started = time.perf_counter()
        opportunities: List[ArbitrageOpportunity] = []

        for pair in self.pairs:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    f"Scan cancelled before pair {pair.name}; "
                    f"returning {len(opportunities)} opportunities"
                )
                if self.metrics is not None:
                    self.metrics.record_scan_cancelled()
                break
            with decimal_context():
                opportunities.extend(self._scan_pair(pair))

        opportunities.sort(key=lambda o: (o.ev_score, o.expected_value), reverse=True)
        opportunities = opportunities[: self.settings.max_opportunities]

        with self._lock:
            self._last_opportunities = list(opportunities)

        duration = time.perf_counter() - started
        if self.metrics is not None:
            best = opportunities[0].ev_score if opportunities else 0.0
            self.metrics.record_scan(duration, best)

        if opportunities:
            logger.info(
                f"Scan found {len(opportunities)} opportunities in {duration * 1000:.1f}ms "
                f"(best: {opportunities[0].format_log()})"
            )
        else:
            logger.debug(f"Scan found no opportunities in {duration * 1000:.1f}ms")
        return opportunities

    def _scan_pair(self, pair: MonitoredPair) -> List[ArbitrageOpportunity]:
        pools = self.monitor.get_pools_for_pair(
            pair.token_a, pair.token_b, pair.pool_allowlist
        )
        if len(pools) < 2:
            logger.debug(f"{pair.name}: {len(pools)} fresh pools, nothing to compare")
            return []

        priced: List[Tuple[PoolState, Decimal]] = []
        for pool in pools:
            price = self._safe_price(pool, pair)
            if price is not None:
                priced.append((pool, price))

        results = []
        for i, (pool_p, price_p) in enumerate(priced):
            for pool_q, price_q in priced[i + 1 :]:
                if price_p == price_q:
                    continue
                if price_p < price_q:
                    buy_pool, sell_pool = pool_p, pool_q
                else:
                    buy_pool, sell_pool = pool_q, pool_p

                opportunity = self.evaluate_opportunity(buy_pool, sell_pool, pair)
                if opportunity is None:
                    continue
                if opportunity.net_profit_pct < self.settings.min_net_profit_pct:
                    continue
                if opportunity.combined_execution_prob < self.settings.min_execution_prob:
                    continue

                results.append(opportunity)
                if self.metrics is not None:
                    self.metrics.record_opportunity(
                        pair.name, opportunity.confidence_level.value
                    )
        return results

    def _safe_price(self, pool: PoolState, pair: MonitoredPair) -> Optional[Decimal]:
        try:
            return self.monitor.oriented_price(pool, pair.token_a, pair.token_b)
        except InsufficientLiquidity as e:
            logger.debug(f"{pair.name}: skipping {pool.label}: {e}")
            self._record_skip("insufficient_liquidity")
        except ArithmeticOverflow as e:
            logger.warning(f"{pair.name}: skipping {pool.label}: overflow in {e.operation}")
            self._record_skip("arithmetic_overflow")
        return None

    def _record_skip(self, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_skip(reason)

    # === EVALUATION ===

    def evaluate_opportunity(
        self, buy_pool: PoolState, sell_pool: PoolState, pair: MonitoredPair
    ) -> Optional[ArbitrageOpportunity]:
        """
        Search the trade size grid for the size maximizing expected value.

        Samples that cannot be quoted are skipped. Returns None when either
        pool is stale or cannot be priced, or no sample has a positive
        expected value.
        """
        now = self.monitor.clock()
        try:
            self.monitor.require_fresh(buy_pool, now)
            self.monitor.require_fresh(sell_pool, now)
        except StalePoolData as e:
            logger.debug(f"{pair.name}: {e} (age {e.age:.1f} > {e.max_age})")
            self._record_skip("stale_pool")
            return None

        with decimal_context():
            return self._search_grid(buy_pool, sell_pool, pair, now)

    def _search_grid(
        self, buy_pool: PoolState, sell_pool: PoolState, pair: MonitoredPair, now: float
    ) -> Optional[ArbitrageOpportunity]:
        buy_price = self._safe_price(buy_pool, pair)
        sell_price = self._safe_price(sell_pool, pair)
        if buy_price is None or sell_price is None:
            return None

        # Buying token_a spends token_b on the buy pool; selling spends token_a
        buy_a_to_b = buy_pool.token_a == pair.token_b
        sell_a_to_b = sell_pool.token_a == pair.token_a

        best: Optional[TradeEvaluation] = None
        for size in self._grids[pair.name]:
            evaluation = self._evaluate_size(
                size, buy_pool, sell_pool, buy_price, sell_price,
                buy_a_to_b, sell_a_to_b, now,
            )
            if evaluation is None:
                continue
            if best is None or evaluation.expected_value > best.expected_value:
                best = evaluation

        if best is None or best.expected_value <= 0:
            return None

        return self._build_opportunity(
            pair, buy_pool, sell_pool, buy_price, sell_price, best, now
        )

    def _evaluate_size(
        self,
        size: Decimal,
        buy_pool: PoolState,
        sell_pool: PoolState,
        buy_price: Decimal,
        sell_price: Decimal,
        buy_a_to_b: bool,
        sell_a_to_b: bool,
        now: float,
    ) -> Optional[TradeEvaluation]:
        buy_input = size * buy_price
        try:
            buy_impact = self.monitor.price_impact(buy_pool, buy_input, buy_a_to_b)
            sell_impact = self.monitor.price_impact(sell_pool, size, sell_a_to_b)
            buy_prob = self.monitor.execution_probability(
                buy_pool, buy_input, buy_a_to_b, now=now
            )
            sell_prob = self.monitor.execution_probability(
                sell_pool, size, sell_a_to_b, now=now
            )
        except InsufficientLiquidity as e:
            logger.debug(f"Skipping size {size}: {e}")
            self._record_skip("insufficient_liquidity")
            return None
        except ArithmeticOverflow as e:
            logger.warning(f"Skipping size {size}: overflow in {e.operation}")
            self._record_skip("arithmetic_overflow")
            return None

        return evaluate_trade_size(
            trade_size=size,
            buy_price=buy_price,
            sell_price=sell_price,
            buy_impact=buy_impact,
            sell_impact=sell_impact,
            buy_fee_bps=buy_pool.fee_rate_bps,
            sell_fee_bps=sell_pool.fee_rate_bps,
            buy_prob=buy_prob,
            sell_prob=sell_prob,
            settings=self.settings,
        )

    def _build_opportunity(
        self,
        pair: MonitoredPair,
        buy_pool: PoolState,
        sell_pool: PoolState,
        buy_price: Decimal,
        sell_price: Decimal,
        best: TradeEvaluation,
        now: float,
    ) -> ArbitrageOpportunity:
        return ArbitrageOpportunity(
            pair_name=pair.name,
            token_a=pair.token_a,
            token_b=pair.token_b,
            buy_pool=buy_pool.address,
            sell_pool=sell_pool.address,
            buy_dex_kind=buy_pool.dex_kind,
            sell_dex_kind=sell_pool.dex_kind,
            buy_price=buy_price,
            sell_price=sell_price,
            spread_pct=spread_pct(buy_price, sell_price),
            optimal_trade_size=best.trade_size,
            notional=best.notional,
            buy_impact=best.buy_impact,
            sell_impact=best.sell_impact,
            gross_profit=best.gross_profit,
            gross_profit_pct=best.gross_profit_pct,
            flash_loan_fee=best.flash_loan_fee,
            swap_fees=best.swap_fees,
            total_fees=best.total_fees,
            fee_pct=best.fee_pct,
            gas_cost=best.gas_cost,
            net_profit=best.net_profit,
            net_profit_pct=best.net_profit_pct,
            buy_execution_prob=best.buy_prob,
            sell_execution_prob=best.sell_prob,
            combined_execution_prob=best.combined_prob,
            expected_value=best.expected_value,
            ev_score=ev_score(best.expected_value, self.settings.ev_full_scale),
            confidence_level=classify_confidence(best.combined_prob, best.net_profit_pct),
            timestamp=now,
        )

    # === GATING ===

    def is_executable(
        self,
        opportunity: ArbitrageOpportunity,
        min_ev_score: Optional[float] = None,
        min_net_profit_pct: Optional[Decimal] = None,
    ) -> bool:
        """Both the EV score and the net profit thresholds must be met."""
        if min_ev_score is None:
            min_ev_score = self.settings.min_ev_score
        if min_net_profit_pct is None:
            min_net_profit_pct = self.settings.min_net_profit_pct
        return (
            opportunity.ev_score >= min_ev_score
            and opportunity.net_profit_pct >= Decimal(str(min_net_profit_pct))
        )

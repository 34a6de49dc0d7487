"""
Prometheus metrics for the pool arbitrage scanner.

Exposes cache and scan statistics for monitoring and alerting. Instances are
injected into the liquidity monitor and detector; each owns its registry so
several scanners can live in one process.
"""

import logging
import threading
from typing import Any, Dict, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class ScannerMetrics:
    """
    Scanner metrics collection and exposure

    Provides Prometheus-compatible metrics for:
    - Pool state cache writes and pruning
    - Scan cycles, duration and cancellations
    - Opportunities found by confidence level
    - Pools and trade-size samples skipped during evaluation
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics with a custom registry or a fresh private one"""
        self.registry = registry if registry is not None else CollectorRegistry()
        self._initialize_metrics()

        self._lock = threading.RLock()

    def _initialize_metrics(self):
        """Initialize all Prometheus metrics"""

        # === CACHE METRICS ===
        self.pool_updates_total = Counter(
            "pool_arbitrage_pool_updates_total",
            "Total pool state updates written to the cache",
            ["dex_kind"],
            registry=self.registry,
        )

        self.pools_pruned_total = Counter(
            "pool_arbitrage_pools_pruned_total",
            "Total stale pools removed from the cache",
            registry=self.registry,
        )

        self.cached_pools = Gauge(
            "pool_arbitrage_cached_pools",
            "Number of pool records currently cached",
            registry=self.registry,
        )

        # === SCAN METRICS ===
        self.scans_total = Counter(
            "pool_arbitrage_scans_total",
            "Total scan cycles completed",
            registry=self.registry,
        )

        self.scans_cancelled_total = Counter(
            "pool_arbitrage_scans_cancelled_total",
            "Total scan cycles abandoned through the cancellation signal",
            registry=self.registry,
        )

        self.scan_duration_seconds = Histogram(
            "pool_arbitrage_scan_duration_seconds",
            "Duration of a full scan cycle",
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0],
            registry=self.registry,
        )

        self.opportunities_found_total = Counter(
            "pool_arbitrage_opportunities_found_total",
            "Opportunities passing scan filters",
            ["pair", "confidence"],
            registry=self.registry,
        )

        self.samples_skipped_total = Counter(
            "pool_arbitrage_samples_skipped_total",
            "Pools or trade-size samples skipped during evaluation",
            ["reason"],
            registry=self.registry,
        )

        self.best_ev_score = Gauge(
            "pool_arbitrage_best_ev_score",
            "Highest EV score from the latest scan",
            registry=self.registry,
        )

    # === METRIC RECORDING METHODS ===

    def record_pool_update(self, dex_kind: str):
        """Record a pool state write"""
        with self._lock:
            self.pool_updates_total.labels(dex_kind=dex_kind).inc()

    def record_pools_pruned(self, count: int):
        """Record stale pool removal"""
        if count <= 0:
            return
        with self._lock:
            self.pools_pruned_total.inc(count)

    def update_cached_pools(self, count: int):
        with self._lock:
            self.cached_pools.set(count)

    def record_scan(self, duration_seconds: float, best_ev_score: float = 0.0):
        """Record a completed scan cycle"""
        with self._lock:
            self.scans_total.inc()
            self.scan_duration_seconds.observe(duration_seconds)
            self.best_ev_score.set(best_ev_score)

    def record_scan_cancelled(self):
        with self._lock:
            self.scans_cancelled_total.inc()

    def record_opportunity(self, pair: str, confidence: str):
        """Record an opportunity that passed scan filters"""
        with self._lock:
            self.opportunities_found_total.labels(
                pair=pair, confidence=confidence
            ).inc()

    def record_skip(self, reason: str):
        """Record a skipped pool or sample"""
        with self._lock:
            self.samples_skipped_total.labels(reason=reason).inc()

    # === EXPOSITION ===

    def render_latest(self) -> bytes:
        """Render current metrics in the Prometheus text format"""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get current metrics summary"""
        return {
            "scans": self.scans_total._value.get(),
            "cached_pools": self.cached_pools._value.get(),
            "best_ev_score": self.best_ev_score._value.get(),
        }

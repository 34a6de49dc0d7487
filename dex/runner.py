"""
Scan loop for the pool arbitrage scanner.

Feeds pool snapshots into the liquidity monitor, prunes stale pools, runs
the enhanced detector and prints results as console tables.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from tabulate import tabulate

from pool_arbitrage.config_loader import ScannerConfig, load_pool_snapshot
from pool_arbitrage.metrics import ScannerMetrics
from pool_arbitrage.utils import format_duration, format_profit, get_current_timestamp

from .arbitrage_detector import EnhancedArbitrageDetector
from .liquidity_monitor import LiquidityMonitor
from .pool_cache import PoolStateCache
from .types import ArbitrageOpportunity, PoolState


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"


logger = logging.getLogger(__name__)

TABLE_HEADERS = [
    "#",
    "Pair",
    "Buy",
    "Sell",
    "Spread",
    "Size",
    "Net",
    "P(exec)",
    "EV",
    "Score",
    "Confidence",
]


def _short(address: str, width: int = 10) -> str:
    if len(address) <= width:
        return address
    return f"{address[: width - 4]}..{address[-2:]}"


def opportunity_rows(
    opportunities: List[ArbitrageOpportunity], limit: int = 10
) -> List[list]:
    """Table rows for the top opportunities."""
    rows = []
    for i, opp in enumerate(opportunities[:limit], 1):
        rows.append(
            [
                i,
                opp.pair_name,
                f"{_short(opp.buy_pool)} ({opp.buy_dex_kind.value})",
                f"{_short(opp.sell_pool)} ({opp.sell_dex_kind.value})",
                format_profit(opp.spread_pct),
                f"{opp.optimal_trade_size:.4f}",
                format_profit(opp.net_profit_pct),
                f"{opp.combined_execution_prob:.3f}",
                f"{opp.expected_value:.4f}",
                f"{opp.ev_score:.1f}",
                opp.confidence_level.value,
            ]
        )
    return rows


class ScannerRunner:
    """
    Runs scan cycles against a pool snapshot source.

    Args:
        config: Frozen scanner configuration
        pool_source: Snapshot file path, or a callable returning PoolState records
        clock: Timestamp source shared by the monitor and snapshot stamping
    """

    def __init__(
        self,
        config: ScannerConfig,
        pool_source: Union[str, Path, Callable[[], List[PoolState]]],
        clock: Callable[[], float] = get_current_timestamp,
    ):
        self.config = config
        self.pool_source = pool_source
        self.clock = clock

        self.metrics = ScannerMetrics() if config.metrics_enabled else None
        self.cache = PoolStateCache(num_shards=config.cache_shards)
        self.monitor = LiquidityMonitor(
            self.cache,
            max_pool_age=config.max_pool_age,
            clock=clock,
            metrics=self.metrics,
        )
        self.detector = EnhancedArbitrageDetector(
            self.monitor, config.pairs, config.settings, metrics=self.metrics
        )
        self.stop_event = threading.Event()

    def load_pools(self) -> int:
        """Push the current snapshot into the monitor. Returns pools written."""
        if callable(self.pool_source):
            pools = self.pool_source()
        else:
            pools = load_pool_snapshot(self.pool_source, default_timestamp=self.clock())

        for pool in pools:
            self.monitor.update_pool(pool)
        return len(pools)

    def scan_once(self) -> List[ArbitrageOpportunity]:
        """One cycle: refresh pools, prune stale ones, scan."""
        started = time.perf_counter()
        loaded = self.load_pools()
        pruned = self.monitor.prune_stale()
        opportunities = self.detector.scan_opportunities(cancel_event=self.stop_event)
        logger.debug(
            f"Cycle: {loaded} pools loaded, {pruned} pruned, "
            f"{len(opportunities)} opportunities in "
            f"{format_duration(time.perf_counter() - started)}"
        )
        return opportunities

    def print_banner(self) -> None:
        """Print startup banner with config summary."""
        c = Colors
        settings = self.config.settings
        print(f"\n{c.CYAN}{c.BOLD}{'═' * 80}{c.RESET}")
        print(f"{c.CYAN}{c.BOLD}  POOL ARBITRAGE SCANNER{c.RESET}")
        print(f"{c.CYAN}{'═' * 80}{c.RESET}\n")
        print(
            f"  {c.DIM}Pairs:{c.RESET} {c.GREEN}{len(self.config.pairs)}{c.RESET} | "
            f"{c.DIM}Max pool age:{c.RESET} {c.GREEN}{self.config.max_pool_age}{c.RESET} | "
            f"{c.DIM}Samples:{c.RESET} {c.GREEN}{settings.trade_size_samples} "
            f"({settings.grid_spacing}){c.RESET}"
        )
        print(
            f"  {c.DIM}Min net:{c.RESET} {c.GREEN}{settings.min_net_profit_pct}%{c.RESET} | "
            f"{c.DIM}Min P(exec):{c.RESET} {c.GREEN}{settings.min_execution_prob}{c.RESET} | "
            f"{c.DIM}Min score:{c.RESET} {c.GREEN}{settings.min_ev_score}{c.RESET}\n"
        )

    def print_results(
        self, opportunities: List[ArbitrageOpportunity], scan_num: int
    ) -> None:
        c = Colors
        stats = self.monitor.stats()
        print(
            f"\n  {c.BOLD}Scan #{scan_num}{c.RESET} "
            f"{c.DIM}({stats.fresh_pools}/{stats.total_pools} fresh pools, "
            f"{stats.token_pairs} pairs){c.RESET}"
        )
        if not opportunities:
            print(f"  {c.DIM}(no opportunities above thresholds){c.RESET}")
            return

        print(tabulate(opportunity_rows(opportunities), headers=TABLE_HEADERS, tablefmt="grid"))

        executable = [o for o in opportunities if self.detector.is_executable(o)]
        color = c.GREEN if executable else c.YELLOW
        print(f"  {color}{len(executable)} executable of {len(opportunities)}{c.RESET}")

    def run(self, cycles: Optional[int] = None, interval: float = 5.0) -> int:
        """
        Main loop: scan, print, sleep.

        Runs until cycles scans completed (forever when None) or stop() is
        called. Returns the number of completed scans.
        """
        self.print_banner()

        scan_num = 0
        while not self.stop_event.is_set():
            scan_num += 1
            opportunities = self.scan_once()
            self.print_results(opportunities, scan_num)

            if cycles is not None and scan_num >= cycles:
                break
            # Event wait doubles as an interruptible sleep
            if self.stop_event.wait(interval):
                break

        if self.metrics is not None:
            logger.debug(f"Metrics: {self.metrics.get_metrics_summary()}")
        return scan_num

    def stop(self) -> None:
        """Request the loop and any running scan to stop."""
        self.stop_event.set()

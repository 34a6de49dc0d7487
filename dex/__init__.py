"""
DEX pool monitoring and cross-pool arbitrage detection.
"""

from .arbitrage_detector import EnhancedArbitrageDetector, classify_confidence
from .liquidity_monitor import LiquidityMonitor, PoolQuote
from .pool_cache import PoolStateCache
from .stability import PriceStabilityMonitor
from .types import (
    ArbitrageOpportunity,
    ConfidenceLevel,
    DetectorSettings,
    DexKind,
    LiquidityStats,
    MonitoredPair,
    PoolState,
)

__all__ = [
    "EnhancedArbitrageDetector",
    "classify_confidence",
    "LiquidityMonitor",
    "PoolQuote",
    "PoolStateCache",
    "PriceStabilityMonitor",
    "ArbitrageOpportunity",
    "ConfidenceLevel",
    "DetectorSettings",
    "DexKind",
    "LiquidityStats",
    "MonitoredPair",
    "PoolState",
]

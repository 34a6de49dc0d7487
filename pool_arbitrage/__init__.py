"""
Pool Arbitrage Scanner.

Liquidity-aware detection of cross-pool arbitrage between DEX pools trading
the same token pair. Opportunities are ranked by expected value rather than
raw spread.
"""

PROJECT_NAME = "Pool-Arbitrage-Scanner"
VERSION = "0.3.0"

from pool_arbitrage.exceptions import (
    ArithmeticOverflow,
    InsufficientLiquidity,
    InvalidConfiguration,
    PoolArbitrageError,
    StalePoolData,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "PoolArbitrageError",
    "InvalidConfiguration",
    "InsufficientLiquidity",
    "StalePoolData",
    "ArithmeticOverflow",
]

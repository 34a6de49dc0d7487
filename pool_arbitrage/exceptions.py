"""
Exception hierarchy for the pool arbitrage scanner.

Only InvalidConfiguration is fatal. The remaining types are raised at the
pool or trade-size level and caught by the scanner, which skips the
affected pool or sample and reports fewer opportunities.
"""

from typing import Any, Dict, Optional


class PoolArbitrageError(Exception):
    """Base exception for all pool arbitrage related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class InvalidConfiguration(PoolArbitrageError):
    """Raised when detector or scanner configuration is invalid."""

    pass


class InsufficientLiquidity(PoolArbitrageError):
    """Raised when a pool is unenriched or too shallow to price a trade."""

    def __init__(
        self,
        message: str,
        pool_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.pool_address = pool_address


class StalePoolData(PoolArbitrageError):
    """Raised when a pool record is older than the configured max age."""

    def __init__(
        self,
        message: str,
        pool_address: Optional[str] = None,
        age: Optional[float] = None,
        max_age: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.pool_address = pool_address
        self.age = age
        self.max_age = max_age


class ArithmeticOverflow(PoolArbitrageError):
    """Raised when a guarded fixed-point operation exceeds its integer width."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation

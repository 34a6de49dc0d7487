"""
Common utilities and helper functions for the pool arbitrage scanner.

This module provides centralized helpers for timestamps, numeric
conversion, clamping and display formatting used across the dex package.
"""

import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Union


# Timestamp utilities
def get_current_timestamp() -> float:
    """Get current Unix timestamp as float."""
    return time.time()


def timestamp_to_iso(timestamp: float) -> str:
    """Convert Unix timestamp to ISO 8601 string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


# Math utilities
def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def clamp(value, min_val, max_val):
    """Clamp value between min and max bounds."""
    return max(min_val, min(value, max_val))


def calculate_percentage(value: Decimal, total: Decimal) -> Decimal:
    """Calculate percentage with zero-division protection."""
    if total == 0:
        return Decimal("0")
    return (value / total) * Decimal("100")


def format_profit(pct: Union[float, Decimal]) -> str:
    """Format a percent value with a sign prefix.

    Examples:
        >>> format_profit(1.23)
        '+1.23%'
        >>> format_profit(-4.56)
        '-4.56%'
    """
    pct = float(pct)
    if pct >= 0:
        return f"+{pct:.2f}%"
    return f"{pct:.2f}%"

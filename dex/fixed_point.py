"""
Width-checked integer helpers for raw on-chain amounts.

Python integers never wrap, so the unsigned widths of the on-chain types are
enforced explicitly. Anything past the bound raises ArithmeticOverflow and
the caller skips the affected pool or sample.
"""

from decimal import Decimal, getcontext, localcontext

from pool_arbitrage.exceptions import ArithmeticOverflow

U64_MAX = (1 << 64) - 1
U128_MAX = (1 << 128) - 1

Q64 = Decimal(1 << 64)

# Decimal contexts are per thread
DECIMAL_PRECISION = 50


def decimal_context():
    """Context manager running Decimal math at DECIMAL_PRECISION on this thread."""
    context = getcontext().copy()
    context.prec = DECIMAL_PRECISION
    return localcontext(context)


def check_bound(value: int, bound: int = U128_MAX, operation: str = "value") -> int:
    if value < 0 or value > bound:
        raise ArithmeticOverflow(
            f"{operation} out of range: {value}",
            operation=operation,
            details={"value": value, "bound": bound},
        )
    return value


def checked_mul(a: int, b: int, bound: int = U128_MAX) -> int:
    """Multiply two unsigned integers, raising past the bound (u128 default)."""
    return check_bound(a * b, bound, operation="mul")


def checked_add(a: int, b: int, bound: int = U128_MAX) -> int:
    return check_bound(a + b, bound, operation="add")


def to_raw_amount(amount: Decimal, decimals: int, bound: int = U64_MAX) -> int:
    """Convert a decimal-adjusted amount to raw integer units (truncating)."""
    if amount < 0:
        raise ArithmeticOverflow(
            f"negative amount: {amount}", operation="to_raw_amount"
        )
    raw = int(amount * (Decimal(10) ** decimals))
    return check_bound(raw, bound, operation="to_raw_amount")


def from_raw_amount(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


def q64_to_decimal(value_x64: int) -> Decimal:
    """Convert a Q64.64 fixed-point value to Decimal."""
    check_bound(value_x64, U128_MAX, operation="q64_to_decimal")
    return Decimal(value_x64) / Q64

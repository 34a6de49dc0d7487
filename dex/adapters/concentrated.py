"""
Concentrated-liquidity (CLMM) and bin-based (DLMM) pool math.

Prices come from the Q64.64 square-root price. Price impact uses a linear
approximation of tick-crossing cost:

    impact ~= amount_in / (2 * liquidity)

This does not integrate over ticks or bins and is known to be inexact near
range boundaries. It should be treated as a placeholder until validated
against on-chain quoter results.
"""

from decimal import Decimal
from typing import Optional

from ..fixed_point import U128_MAX, checked_mul, q64_to_decimal


def sqrt_price_to_price(
    sqrt_price_x64: int, decimals_a: int = 0, decimals_b: int = 0
) -> Decimal:
    """
    Convert a Q64.64 square-root price to a decimal-adjusted token_a price.

    price = (sqrt_price_x64 / 2**64) ** 2 * 10 ** (decimals_a - decimals_b)

    Raises:
        ValueError: If the square-root price is zero
        ArithmeticOverflow: If sqrt_price_x64 does not fit in u128
    """
    if not sqrt_price_x64:
        raise ValueError("sqrt_price_x64 must be positive")
    sqrt_price = q64_to_decimal(sqrt_price_x64)
    return sqrt_price * sqrt_price * (Decimal(10) ** (decimals_a - decimals_b))


def linear_impact(amount_in_raw: int, liquidity: int) -> Decimal:
    """
    Linear impact approximation clamped to [0, 1].

    Raises:
        ArithmeticOverflow: If 2 * liquidity exceeds u128
    """
    if liquidity <= 0:
        return Decimal("1")
    if amount_in_raw <= 0:
        return Decimal("0")
    depth = checked_mul(2, liquidity, U128_MAX)
    impact = Decimal(amount_in_raw) / Decimal(depth)
    return min(impact, Decimal("1"))


def bin_adjusted_impact(base_impact: Decimal, bin_step: Optional[int]) -> Decimal:
    """Scale impact by bin width for DLMM pools: impact * (1 + bin_step / 100)."""
    if not bin_step:
        return base_impact
    adjusted = base_impact * (Decimal("1") + Decimal(bin_step) / Decimal("100"))
    return min(adjusted, Decimal("1"))


def estimate_output(
    amount_in: Decimal, price: Decimal, impact: Decimal, fee_bps: int
) -> Decimal:
    """
    Approximate swap output for a concentrated pool.

    Args:
        amount_in: Input amount (decimal adjusted)
        price: Output tokens per input token at spot
        impact: Estimated impact fraction
        fee_bps: Swap fee in basis points
    """
    fee = Decimal(fee_bps) / Decimal("10000")
    return amount_in * price * (Decimal("1") - impact) * (Decimal("1") - fee)

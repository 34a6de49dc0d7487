"""
Constant-product (x*y=k) AMM math.

Swap simulation works on raw integer amounts with the fee embedded in the
input, matching how the on-chain programs round. Spot price and price impact
work on decimal-adjusted amounts.
"""

from decimal import Decimal

from ..fixed_point import U64_MAX, check_bound, checked_add, checked_mul


def spot_price(
    reserve_a: int, reserve_b: int, decimals_a: int = 0, decimals_b: int = 0
) -> Decimal:
    """
    Price of token_a in token_b units.

    Args:
        reserve_a: Raw token_a reserve
        reserve_b: Raw token_b reserve
        decimals_a: token_a decimals
        decimals_b: token_b decimals

    Raises:
        ValueError: If either reserve is zero
    """
    if reserve_a <= 0 or reserve_b <= 0:
        raise ValueError(f"Reserves must be positive: a={reserve_a}, b={reserve_b}")
    ui_a = Decimal(reserve_a) / (Decimal(10) ** decimals_a)
    ui_b = Decimal(reserve_b) / (Decimal(10) ** decimals_b)
    return ui_b / ui_a


def swap_out_raw(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """
    Calculate raw output amount for a swap using the constant-product formula.

    Formula (with fee embedded):
        amountInWithFee = amountIn * (10000 - fee_bps) / 10000
        amountOut = (amountInWithFee * reserveOut) / (reserveIn + amountInWithFee)

    All inputs are raw u64 amounts; intermediate products are checked
    against the u128 bound.

    Raises:
        ValueError: If inputs are invalid (negative, zero reserves, etc.)
        ArithmeticOverflow: If an input or intermediate exceeds its width
    """
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise ValueError(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}"
        )
    if fee_bps < 0 or fee_bps >= 10000:
        raise ValueError(f"Fee must be in [0, 10000) bps: {fee_bps}")

    for value in (amount_in, reserve_in, reserve_out):
        check_bound(value, U64_MAX, operation="swap_input")

    amount_in_with_fee = checked_mul(amount_in, 10000 - fee_bps) // 10000

    numerator = checked_mul(amount_in_with_fee, reserve_out)
    denominator = checked_add(reserve_in, amount_in_with_fee)

    return numerator // denominator


def price_impact(amount_in: Decimal, reserve_in: Decimal, reserve_out: Decimal) -> Decimal:
    """
    Exact price impact of a swap against constant-product reserves.

    The output is derived from the invariant without fees (fees are charged
    separately by the caller), then:
        impact = 1 - (avg_execution_price / spot_price)

    Args:
        amount_in: Input amount (decimal adjusted)
        reserve_in: Input-side reserve (decimal adjusted)
        reserve_out: Output-side reserve (decimal adjusted)

    Returns:
        Impact as a fraction in [0, 1]
    """
    if reserve_in <= 0 or reserve_out <= 0:
        return Decimal("1")
    if amount_in <= 0:
        return Decimal("0")

    amount_out = (reserve_out * amount_in) / (reserve_in + amount_in)
    avg_execution_price = amount_out / amount_in
    current_price = reserve_out / reserve_in

    impact = Decimal("1") - (avg_execution_price / current_price)
    return max(Decimal("0"), min(impact, Decimal("1")))

"""
Single source of truth for per-trade-size opportunity math.

All monetary values use Decimal; probabilities are floats in [0, 1].
Trade sizes are in token_a units, monetary results in token_b units.

Conversion policy:
- Internal: Decimal with 50 digits precision
- Percentages stored as percent values (0.15 means 0.15%)
- No inline *100 or /10000 - use the helpers below
"""

from dataclasses import dataclass
from decimal import Decimal, getcontext
from typing import List

from pool_arbitrage.utils import calculate_percentage, clamp, to_decimal

from .fixed_point import DECIMAL_PRECISION, decimal_context
from .types import DetectorSettings

getcontext().prec = DECIMAL_PRECISION

ONE = Decimal("1")
HUNDRED = Decimal("100")


# ============================================================================
# Conversion helpers (ONLY place to convert between percent, bps and rates)
# ============================================================================


def pct_to_bps(pct: Decimal) -> Decimal:
    """Convert percent to basis points. 0.15% -> 15 bps"""
    return pct * HUNDRED


def bps_to_pct(bps: Decimal) -> Decimal:
    """Convert basis points to percent. 15 bps -> 0.15%"""
    return bps / HUNDRED


def bps_to_rate(bps) -> Decimal:
    """Convert basis points to a fraction. 25 bps -> 0.0025"""
    return to_decimal(bps) / Decimal("10000")


def rate_to_pct(rate: Decimal) -> Decimal:
    return rate * HUNDRED


# ============================================================================
# Trade size grid
# ============================================================================


def trade_size_grid(
    min_size: Decimal, max_size: Decimal, samples: int = 20, spacing: str = "linear"
) -> List[Decimal]:
    """
    Candidate trade sizes between min_size and max_size, endpoints included.

    Args:
        min_size: Smallest size (token_a units)
        max_size: Largest size (token_a units)
        samples: Number of sizes to generate
        spacing: "linear" or "log" (geometric, requires min_size > 0)

    Returns:
        Sorted, de-duplicated list within [min_size, max_size]
    """
    if samples < 1:
        raise ValueError(f"samples must be >= 1: {samples}")
    if min_size > max_size:
        raise ValueError(f"min_size {min_size} > max_size {max_size}")
    if samples == 1 or min_size == max_size:
        return [min_size]

    steps = Decimal(samples - 1)
    sizes = []
    if spacing == "linear":
        step = (max_size - min_size) / steps
        for i in range(samples):
            sizes.append(min_size + step * i)
    elif spacing == "log":
        if min_size <= 0:
            raise ValueError("log spacing requires min_size > 0")
        ratio = max_size / min_size
        for i in range(samples):
            sizes.append(min_size * (ratio ** (Decimal(i) / steps)))
    else:
        raise ValueError(f"Unknown grid spacing: {spacing}")

    # Pin endpoints and guard against rounding drift
    sizes[0] = min_size
    sizes[-1] = max_size
    return sorted({clamp(s, min_size, max_size) for s in sizes})


# ============================================================================
# Per-size evaluation
# ============================================================================


@dataclass(frozen=True)
class TradeEvaluation:
    """
    Complete breakdown of one candidate trade size.

    Percentages are relative to the notional (size * buy_price).
    """

    trade_size: Decimal
    notional: Decimal
    buy_impact: Decimal
    sell_impact: Decimal
    effective_buy_price: Decimal
    effective_sell_price: Decimal
    gross_profit: Decimal
    gross_profit_pct: Decimal
    flash_loan_fee: Decimal
    swap_fees: Decimal
    total_fees: Decimal
    fee_pct: Decimal
    gas_cost: Decimal
    net_profit: Decimal
    net_profit_pct: Decimal
    buy_prob: float
    sell_prob: float
    combined_prob: float
    expected_value: Decimal

    def format_log(self) -> str:
        """Format for consistent logging."""
        return (
            f"size {self.trade_size:.4f}: Net {self.net_profit_pct:.3f}% "
            f"(Gross {self.gross_profit_pct:.3f}% - Fees {self.fee_pct:.3f}%) "
            f"- Gas {self.gas_cost:.4f} p={self.combined_prob:.3f} "
            f"EV {self.expected_value:.4f}"
        )


def gas_cost(gross_profit: Decimal, settings: DetectorSettings) -> Decimal:
    """Fixed base + priority fee, plus an execution tip on positive gross profit."""
    tip = settings.tip_pct_of_gross * max(gross_profit, Decimal("0"))
    return settings.base_fee + settings.priority_fee + tip


def evaluate_trade_size(
    trade_size: Decimal,
    buy_price: Decimal,
    sell_price: Decimal,
    buy_impact: Decimal,
    sell_impact: Decimal,
    buy_fee_bps: int,
    sell_fee_bps: int,
    buy_prob: float,
    sell_prob: float,
    settings: DetectorSettings,
) -> TradeEvaluation:
    """
    Compute the full breakdown for buying trade_size on one pool and selling
    it on another.

    Formulas:
        notional = size * buy_price
        gross    = size * (sell_price * (1 - sell_impact) - buy_price * (1 + buy_impact))
        fees     = notional * (flash_loan_fee_rate + buy_fee + sell_fee)
        gas      = base_fee + priority_fee + tip_pct_of_gross * max(gross, 0)
        net      = gross - fees - gas
        EV       = net * buy_prob * sell_prob
    """
    with decimal_context():
        notional = trade_size * buy_price

        effective_buy = buy_price * (ONE + buy_impact)
        effective_sell = sell_price * (ONE - sell_impact)
        gross_profit = trade_size * (effective_sell - effective_buy)

        flash_loan_fee = notional * settings.flash_loan_fee_rate
        swap_fees = notional * (bps_to_rate(buy_fee_bps) + bps_to_rate(sell_fee_bps))
        total_fees = flash_loan_fee + swap_fees

        gas = gas_cost(gross_profit, settings)
        net_profit = gross_profit - total_fees - gas

        combined_prob = buy_prob * sell_prob
        expected_value = net_profit * to_decimal(combined_prob)

        return TradeEvaluation(
            trade_size=trade_size,
            notional=notional,
            buy_impact=buy_impact,
            sell_impact=sell_impact,
            effective_buy_price=effective_buy,
            effective_sell_price=effective_sell,
            gross_profit=gross_profit,
            gross_profit_pct=calculate_percentage(gross_profit, notional),
            flash_loan_fee=flash_loan_fee,
            swap_fees=swap_fees,
            total_fees=total_fees,
            fee_pct=calculate_percentage(total_fees, notional),
            gas_cost=gas,
            net_profit=net_profit,
            net_profit_pct=calculate_percentage(net_profit, notional),
            buy_prob=buy_prob,
            sell_prob=sell_prob,
            combined_prob=combined_prob,
            expected_value=expected_value,
        )


def spread_pct(buy_price: Decimal, sell_price: Decimal) -> Decimal:
    """Raw price spread between the two pools, in percent of the buy price."""
    if buy_price <= 0:
        return Decimal("0")
    return rate_to_pct((sell_price - buy_price) / buy_price)


def ev_score(expected_value: Decimal, full_scale: Decimal) -> float:
    """Normalize expected value to 0-100; full_scale maps to 100."""
    if full_scale <= 0:
        return 0.0
    score = float(expected_value / full_scale * HUNDRED)
    return clamp(score, 0.0, 100.0)

"""
Core data types for liquidity-aware DEX arbitrage scanning.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class DexKind(Enum):
    """AMM curve family; selects the pricing and impact formula."""

    CONSTANT_PRODUCT = "constant_product"
    CONCENTRATED_LIQUIDITY = "concentrated_liquidity"
    DYNAMIC_LIQUIDITY = "dynamic_liquidity"

    @property
    def typical_fee_bps(self) -> int:
        if self is DexKind.DYNAMIC_LIQUIDITY:
            return 20
        return 25

    @classmethod
    def parse(cls, value: str) -> "DexKind":
        """Accept enum values, member names and short aliases (cpmm/clmm/dlmm)."""
        aliases = {
            "cpmm": cls.CONSTANT_PRODUCT,
            "amm": cls.CONSTANT_PRODUCT,
            "clmm": cls.CONCENTRATED_LIQUIDITY,
            "whirlpool": cls.CONCENTRATED_LIQUIDITY,
            "dlmm": cls.DYNAMIC_LIQUIDITY,
        }
        key = str(value).strip().lower()
        if key in aliases:
            return aliases[key]
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown dex kind: {value}")


class ConfidenceLevel(Enum):
    VERY_HIGH = "VeryHigh"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    VERY_LOW = "VeryLow"


def pair_key(token_a: str, token_b: str) -> Tuple[str, str]:
    """Order-independent key for a token pair."""
    return (token_a, token_b) if token_a <= token_b else (token_b, token_a)


@dataclass(frozen=True)
class PoolState:
    """
    Latest known condition of one DEX liquidity pool.

    Records are immutable and replaced wholesale on every update.

    Attributes:
        address: Unique pool identifier
        dex_kind: Curve family of the pool
        token_a: First token of the pool (order matters for reserves)
        token_b: Second token of the pool
        reserve_a: Raw token_a amount (u64, constant-product pools only)
        reserve_b: Raw token_b amount (u64, constant-product pools only)
        liquidity: Raw depth measure (u128, concentrated/dynamic pools only)
        sqrt_price_x64: Q64.64 square-root price (concentrated/dynamic pools)
        fee_rate_bps: Swap fee in basis points
        last_update: Timestamp or slot of the most recent write
        decimals_a: token_a decimals used to adjust prices
        decimals_b: token_b decimals used to adjust prices
        tick_current: Current tick (concentrated pools, informational)
        bin_step: Bin width in bps (dynamic-liquidity pools)
        dex_name: Human-readable venue label
    """

    address: str
    dex_kind: DexKind
    token_a: str
    token_b: str
    reserve_a: int = 0
    reserve_b: int = 0
    liquidity: int = 0
    sqrt_price_x64: Optional[int] = None
    fee_rate_bps: int = 25
    last_update: float = 0.0
    decimals_a: int = 0
    decimals_b: int = 0
    tick_current: Optional[int] = None
    bin_step: Optional[int] = None
    dex_name: str = ""

    @property
    def pair_key(self) -> Tuple[str, str]:
        return pair_key(self.token_a, self.token_b)

    @property
    def is_enriched(self) -> bool:
        """Whether the pool carries enough state to be priced."""
        if self.dex_kind is DexKind.CONSTANT_PRODUCT:
            return self.reserve_a > 0 and self.reserve_b > 0
        return self.liquidity > 0 and bool(self.sqrt_price_x64)

    def trades_pair(self, token_a: str, token_b: str) -> bool:
        return self.pair_key == pair_key(token_a, token_b)

    def age(self, now: float) -> float:
        return now - self.last_update

    def is_fresh(self, now: float, max_age: float) -> bool:
        return self.age(now) <= max_age

    @property
    def label(self) -> str:
        return f"{self.dex_name or self.dex_kind.value}:{self.address}"


@dataclass(frozen=True)
class MonitoredPair:
    """
    Operator-supplied token pair to scan.

    Trade sizes are expressed in token_a units. When trade_sizes is given it
    replaces the generated grid.
    """

    name: str
    token_a: str
    token_b: str
    min_trade_size: Decimal
    max_trade_size: Decimal
    pool_allowlist: Optional[FrozenSet[str]] = None
    trade_sizes: Optional[Tuple[Decimal, ...]] = None

    def allows(self, pool_address: str) -> bool:
        return self.pool_allowlist is None or pool_address in self.pool_allowlist


@dataclass(frozen=True)
class DetectorSettings:
    """
    Immutable detector configuration.

    Gas components are fixed estimates in token_b units. ev_full_scale is the
    expected value (token_b units) that maps to an EV score of 100.
    """

    min_net_profit_pct: Decimal = Decimal("0.1")
    min_execution_prob: float = 0.3
    min_ev_score: float = 10.0
    trade_size_samples: int = 20
    grid_spacing: str = "linear"
    flash_loan_fee_rate: Decimal = Decimal("0.0009")
    base_fee: Decimal = Decimal("0")
    priority_fee: Decimal = Decimal("0")
    tip_pct_of_gross: Decimal = Decimal("0.10")
    ev_full_scale: Decimal = Decimal("100")
    max_opportunities: int = 100


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    Snapshot evaluation of buying on one pool and selling on another.

    Monetary amounts are in token_b units; sizes in token_a units. Percentages
    are stored as percent values (e.g., 0.15 for 0.15%).
    """

    pair_name: str
    token_a: str
    token_b: str
    buy_pool: str
    sell_pool: str
    buy_dex_kind: DexKind
    sell_dex_kind: DexKind

    # Prices
    buy_price: Decimal
    sell_price: Decimal
    spread_pct: Decimal

    # Trade sizing
    optimal_trade_size: Decimal
    notional: Decimal
    buy_impact: Decimal
    sell_impact: Decimal

    # Profit and costs
    gross_profit: Decimal
    gross_profit_pct: Decimal
    flash_loan_fee: Decimal
    swap_fees: Decimal
    total_fees: Decimal
    fee_pct: Decimal
    gas_cost: Decimal
    net_profit: Decimal
    net_profit_pct: Decimal

    # Execution model
    buy_execution_prob: float
    sell_execution_prob: float
    combined_execution_prob: float
    expected_value: Decimal
    ev_score: float
    confidence_level: ConfidenceLevel

    timestamp: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pair": self.pair_name,
            "token_a": self.token_a,
            "token_b": self.token_b,
            "buy_pool": self.buy_pool,
            "sell_pool": self.sell_pool,
            "buy_dex_kind": self.buy_dex_kind.value,
            "sell_dex_kind": self.sell_dex_kind.value,
            "buy_price": float(self.buy_price),
            "sell_price": float(self.sell_price),
            "spread_pct": float(self.spread_pct),
            "optimal_trade_size": float(self.optimal_trade_size),
            "notional": float(self.notional),
            "buy_impact": float(self.buy_impact),
            "sell_impact": float(self.sell_impact),
            "gross_profit": float(self.gross_profit),
            "gross_profit_pct": float(self.gross_profit_pct),
            "flash_loan_fee": float(self.flash_loan_fee),
            "swap_fees": float(self.swap_fees),
            "total_fees": float(self.total_fees),
            "fee_pct": float(self.fee_pct),
            "gas_cost": float(self.gas_cost),
            "net_profit": float(self.net_profit),
            "net_profit_pct": float(self.net_profit_pct),
            "buy_execution_prob": self.buy_execution_prob,
            "sell_execution_prob": self.sell_execution_prob,
            "combined_execution_prob": self.combined_execution_prob,
            "expected_value": float(self.expected_value),
            "ev_score": self.ev_score,
            "confidence_level": self.confidence_level.value,
            "timestamp": self.timestamp,
        }

    def format_log(self) -> str:
        """Format for consistent logging."""
        return (
            f"{self.pair_name} buy@{self.buy_pool} sell@{self.sell_pool} "
            f"size {self.optimal_trade_size:.4f}: "
            f"Net {self.net_profit_pct:.3f}% "
            f"(Gross {self.gross_profit_pct:.3f}% - Fees {self.fee_pct:.3f}%) "
            f"p={self.combined_execution_prob:.2f} "
            f"EV {self.expected_value:.4f} score {self.ev_score:.1f} "
            f"[{self.confidence_level.value}]"
        )


@dataclass
class LiquidityStats:
    """Cache summary."""

    total_pools: int = 0
    fresh_pools: int = 0
    token_pairs: int = 0
    total_liquidity: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)

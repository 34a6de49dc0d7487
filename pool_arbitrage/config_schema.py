"""
Configuration schema validation using Pydantic
"""

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dex.types import DexKind


class MonitoredPairConfig(BaseModel):
    """One token pair to scan; trade sizes are in token_a units"""

    model_config = {"extra": "forbid"}

    name: str = Field(min_length=1, description="Display name, e.g. SOL/USDC")
    token_a: str = Field(min_length=1, description="Base token identifier")
    token_b: str = Field(min_length=1, description="Quote token identifier")
    min_trade_size: Decimal = Field(gt=0, description="Smallest trade size")
    max_trade_size: Decimal = Field(gt=0, description="Largest trade size")
    trade_sizes: Optional[List[Decimal]] = Field(
        default=None, description="Explicit size grid replacing the generated one"
    )
    pool_allowlist: Optional[List[str]] = Field(
        default=None, description="Restrict the scan to these pool addresses"
    )

    @field_validator("trade_sizes")
    @classmethod
    def validate_trade_sizes(cls, v):
        if v is None:
            return v
        if not v:
            raise ValueError("trade_sizes cannot be empty")
        for size in v:
            if size <= 0:
                raise ValueError(f"trade size must be positive: {size}")
        return v

    @model_validator(mode="after")
    def validate_pair(self):
        if self.token_a == self.token_b:
            raise ValueError(f"pair {self.name} uses the same token twice")
        if self.min_trade_size > self.max_trade_size:
            raise ValueError(
                f"min_trade_size {self.min_trade_size} > max_trade_size {self.max_trade_size}"
            )
        if self.trade_sizes:
            for size in self.trade_sizes:
                if size < self.min_trade_size or size > self.max_trade_size:
                    raise ValueError(
                        f"trade size {size} outside "
                        f"[{self.min_trade_size}, {self.max_trade_size}]"
                    )
        return self


class GasConfig(BaseModel):
    """Fixed gas estimate in quote token units"""

    model_config = {"extra": "forbid"}

    base_fee: Decimal = Field(ge=0, default=Decimal("0"))
    priority_fee: Decimal = Field(ge=0, default=Decimal("0"))
    tip_pct_of_gross: Decimal = Field(
        ge=0, le=1, default=Decimal("0.10"), description="Execution tip as share of gross"
    )


class DetectorConfig(BaseModel):
    """Detector thresholds and grid search settings"""

    model_config = {"extra": "forbid"}

    min_net_profit_pct: Decimal = Field(
        default=Decimal("0.1"), description="Minimum net profit in percent"
    )
    min_execution_prob: float = Field(ge=0, le=1.0, default=0.3)
    min_ev_score: float = Field(ge=0, le=100, default=10.0)
    trade_size_samples: int = Field(ge=1, le=1000, default=20)
    grid_spacing: Literal["linear", "log"] = "linear"
    flash_loan_fee_bps: Decimal = Field(
        ge=0, le=1000, default=Decimal("9"), description="Flash loan fee in basis points"
    )
    ev_full_scale: Decimal = Field(
        gt=0, default=Decimal("100"), description="Expected value mapped to score 100"
    )
    max_opportunities: int = Field(ge=1, le=10000, default=100)
    gas: GasConfig = Field(default_factory=GasConfig)


class PoolSnapshotEntry(BaseModel):
    """A pool record as written in a snapshot file"""

    model_config = {"extra": "forbid"}

    address: str = Field(min_length=1)
    dex_kind: DexKind
    token_a: str = Field(min_length=1)
    token_b: str = Field(min_length=1)
    reserve_a: int = Field(ge=0, default=0)
    reserve_b: int = Field(ge=0, default=0)
    liquidity: int = Field(ge=0, default=0)
    sqrt_price_x64: Optional[int] = Field(ge=0, default=None)
    fee_rate_bps: Optional[int] = Field(ge=0, le=10000, default=None)
    last_update: Optional[float] = Field(default=None)
    decimals_a: int = Field(ge=0, le=255, default=0)
    decimals_b: int = Field(ge=0, le=255, default=0)
    tick_current: Optional[int] = None
    bin_step: Optional[int] = Field(ge=1, default=None)
    dex_name: str = ""

    @field_validator("dex_kind", mode="before")
    @classmethod
    def parse_dex_kind(cls, v):
        if isinstance(v, DexKind):
            return v
        return DexKind.parse(v)

    @model_validator(mode="after")
    def validate_tokens(self):
        if self.token_a == self.token_b:
            raise ValueError(f"pool {self.address} uses the same token twice")
        return self


class ScannerConfigModel(BaseModel):
    """Main scanner configuration"""

    model_config = {"extra": "forbid", "validate_assignment": True}

    max_pool_age: float = Field(
        gt=0, default=30.0, description="Freshness bound in seconds or slots"
    )
    cache_shards: int = Field(ge=1, le=1024, default=16)
    metrics_enabled: bool = True
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    pairs: List[MonitoredPairConfig] = Field(min_length=1)

    @model_validator(mode="after")
    def validate_unique_pairs(self):
        names = [pair.name for pair in self.pairs]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate pair names: {duplicates}")
        return self


def validate_scanner_config(config_dict: Dict[str, Any]) -> ScannerConfigModel:
    """Validate a scanner configuration dictionary"""
    return ScannerConfigModel.model_validate(config_dict)


def validate_pool_entry(entry: Dict[str, Any]) -> PoolSnapshotEntry:
    """Validate one pool snapshot entry"""
    return PoolSnapshotEntry.model_validate(entry)

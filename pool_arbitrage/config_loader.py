"""
Configuration loading and normalization for the pool arbitrage scanner.

Loads YAML files, validates them against the pydantic schema and produces
frozen runtime objects consumed by the dex package.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from dex.opportunity_math import bps_to_rate
from dex.types import DetectorSettings, MonitoredPair, PoolState

from .config_schema import (
    DetectorConfig,
    MonitoredPairConfig,
    validate_pool_entry,
    validate_scanner_config,
)
from .exceptions import InvalidConfiguration
from .utils import get_current_timestamp


@dataclass(frozen=True)
class ScannerConfig:
    """Immutable runtime configuration object."""

    settings: DetectorSettings = field(default_factory=DetectorSettings)
    pairs: Tuple[MonitoredPair, ...] = ()
    max_pool_age: float = 30.0
    cache_shards: int = 16
    metrics_enabled: bool = True


def load_yaml_config(config_path: Union[str, Path]) -> Any:
    """Load and parse a YAML (or JSON) file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise InvalidConfiguration(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidConfiguration(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise InvalidConfiguration(f"Failed to load config {config_path}: {e}") from e

    if config_dict is None:
        raise InvalidConfiguration(f"Empty configuration file: {config_path}")
    return config_dict


def _normalize_settings(detector: DetectorConfig) -> DetectorSettings:
    return DetectorSettings(
        min_net_profit_pct=detector.min_net_profit_pct,
        min_execution_prob=detector.min_execution_prob,
        min_ev_score=detector.min_ev_score,
        trade_size_samples=detector.trade_size_samples,
        grid_spacing=detector.grid_spacing,
        flash_loan_fee_rate=bps_to_rate(detector.flash_loan_fee_bps),
        base_fee=detector.gas.base_fee,
        priority_fee=detector.gas.priority_fee,
        tip_pct_of_gross=detector.gas.tip_pct_of_gross,
        ev_full_scale=detector.ev_full_scale,
        max_opportunities=detector.max_opportunities,
    )


def _normalize_pair(pair: MonitoredPairConfig) -> MonitoredPair:
    return MonitoredPair(
        name=pair.name,
        token_a=pair.token_a,
        token_b=pair.token_b,
        min_trade_size=pair.min_trade_size,
        max_trade_size=pair.max_trade_size,
        pool_allowlist=(
            frozenset(pair.pool_allowlist) if pair.pool_allowlist is not None else None
        ),
        trade_sizes=tuple(pair.trade_sizes) if pair.trade_sizes is not None else None,
    )


def build_scanner_config(config_dict: Dict[str, Any]) -> ScannerConfig:
    """
    Validate a configuration dictionary and freeze it.

    Raises:
        InvalidConfiguration: If the dictionary fails schema validation
    """
    if not isinstance(config_dict, dict):
        raise InvalidConfiguration("Configuration root must be a mapping")

    try:
        model = validate_scanner_config(config_dict)
    except ValidationError as e:
        raise InvalidConfiguration(
            f"Configuration validation failed: {e}",
            details={"errors": e.errors(include_url=False)},
        ) from e

    return ScannerConfig(
        settings=_normalize_settings(model.detector),
        pairs=tuple(_normalize_pair(p) for p in model.pairs),
        max_pool_age=model.max_pool_age,
        cache_shards=model.cache_shards,
        metrics_enabled=model.metrics_enabled,
    )


def load_scanner_config(config_path: Union[str, Path]) -> ScannerConfig:
    """
    Load and normalize a scanner configuration file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Frozen scanner configuration

    Raises:
        InvalidConfiguration: If the file cannot be loaded or is invalid
    """
    return build_scanner_config(load_yaml_config(config_path))


def parse_pool_snapshot(
    data: Any, default_timestamp: Optional[float] = None
) -> List[PoolState]:
    """
    Convert snapshot data into PoolState records.

    data is either a list of pool mappings or a mapping with a "pools" list.
    Entries without last_update are stamped with default_timestamp (now by
    default); entries without fee_rate_bps get the typical fee of their kind.
    """
    if isinstance(data, dict):
        data = data.get("pools")
    if not isinstance(data, list):
        raise InvalidConfiguration("Pool snapshot must be a list of pools")

    if default_timestamp is None:
        default_timestamp = get_current_timestamp()

    pools = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise InvalidConfiguration(f"Pool entry {index} must be a mapping")
        try:
            model = validate_pool_entry(entry)
        except ValidationError as e:
            raise InvalidConfiguration(
                f"Invalid pool entry {index}: {e}",
                details={"index": index, "errors": e.errors(include_url=False)},
            ) from e

        pools.append(
            PoolState(
                address=model.address,
                dex_kind=model.dex_kind,
                token_a=model.token_a,
                token_b=model.token_b,
                reserve_a=model.reserve_a,
                reserve_b=model.reserve_b,
                liquidity=model.liquidity,
                sqrt_price_x64=model.sqrt_price_x64,
                fee_rate_bps=(
                    model.fee_rate_bps
                    if model.fee_rate_bps is not None
                    else model.dex_kind.typical_fee_bps
                ),
                last_update=(
                    model.last_update
                    if model.last_update is not None
                    else default_timestamp
                ),
                decimals_a=model.decimals_a,
                decimals_b=model.decimals_b,
                tick_current=model.tick_current,
                bin_step=model.bin_step,
                dex_name=model.dex_name,
            )
        )
    return pools


def load_pool_snapshot(
    snapshot_path: Union[str, Path], default_timestamp: Optional[float] = None
) -> List[PoolState]:
    """Load pool records from a YAML or JSON snapshot file."""
    return parse_pool_snapshot(load_yaml_config(snapshot_path), default_timestamp)

"""
Liquidity monitoring for arbitrage detection.

Wraps a PoolStateCache and computes spot price, price impact and execution
probability per pool and trade size. Pricing dispatches on DexKind; each
curve family lives in dex.adapters.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, getcontext
from typing import Callable, FrozenSet, List, Optional

from pool_arbitrage.exceptions import (
    ArithmeticOverflow,
    InsufficientLiquidity,
    StalePoolData,
)
from pool_arbitrage.metrics import ScannerMetrics
from pool_arbitrage.utils import clamp, get_current_timestamp

from .adapters import concentrated, constant_product
from .fixed_point import (
    DECIMAL_PRECISION,
    decimal_context,
    from_raw_amount,
    to_raw_amount,
)
from .pool_cache import PoolStateCache
from .stability import PriceStabilityMonitor
from .types import DexKind, LiquidityStats, PoolState

getcontext().prec = DECIMAL_PRECISION

logger = logging.getLogger(__name__)

# Execution probability weights
IMPACT_WEIGHT = 0.4
DEPTH_WEIGHT = 0.3
FRESHNESS_WEIGHT = 0.2
STABILITY_WEIGHT = 0.1

# Impact credit: full below FULL_CREDIT, none above ZERO_CREDIT, linear between
IMPACT_FULL_CREDIT = Decimal("0.005")
IMPACT_ZERO_CREDIT = Decimal("0.10")

# Depth credit decays as exp(-DEPTH_DECAY * trade / depth)
DEPTH_DECAY = 5.0

NEUTRAL_STABILITY = 0.5


@dataclass(frozen=True)
class PoolQuote:
    """Result of find_best_pool."""

    pool: PoolState
    expected_output: Decimal
    probability: float
    score: Decimal


class LiquidityMonitor:
    """
    Monitors liquidity across many pools.

    Args:
        cache: Pool state store owned by the caller
        max_pool_age: Freshness bound, in the same unit as clock()
        clock: Returns the current timestamp or slot (default wall clock)
        stability: Price stability tracker (a fresh one by default)
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        cache: PoolStateCache,
        max_pool_age: float = 30.0,
        clock: Callable[[], float] = get_current_timestamp,
        stability: Optional[PriceStabilityMonitor] = None,
        metrics: Optional[ScannerMetrics] = None,
    ):
        if max_pool_age <= 0:
            raise ValueError(f"max_pool_age must be positive: {max_pool_age}")
        self.cache = cache
        self.max_pool_age = max_pool_age
        self.clock = clock
        self.stability = stability if stability is not None else PriceStabilityMonitor()
        self.metrics = metrics

    # === WRITE PATH ===

    def update_pool(self, state: PoolState) -> None:
        """Upsert a pool record. No economic validation is performed."""
        self.cache.upsert(state)

        if state.is_enriched:
            try:
                self.stability.add_observation(state.address, self.price(state))
            except (InsufficientLiquidity, ArithmeticOverflow) as e:
                logger.debug(f"No stability sample for {state.label}: {e}")

        if self.metrics is not None:
            self.metrics.record_pool_update(state.dex_kind.value)
            self.metrics.update_cached_pools(len(self.cache))

    def prune_stale(self, now: Optional[float] = None) -> int:
        """
        Remove every pool older than max_pool_age.

        Returns:
            Number of removed pools
        """
        if now is None:
            now = self.clock()
        removed = self.cache.remove_where(
            lambda pool: pool.age(now) > self.max_pool_age
        )
        for pool in removed:
            self.stability.forget(pool.address)

        if removed:
            logger.info(f"Pruned {len(removed)} stale pools")
        if self.metrics is not None:
            self.metrics.record_pools_pruned(len(removed))
            self.metrics.update_cached_pools(len(self.cache))
        return len(removed)

    # === READ PATH ===

    def get_pool(self, address: str) -> Optional[PoolState]:
        return self.cache.get(address)

    def is_fresh(self, pool: PoolState, now: Optional[float] = None) -> bool:
        if now is None:
            now = self.clock()
        return pool.is_fresh(now, self.max_pool_age)

    def require_fresh(self, pool: PoolState, now: Optional[float] = None) -> PoolState:
        if now is None:
            now = self.clock()
        if not pool.is_fresh(now, self.max_pool_age):
            raise StalePoolData(
                f"Pool {pool.label} is stale",
                pool_address=pool.address,
                age=pool.age(now),
                max_age=self.max_pool_age,
            )
        return pool

    def get_pools_for_pair(
        self,
        token_a: str,
        token_b: str,
        allowlist: Optional[FrozenSet[str]] = None,
    ) -> List[PoolState]:
        """Fresh pools trading the pair, in address order."""
        now = self.clock()
        return [
            pool
            for pool in self.cache.pools_for_pair(token_a, token_b)
            if pool.is_fresh(now, self.max_pool_age)
            and (allowlist is None or pool.address in allowlist)
        ]

    # === PRICING ===

    def price(self, pool: PoolState) -> Decimal:
        """
        Spot price of token_a in token_b units.

        Raises:
            InsufficientLiquidity: If the pool is unenriched
            ArithmeticOverflow: If a raw field exceeds its width
        """
        if not pool.is_enriched:
            raise InsufficientLiquidity(
                f"Pool {pool.label} has no usable reserves/liquidity",
                pool_address=pool.address,
            )

        if pool.dex_kind is DexKind.CONSTANT_PRODUCT:
            return constant_product.spot_price(
                pool.reserve_a, pool.reserve_b, pool.decimals_a, pool.decimals_b
            )
        elif pool.dex_kind in (DexKind.CONCENTRATED_LIQUIDITY, DexKind.DYNAMIC_LIQUIDITY):
            return concentrated.sqrt_price_to_price(
                pool.sqrt_price_x64, pool.decimals_a, pool.decimals_b
            )
        raise ValueError(f"Unsupported dex kind: {pool.dex_kind}")

    def oriented_price(self, pool: PoolState, base: str, quote: str) -> Decimal:
        """Price of base in quote units regardless of the pool's token order."""
        price = self.price(pool)
        if pool.token_a == base and pool.token_b == quote:
            return price
        if pool.token_a == quote and pool.token_b == base:
            return Decimal("1") / price
        raise ValueError(f"Pool {pool.label} does not trade {base}/{quote}")

    def price_impact(
        self, pool: PoolState, trade_size: Decimal, is_a_to_b: bool = True
    ) -> Decimal:
        """
        Price impact fraction in [0, 1] for an input of trade_size.

        trade_size is in decimal-adjusted units of the input token (token_a
        when is_a_to_b, token_b otherwise).

        Raises:
            InsufficientLiquidity: If the pool is unenriched
            ArithmeticOverflow: If raw conversion exceeds u64/u128
        """
        if not pool.is_enriched:
            raise InsufficientLiquidity(
                f"Pool {pool.label} cannot be quoted", pool_address=pool.address
            )

        if pool.dex_kind is DexKind.CONSTANT_PRODUCT:
            reserve_in, reserve_out = self._ui_reserves(pool, is_a_to_b)
            return constant_product.price_impact(trade_size, reserve_in, reserve_out)

        decimals_in = pool.decimals_a if is_a_to_b else pool.decimals_b
        amount_raw = to_raw_amount(trade_size, decimals_in)
        impact = concentrated.linear_impact(amount_raw, pool.liquidity)
        if pool.dex_kind is DexKind.DYNAMIC_LIQUIDITY:
            impact = concentrated.bin_adjusted_impact(impact, pool.bin_step)
        return clamp(impact, Decimal("0"), Decimal("1"))

    def expected_output(
        self, pool: PoolState, amount_in: Decimal, is_a_to_b: bool = True
    ) -> Decimal:
        """
        Expected output (decimal adjusted) for a swap, fees included.

        Exact for constant-product pools; approximate for concentrated ones.
        """
        if not pool.is_enriched:
            raise InsufficientLiquidity(
                f"Pool {pool.label} cannot be quoted", pool_address=pool.address
            )

        decimals_in, decimals_out = (
            (pool.decimals_a, pool.decimals_b)
            if is_a_to_b
            else (pool.decimals_b, pool.decimals_a)
        )

        if pool.dex_kind is DexKind.CONSTANT_PRODUCT:
            reserve_in, reserve_out = (
                (pool.reserve_a, pool.reserve_b)
                if is_a_to_b
                else (pool.reserve_b, pool.reserve_a)
            )
            amount_raw = to_raw_amount(amount_in, decimals_in)
            if amount_raw <= 0:
                return Decimal("0")
            out_raw = constant_product.swap_out_raw(
                amount_raw, reserve_in, reserve_out, pool.fee_rate_bps
            )
            return from_raw_amount(out_raw, decimals_out)

        price = self.price(pool)
        if not is_a_to_b:
            price = Decimal("1") / price
        impact = self.price_impact(pool, amount_in, is_a_to_b)
        return concentrated.estimate_output(amount_in, price, impact, pool.fee_rate_bps)

    def depth(self, pool: PoolState, is_a_to_b: bool = True) -> Decimal:
        """Input-side depth in decimal-adjusted units."""
        if pool.dex_kind is DexKind.CONSTANT_PRODUCT:
            reserve_in, _ = self._ui_reserves(pool, is_a_to_b)
            return reserve_in
        decimals_in = pool.decimals_a if is_a_to_b else pool.decimals_b
        return from_raw_amount(pool.liquidity, decimals_in)

    @staticmethod
    def _ui_reserves(pool: PoolState, is_a_to_b: bool):
        ui_a = from_raw_amount(pool.reserve_a, pool.decimals_a)
        ui_b = from_raw_amount(pool.reserve_b, pool.decimals_b)
        return (ui_a, ui_b) if is_a_to_b else (ui_b, ui_a)

    # === EXECUTION PROBABILITY ===

    def execution_probability(
        self,
        pool: PoolState,
        trade_size: Decimal,
        is_a_to_b: bool = True,
        now: Optional[float] = None,
    ) -> float:
        """
        Weighted likelihood in [0, 1] that the trade executes at the estimate.

        Factors (each normalized to [0, 1]):
        - impact (40%): 1.0 at <=0.5%, 0.0 at >=10%, linear between
        - depth (30%): exp(-5 * trade_size / depth)
        - freshness (20%): 1 - age / max_pool_age
        - stability (10%): tracker score, neutral 0.5 when unavailable

        An unenriched pool yields 0.0.
        """
        if not pool.is_enriched:
            return 0.0
        if now is None:
            now = self.clock()

        impact = self.price_impact(pool, trade_size, is_a_to_b)
        impact_score = self._impact_score(impact)

        depth = self.depth(pool, is_a_to_b)
        if depth <= 0:
            return 0.0
        depth_score = math.exp(-DEPTH_DECAY * float(trade_size / depth))

        freshness_score = clamp(1.0 - pool.age(now) / self.max_pool_age, 0.0, 1.0)

        stability_score = self.stability.score(pool.address)
        if stability_score is None:
            stability_score = NEUTRAL_STABILITY

        probability = (
            IMPACT_WEIGHT * impact_score
            + DEPTH_WEIGHT * depth_score
            + FRESHNESS_WEIGHT * freshness_score
            + STABILITY_WEIGHT * stability_score
        )
        return clamp(probability, 0.0, 1.0)

    @staticmethod
    def _impact_score(impact: Decimal) -> float:
        if impact <= IMPACT_FULL_CREDIT:
            return 1.0
        if impact >= IMPACT_ZERO_CREDIT:
            return 0.0
        span = IMPACT_ZERO_CREDIT - IMPACT_FULL_CREDIT
        return float((IMPACT_ZERO_CREDIT - impact) / span)

    def has_sufficient_liquidity(
        self, pool: PoolState, required_output: Decimal, is_a_to_b: bool = True
    ) -> bool:
        """Output-side reserve must be at least twice the required output."""
        if not pool.is_enriched:
            return False
        if pool.dex_kind is DexKind.CONSTANT_PRODUCT:
            _, reserve_out = self._ui_reserves(pool, is_a_to_b)
        else:
            decimals_out = pool.decimals_b if is_a_to_b else pool.decimals_a
            reserve_out = from_raw_amount(pool.liquidity, decimals_out)
        return reserve_out >= required_output * 2

    # === POOL SELECTION ===

    def find_best_pool(
        self, token_in: str, token_out: str, trade_size: Decimal
    ) -> Optional[PoolQuote]:
        """
        Best fresh pool for swapping trade_size of token_in into token_out.

        Pools are ranked by expected_output * probability, ties broken by
        higher probability. Pools that cannot be quoted are skipped.
        """
        with decimal_context():
            return self._find_best_pool(token_in, token_out, trade_size)

    def _find_best_pool(
        self, token_in: str, token_out: str, trade_size: Decimal
    ) -> Optional[PoolQuote]:
        now = self.clock()
        best: Optional[PoolQuote] = None

        for pool in self.get_pools_for_pair(token_in, token_out):
            is_a_to_b = pool.token_a == token_in
            try:
                output = self.expected_output(pool, trade_size, is_a_to_b)
                probability = self.execution_probability(
                    pool, trade_size, is_a_to_b, now=now
                )
            except InsufficientLiquidity as e:
                logger.debug(f"Skipping {pool.label}: {e}")
                self._record_skip("insufficient_liquidity")
                continue
            except ArithmeticOverflow as e:
                logger.warning(f"Skipping {pool.label}: overflow in {e.operation}")
                self._record_skip("arithmetic_overflow")
                continue
            except ValueError as e:
                # Records are cached unchecked; a bad fee or reserve lands here
                logger.warning(f"Skipping {pool.label}: invalid pool record: {e}")
                self._record_skip("invalid_pool")
                continue

            if probability <= 0 or output <= 0:
                continue

            score = output * Decimal(str(probability))
            if (
                best is None
                or score > best.score
                or (score == best.score and probability > best.probability)
            ):
                best = PoolQuote(pool, output, probability, score)

        return best

    def _record_skip(self, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_skip(reason)

    # === STATS ===

    def stats(self) -> LiquidityStats:
        now = self.clock()
        pools = self.cache.snapshot()
        by_kind = {}
        for pool in pools:
            by_kind[pool.dex_kind.value] = by_kind.get(pool.dex_kind.value, 0) + 1
        return LiquidityStats(
            total_pools=len(pools),
            fresh_pools=sum(1 for p in pools if p.is_fresh(now, self.max_pool_age)),
            token_pairs=self.cache.pair_count(),
            total_liquidity=sum(p.liquidity for p in pools),
            by_kind=by_kind,
        )

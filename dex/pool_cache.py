"""
Concurrent store of the latest PoolState per pool address.

Records are immutable, so readers only hold a shard lock long enough to copy
references; a slow reader never delays a writer on another shard, and never
for longer than a dict lookup on the same one.
"""

import threading
from typing import Callable, Dict, List, Optional, Set, Tuple

from .types import PoolState, pair_key


class _Shard:
    __slots__ = ("lock", "pools")

    def __init__(self):
        self.lock = threading.Lock()
        self.pools: Dict[str, PoolState] = {}


class PoolStateCache:
    """
    Sharded map of pool address -> PoolState with a token-pair index.

    Single-record atomicity only: a snapshot across several pools may mix
    records written at different times.
    """

    def __init__(self, num_shards: int = 16):
        if num_shards < 1:
            raise ValueError(f"num_shards must be >= 1: {num_shards}")
        self._shards = [_Shard() for _ in range(num_shards)]
        self._index_lock = threading.Lock()
        self._pair_index: Dict[Tuple[str, str], Set[str]] = {}

    def _shard(self, address: str) -> _Shard:
        return self._shards[hash(address) % len(self._shards)]

    def upsert(self, state: PoolState) -> Optional[PoolState]:
        """
        Insert or replace a pool record wholesale.

        Returns:
            The previous record for the address, if any
        """
        shard = self._shard(state.address)
        with shard.lock:
            previous = shard.pools.get(state.address)
            shard.pools[state.address] = state

        if previous is None or previous.pair_key != state.pair_key:
            with self._index_lock:
                if previous is not None:
                    self._unindex(previous.pair_key, previous.address)
                self._pair_index.setdefault(state.pair_key, set()).add(state.address)

        return previous

    def _unindex(self, key: Tuple[str, str], address: str) -> None:
        addresses = self._pair_index.get(key)
        if addresses is None:
            return
        addresses.discard(address)
        if not addresses:
            del self._pair_index[key]

    def get(self, address: str) -> Optional[PoolState]:
        shard = self._shard(address)
        with shard.lock:
            return shard.pools.get(address)

    def snapshot(self) -> List[PoolState]:
        """All cached records, one shard at a time."""
        records: List[PoolState] = []
        for shard in self._shards:
            with shard.lock:
                records.extend(shard.pools.values())
        return records

    def pools_for_pair(self, token_a: str, token_b: str) -> List[PoolState]:
        with self._index_lock:
            addresses = list(self._pair_index.get(pair_key(token_a, token_b), ()))

        pools = []
        for address in sorted(addresses):
            state = self.get(address)
            # Re-check: the record may have been replaced since the index read
            if state is not None and state.trades_pair(token_a, token_b):
                pools.append(state)
        return pools

    def remove_where(self, predicate: Callable[[PoolState], bool]) -> List[PoolState]:
        """Remove every record matching predicate and return the removed records."""
        removed: List[PoolState] = []
        for shard in self._shards:
            with shard.lock:
                doomed = [s for s in shard.pools.values() if predicate(s)]
                for state in doomed:
                    del shard.pools[state.address]
            removed.extend(doomed)

        if removed:
            with self._index_lock:
                for state in removed:
                    # Skip if a writer re-inserted the address meanwhile
                    if self.get(state.address) is None:
                        self._unindex(state.pair_key, state.address)
        return removed

    def pair_count(self) -> int:
        with self._index_lock:
            return len(self._pair_index)

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.pools)
        return total

    def __contains__(self, address: str) -> bool:
        return self.get(address) is not None

"""Tests for the sharded pool state cache."""

import threading

import pytest

from dex.pool_cache import PoolStateCache
from dex.types import DexKind, PoolState


def make_pool(address, token_a="SOL", token_b="USDC", last_update=0.0, reserve_a=1000):
    return PoolState(
        address=address,
        dex_kind=DexKind.CONSTANT_PRODUCT,
        token_a=token_a,
        token_b=token_b,
        reserve_a=reserve_a,
        reserve_b=100000,
        last_update=last_update,
    )


@pytest.fixture
def cache():
    return PoolStateCache(num_shards=4)


def test_invalid_shard_count():
    with pytest.raises(ValueError):
        PoolStateCache(num_shards=0)


def test_upsert_and_get(cache):
    pool = make_pool("p1")
    assert cache.upsert(pool) is None
    assert cache.get("p1") is pool
    assert "p1" in cache
    assert "missing" not in cache
    assert len(cache) == 1


def test_upsert_replaces_wholesale(cache):
    first = make_pool("p1", reserve_a=1000)
    second = make_pool("p1", reserve_a=2000)
    cache.upsert(first)
    assert cache.upsert(second) is first
    assert cache.get("p1").reserve_a == 2000
    assert len(cache) == 1


def test_pools_for_pair_is_order_independent(cache):
    cache.upsert(make_pool("p2"))
    cache.upsert(make_pool("p1", token_a="USDC", token_b="SOL"))
    cache.upsert(make_pool("p3", token_b="BONK"))

    forward = [p.address for p in cache.pools_for_pair("SOL", "USDC")]
    reverse = [p.address for p in cache.pools_for_pair("USDC", "SOL")]
    assert forward == ["p1", "p2"]
    assert reverse == forward
    assert cache.pair_count() == 2


def test_upsert_reindexes_changed_pair(cache):
    cache.upsert(make_pool("p1"))
    cache.upsert(make_pool("p1", token_b="BONK"))
    assert cache.pools_for_pair("SOL", "USDC") == []
    assert [p.address for p in cache.pools_for_pair("SOL", "BONK")] == ["p1"]
    assert cache.pair_count() == 1


def test_remove_where(cache):
    cache.upsert(make_pool("old", last_update=1.0))
    cache.upsert(make_pool("new", last_update=100.0))

    removed = cache.remove_where(lambda p: p.last_update < 50)

    assert [p.address for p in removed] == ["old"]
    assert cache.get("old") is None
    assert [p.address for p in cache.pools_for_pair("SOL", "USDC")] == ["new"]


def test_snapshot(cache):
    for i in range(10):
        cache.upsert(make_pool(f"p{i}"))
    assert sorted(p.address for p in cache.snapshot()) == [f"p{i}" for i in range(10)]


def test_concurrent_writers_and_readers(cache):
    """Readers never observe a torn record while writers replace pools."""
    errors = []
    stop = threading.Event()

    def writer(worker):
        for i in range(500):
            cache.upsert(make_pool(f"w{worker}-{i % 20}", reserve_a=1000 + i))

    def reader():
        while not stop.is_set():
            for pool in cache.pools_for_pair("SOL", "USDC"):
                if not pool.trades_pair("SOL", "USDC") or pool.reserve_a < 1000:
                    errors.append(pool)

    readers = [threading.Thread(target=reader) for _ in range(2)]
    writers = [threading.Thread(target=writer, args=(w,)) for w in range(4)]
    for t in readers + writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    for t in readers:
        t.join()

    assert errors == []
    assert len(cache) == 80
    assert len(cache.pools_for_pair("SOL", "USDC")) == 80

"""Tests for the proof cache."""

import threading

import pytest

from mindbridge_privacy.zk.cache import ProofCache
from mindbridge_privacy.zk.types import Proof, ProofPoints


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _proof(tag: int) -> Proof:
    points = ProofPoints(a=(tag, 0), b=((0, 0), (0, 0)), c=(0, 0))
    return Proof("wellness_milestone", points, (tag,))


def test_miss_then_hit() -> None:
    cache = ProofCache(ttl=10, clock=FakeClock())
    assert cache.get("fp") is None
    proof = _proof(1)
    assert cache.put("fp", proof) is proof
    assert cache.get("fp") is proof
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 1


def test_entries_expire() -> None:
    clock = FakeClock()
    cache = ProofCache(ttl=10, clock=clock)
    cache.put("fp", _proof(1))
    clock.advance(9.9)
    assert cache.get("fp") is not None
    clock.advance(0.1)
    assert cache.get("fp") is None
    assert len(cache) == 0
    assert cache.stats()["expired"] == 1


def test_put_is_idempotent_while_live() -> None:
    clock = FakeClock()
    cache = ProofCache(ttl=10, clock=clock)
    first = _proof(1)
    cache.put("fp", first)
    clock.advance(5)
    assert cache.put("fp", _proof(2)) is first

    # the original expiry still applies
    clock.advance(5)
    assert cache.get("fp") is None


def test_put_replaces_expired_entry() -> None:
    clock = FakeClock()
    cache = ProofCache(ttl=10, clock=clock)
    cache.put("fp", _proof(1))
    clock.advance(11)
    replacement = _proof(2)
    assert cache.put("fp", replacement) is replacement
    assert cache.get("fp") is replacement


def test_oldest_entry_evicted_when_full() -> None:
    cache = ProofCache(ttl=100, max_entries=2, clock=FakeClock())
    cache.put("a", _proof(1))
    cache.put("b", _proof(2))
    cache.put("c", _proof(3))
    assert cache.get("a") is None
    assert cache.get("b") is not None
    assert cache.get("c") is not None
    assert cache.stats()["evicted"] == 1


def test_expired_entries_purged_before_evicting() -> None:
    clock = FakeClock()
    cache = ProofCache(ttl=10, max_entries=2, clock=clock)
    cache.put("a", _proof(1))
    clock.advance(6)
    cache.put("b", _proof(2))
    clock.advance(5)
    cache.put("c", _proof(3))
    assert cache.get("b") is not None
    stats = cache.stats()
    assert stats["evicted"] == 0
    assert stats["expired"] == 1


def test_clear() -> None:
    cache = ProofCache(ttl=10)
    cache.put("a", _proof(1))
    cache.clear()
    assert len(cache) == 0
    assert cache.stats()["capacity"] > 0


@pytest.mark.parametrize("kwargs", [{"ttl": 0}, {"ttl": -1}, {"max_entries": 0}])
def test_invalid_configuration(kwargs) -> None:
    with pytest.raises(ValueError):
        ProofCache(**kwargs)


def test_concurrent_puts_keep_one_proof() -> None:
    cache = ProofCache(ttl=60)
    winners = []

    def worker(tag: int) -> None:
        winners.append(cache.put("shared", _proof(tag)))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(cache) == 1
    assert all(w is winners[0] for w in winners)

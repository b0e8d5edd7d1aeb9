"""In-memory proof cache keyed by input fingerprint, with TTL and a size bound."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .config import DEFAULT_CACHE_TTL_SECONDS, MAX_PROOFS_IN_MEMORY
from .types import Proof

Clock = Callable[[], float]


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    evicted: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expired": self.expired,
            "evicted": self.evicted,
        }


class ProofCache:
    """
    Thread-safe fingerprint -> Proof cache.

    Entries expire ``ttl`` seconds after insertion. When full, the oldest
    insertion is evicted. Putting an already-cached fingerprint keeps the
    original proof and expiry.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        max_entries: int = MAX_PROOFS_IN_MEMORY,
        clock: Optional[Clock] = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, Tuple[float, Proof]]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, fingerprint: str) -> Optional[Proof]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                self._stats.misses += 1
                return None
            expires_at, proof = entry
            if now >= expires_at:
                del self._entries[fingerprint]
                self._stats.expired += 1
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return proof

    def put(self, fingerprint: str, proof: Proof) -> Proof:
        """Store ``proof`` unless a live entry exists; return the cached proof."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is not None and now < entry[0]:
                return entry[1]
            self._entries.pop(fingerprint, None)
            self._purge_expired(now)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
                self._stats.evicted += 1
            self._entries[fingerprint] = (now + self.ttl, proof)
            return proof

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            data = self._stats.as_dict()
            data["size"] = len(self._entries)
            data["capacity"] = self.max_entries
            return data

    def _purge_expired(self, now: float) -> None:
        # insertion order == expiry order (fixed ttl)
        while self._entries:
            fingerprint, (expires_at, _) = next(iter(self._entries.items()))
            if now < expires_at:
                break
            del self._entries[fingerprint]
            self._stats.expired += 1

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from privpref.core.policy_engine.policy_models import EvaluationResult, Verdict


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Point-in-time cache counters."""

    total_entries: int
    grant_count: int
    deny_count: int
    hits: int
    misses: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_entries": self.total_entries,
            "grant_count": self.grant_count,
            "deny_count": self.deny_count,
            "hits": self.hits,
            "misses": self.misses,
        }


class DecisionCache:
    """In-memory TTL cache of GRANT/DENY verdicts keyed by decision_key().

    Policy:
    - An entry lives for the user's tolerated retention, in seconds.
    - ERROR results are never cached.
    - The policy fingerprint is part of the key, so a new policy version
      never serves verdicts computed under an old one.

    Security notes:
    - Memory-only and per-process. Bounded by max_entries (oldest evicted).

    """

    def __init__(
        self,
        *,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_entries = max(1, int(max_entries))
        self._clock = clock

        # key -> (expires_at, result)
        self._entries: "OrderedDict[str, Tuple[float, EvaluationResult]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = Lock()

    def get(self, key: str) -> Optional[EvaluationResult]:
        now = self._clock()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                self._misses += 1
                return None
            expires_at, result = item
            if expires_at <= now:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return result

    def put(self, key: str, result: EvaluationResult, ttl_seconds: int) -> bool:
        """Store a verdict. Returns False if it was not cacheable."""

        if result.verdict is Verdict.ERROR or ttl_seconds <= 0:
            return False

        expires_at = self._clock() + float(ttl_seconds)
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (expires_at, result)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return True

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            grants = sum(1 for _, r in self._entries.values() if r.verdict is Verdict.GRANT)
            return CacheStats(
                total_entries=len(self._entries),
                grant_count=grants,
                deny_count=len(self._entries) - grants,
                hits=self._hits,
                misses=self._misses,
            )

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            return removed

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in expired:
            del self._entries[k]

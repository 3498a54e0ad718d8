"""
Match-Scoped Caching Module for Aggregate Computations

Provides:
- Deterministic cache keys from a computation name and a filter map
- Compute-once memoisation keyed by (match, key)
- Bulk invalidation of every entry belonging to a match
- A global enable switch for benchmarking and determinism tests
- Hit/miss statistics

Producers handed to ``remember`` must be pure. Concurrent callers for the same
(match, key) are coalesced behind a per-scope lock that lives only while a
producer runs or callers wait. An invalidation that lands while a producer is
running wins: the result computed from the old rows is not stored.

Payloads are deep-copied on the way in and out, so callers may mutate the
bundles they receive.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from fragscore.core.config import CacheConfig
from fragscore.core.constants import DEFAULT_CACHE_TTL_SECONDS, DEFAULT_FILTER_SENTINEL

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Length of the hex digest kept in filter-derived keys
FILTER_HASH_LENGTH = 32

Scope = int | str

_MISSING = object()


def compute_filter_hash(filters: Mapping[str, Any]) -> str:
    """
    Hash a filter map independently of key insertion order.

    Filters are serialised as canonical JSON (keys sorted, no whitespace)
    before hashing, so ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}`` agree.
    """
    canonical = json.dumps(filters, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()[:FILTER_HASH_LENGTH]


def build_cache_key(name: str, filters: Mapping[str, Any] | None = None) -> str:
    """
    Build the cache key for a named computation.

    Args:
        name: Computation name, e.g. ``"aim-tracking"``
        filters: Scalar filter map; empty or None maps to the ``default`` sentinel

    Returns:
        ``"<name>_default"`` or ``"<name>_<filter hash>"``
    """
    if not name:
        raise ValueError("Cache key name must be a non-empty string")
    if not filters:
        return f"{name}_{DEFAULT_FILTER_SENTINEL}"
    return f"{name}_{compute_filter_hash(filters)}"


@dataclass
class CacheEntry:
    """A memoised result for one (match, key) scope."""

    key: str
    match_id: Scope
    payload: Any
    created_at: datetime
    expires_at: float | None = None  # clock value; None never expires

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "match_id": self.match_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class CacheStats:
    """Cache statistics."""

    total_entries: int
    matches: int
    hit_count: int = 0
    miss_count: int = 0
    enabled: bool = True

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return (self.hit_count / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "total_entries": self.total_entries,
            "matches": self.matches,
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "hit_rate_pct": round(self.hit_rate, 1),
        }


@dataclass
class _Flight:
    """In-flight state of one (match, key) scope while callers compute or wait."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0
    # Bumped by invalidation; a producer started under an older generation must not store
    generation: int = 0


class MatchScopedCache:
    """
    In-process memoisation of aggregate computations, scoped per match.

    Features:
    - ``remember`` computes once and serves many until expiry or invalidation
    - Producer exceptions propagate and are never cached
    - Results of producers overtaken by an invalidation are returned but not stored
    - Callers get deep copies, so mutating a result never alters the cache
    - ``enabled=False`` turns every call into a plain producer invocation
    - Thread-safe; concurrent misses on one scope run the producer once
    - Expired entries are swept periodically on store
    """

    # Minimum clock interval between two expiry sweeps
    SWEEP_INTERVAL_SECONDS = 60

    def __init__(
        self,
        enabled: bool = True,
        ttl_seconds: int | None = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            enabled: When False nothing is stored and every call recomputes
            ttl_seconds: Entry lifetime; None or 0 keeps entries until invalidated
            clock: Monotonic time source, injectable for tests
        """
        self.enabled = enabled
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        self._entries: dict[tuple[Scope, str], CacheEntry] = {}
        self._flights: dict[tuple[Scope, str], _Flight] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

        self._hit_count = 0
        self._miss_count = 0

    @classmethod
    def from_config(cls, config: CacheConfig) -> MatchScopedCache:
        return cls(enabled=config.enabled, ttl_seconds=config.ttl_seconds)

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return self._clock() + ttl if ttl else None

    def _lookup(self, scope: tuple[Scope, str]) -> Any:
        """Return the live payload for a scope or _MISSING, dropping expired entries."""
        with self._lock:
            entry = self._entries.get(scope)
            if entry is None:
                return _MISSING
            if entry.is_expired(self._clock()):
                del self._entries[scope]
                logger.debug(f"Cache entry expired: match={scope[0]} key={scope[1]}")
                return _MISSING
            return copy.deepcopy(entry.payload)

    def _make_entry(self, scope: tuple[Scope, str], value: Any, ttl_seconds: int | None) -> CacheEntry:
        return CacheEntry(
            key=scope[1],
            match_id=scope[0],
            payload=copy.deepcopy(value),
            created_at=datetime.now(),
            expires_at=self._expiry(ttl_seconds),
        )

    def _store(self, scope: tuple[Scope, str], value: Any, ttl_seconds: int | None) -> None:
        entry = self._make_entry(scope, value, ttl_seconds)
        with self._lock:
            self._entries[scope] = entry
            self._maybe_cleanup()

    def _store_if_current(
        self,
        scope: tuple[Scope, str],
        flight: _Flight,
        generation: int,
        value: Any,
        ttl_seconds: int | None,
    ) -> bool:
        entry = self._make_entry(scope, value, ttl_seconds)
        with self._lock:
            if flight.generation != generation:
                return False
            self._entries[scope] = entry
            self._maybe_cleanup()
            return True

    def _maybe_cleanup(self) -> None:
        """Sweep expired entries at most once per interval. Caller holds ``_lock``."""
        now = self._clock()
        if now - self._last_sweep < self.SWEEP_INTERVAL_SECONDS:
            return
        self._last_sweep = now
        self._cleanup_expired(now)

    def _cleanup_expired(self, now: float) -> int:
        expired = [scope for scope, entry in self._entries.items() if entry.is_expired(now)]
        for scope in expired:
            del self._entries[scope]
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def purge_expired(self) -> int:
        """Remove every expired entry now. Returns the number removed."""
        with self._lock:
            self._last_sweep = self._clock()
            return self._cleanup_expired(self._last_sweep)

    def _record(self, hit: bool) -> None:
        with self._lock:
            if hit:
                self._hit_count += 1
            else:
                self._miss_count += 1

    def _join_flight(self, scope: tuple[Scope, str]) -> _Flight:
        with self._lock:
            flight = self._flights.get(scope)
            if flight is None:
                flight = self._flights[scope] = _Flight()
            flight.waiters += 1
            return flight

    def _leave_flight(self, scope: tuple[Scope, str], flight: _Flight) -> None:
        with self._lock:
            flight.waiters -= 1
            if flight.waiters == 0 and self._flights.get(scope) is flight:
                del self._flights[scope]

    def _bump_flights(self, matches) -> None:
        """Mark in-flight producers of matching scopes stale. Caller holds ``_lock``."""
        for scope, flight in self._flights.items():
            if matches(scope):
                flight.generation += 1

    def remember(
        self,
        key: str,
        match_id: Scope,
        producer: Callable[[], T],
        ttl_seconds: int | None = None,
    ) -> T:
        """
        Return the cached value for (match_id, key), computing it on a miss.

        Args:
            key: Cache key, usually from ``build_cache_key``
            match_id: Match identifier (or another scope such as a player id)
            producer: Zero-argument, side-effect-free callable
            ttl_seconds: Override of the cache-wide TTL for this entry

        Returns:
            The cached or freshly produced value
        """
        if not self.enabled:
            return producer()

        scope = (match_id, key)
        value = self._lookup(scope)
        if value is not _MISSING:
            self._record(hit=True)
            logger.debug(f"Cache hit: match={match_id} key={key}")
            return value

        flight = self._join_flight(scope)
        try:
            with flight.lock:
                # Another caller may have filled the scope while we waited
                value = self._lookup(scope)
                if value is not _MISSING:
                    self._record(hit=True)
                    return value

                self._record(hit=False)
                logger.debug(f"Cache miss: match={match_id} key={key}")
                with self._lock:
                    generation = flight.generation
                value = producer()
                if not self._store_if_current(scope, flight, generation, value, ttl_seconds):
                    logger.debug(f"Discarded result invalidated mid-computation: match={match_id} key={key}")
                return value
        finally:
            self._leave_flight(scope, flight)

    def get(self, key: str, match_id: Scope) -> Any | None:
        """Get a copy of a cached value, or None when absent, expired or disabled."""
        if not self.enabled:
            return None

        value = self._lookup((match_id, key))
        self._record(hit=value is not _MISSING)
        return None if value is _MISSING else value

    def put(self, key: str, match_id: Scope, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a copy of a value directly; a no-op when the cache is disabled."""
        if not self.enabled:
            return
        self._store((match_id, key), value, ttl_seconds)

    def has(self, key: str, match_id: Scope) -> bool:
        if not self.enabled:
            return False
        return self._lookup((match_id, key)) is not _MISSING

    def invalidate(self, match_id: Scope, key: str) -> bool:
        """Drop a single entry. Returns True if one was removed."""
        scope = (match_id, key)
        with self._lock:
            removed = self._entries.pop(scope, None) is not None
            self._bump_flights(lambda s: s == scope)
        if removed:
            logger.debug(f"Invalidated cache entry: match={match_id} key={key}")
        return removed

    def invalidate_match(self, match_id: Scope) -> int:
        """
        Drop every entry for a match, e.g. after its demo was reprocessed.

        Producers already running for the match still return their result
        to their caller, but it is not stored.

        Returns:
            Number of entries removed
        """
        with self._lock:
            scopes = [scope for scope in self._entries if scope[0] == match_id]
            for scope in scopes:
                del self._entries[scope]
            self._bump_flights(lambda s: s[0] == match_id)

        logger.info(f"Invalidated {len(scopes)} cache entries for match {match_id}")
        return len(scopes)

    def clear(self) -> None:
        """Clear all cached data and statistics."""
        with self._lock:
            self._entries.clear()
            self._bump_flights(lambda s: True)
            self._hit_count = 0
            self._miss_count = 0
        logger.info("Cache cleared")

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                total_entries=len(self._entries),
                matches=len({scope[0] for scope in self._entries}),
                hit_count=self._hit_count,
                miss_count=self._miss_count,
                enabled=self.enabled,
            )

    def in_flight(self) -> int:
        """Number of scopes with a producer running or callers waiting."""
        with self._lock:
            return len(self._flights)

    def list_entries(self) -> list[dict]:
        with self._lock:
            return [entry.to_dict() for entry in self._entries.values()]

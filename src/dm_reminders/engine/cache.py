"""In-memory LRU + TTL cache for generated reminder content.

The cache is a pure performance optimization: losing it never changes
which reminders are shown, only how quickly. Entries expire ``ttl_seconds``
after creation regardless of access, and when the cache is full the entry
with the oldest access time is evicted.

Sweeping expired entries is driven from outside (the orchestrator
schedules ``cleanup_expired`` every ``sweep_interval_seconds``), so the
cache owns no timers of its own.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

from dm_reminders.core.constants import (
    DEFAULT_CACHE_TTL_SECONDS,
    LENGTH_WEIGHT,
    MAX_RELEVANCY,
    PERSISTENT_BONUS,
    TYPE_IMPORTANCE,
    TYPE_WEIGHT,
    URGENCY_WEIGHT,
)
from dm_reminders.core.logging import get_logger
from dm_reminders.models.reminders import ReminderContent


logger = get_logger(__name__)


def relevancy_score(content: ReminderContent) -> float:
    """Weighted importance of a piece of reminder content.

    Args:
        content: Content to score.

    Returns:
        Urgency rank * 0.4 + type importance * 0.3 + min(length / 100, 2)
        * 0.2, plus 1 for persistent content, capped at 10.
    """
    score = content.urgency.rank * URGENCY_WEIGHT
    score += TYPE_IMPORTANCE.get(content.type, 1) * TYPE_WEIGHT
    score += min(len(content.content) / 100, 2) * LENGTH_WEIGHT
    if content.persistent:
        score += PERSISTENT_BONUS
    return min(score, MAX_RELEVANCY)


@dataclass
class CacheEntry:
    """Single cache entry with access metadata.

    Attributes:
        key: Cache key.
        content: Cached reminder content.
        created: Insertion time (seconds).
        accessed: Last read or insertion time (seconds).
        hits: Successful reads of this entry.
        relevancy_score: Importance computed at insertion.
    """

    key: str
    content: ReminderContent
    created: float
    accessed: float
    hits: int = 0
    relevancy_score: float = 0.0


@dataclass
class CacheEntryStats:
    """Observability view of one entry."""

    key: str
    hits: int
    age_seconds: float
    relevancy: float


@dataclass
class CacheStats:
    """Statistics for the reminder cache.

    Attributes:
        size: Entries currently stored.
        max_size: Capacity.
        hit_count: Successful lookups.
        miss_count: Failed lookups (absent or expired).
        eviction_count: Entries evicted for capacity.
        expired_count: Entries removed because their TTL elapsed.
        hit_rate: Hits over total lookups (0.0 when there were none).
        entries: Per-entry age, hits and relevancy.
    """

    size: int
    max_size: int
    hit_count: int
    miss_count: int
    eviction_count: int
    expired_count: int
    hit_rate: float
    entries: list[CacheEntryStats] = field(default_factory=list)


class ReminderCache:
    """LRU + TTL cache of reminder content keyed by request fingerprint.

    Usage:
        cache = ReminderCache(max_size=50, ttl_seconds=300)
        cache.set("turn_start:abc", content)
        cache.get("turn_start:abc")  # -> content, hits += 1
    """

    def __init__(
        self,
        max_size: int = 50,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries (>= 1).
            ttl_seconds: Entry lifetime in seconds (> 0).
            clock: Time source in seconds.

        Raises:
            ValueError: If max_size or ttl_seconds is out of range.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hit_count = 0
        self._miss_count = 0
        self._eviction_count = 0
        self._expired_count = 0

    @property
    def sweep_interval_seconds(self) -> float:
        """How often expired entries should be purged (half the TTL)."""
        return self.ttl_seconds / 2

    @property
    def hit_rate(self) -> float:
        """Hits over total lookups since the last clear."""
        total = self._hit_count + self._miss_count
        return self._hit_count / total if total else 0.0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._is_expired(entry, self._clock())

    def get(self, key: str) -> ReminderContent | None:
        """Look up content.

        Args:
            key: Cache key.

        Returns:
            The content, or None if absent or expired. A hit refreshes the
            entry's access time.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._miss_count += 1
            return None

        now = self._clock()
        if self._is_expired(entry, now):
            del self._entries[key]
            self._expired_count += 1
            self._miss_count += 1
            logger.debug("Cache entry expired", key=key)
            return None

        entry.accessed = now
        entry.hits += 1
        self._hit_count += 1
        return entry.content

    def set(self, key: str, content: ReminderContent) -> None:
        """Store content, evicting the least recently accessed entry when full.

        Args:
            key: Cache key.
            content: Content to store; replaces any existing entry.
        """
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            content=content,
            created=now,
            accessed=now,
            relevancy_score=relevancy_score(content),
        )

    def invalidate(self, key: str) -> bool:
        """Remove one entry.

        Returns:
            True if the entry existed.
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove every entry and reset the counters."""
        self._entries.clear()
        self._hit_count = 0
        self._miss_count = 0
        self._eviction_count = 0
        self._expired_count = 0

    def cleanup_expired(self) -> int:
        """Purge every expired entry regardless of access.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        self._expired_count += len(expired)
        if expired:
            logger.debug("Cache sweep", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def get_stats(self) -> CacheStats:
        """Snapshot of cache statistics."""
        now = self._clock()
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hit_count=self._hit_count,
            miss_count=self._miss_count,
            eviction_count=self._eviction_count,
            expired_count=self._expired_count,
            hit_rate=self.hit_rate,
            entries=[
                CacheEntryStats(
                    key=entry.key,
                    hits=entry.hits,
                    age_seconds=now - entry.created,
                    relevancy=entry.relevancy_score,
                )
                for entry in self._entries.values()
            ],
        )

    def entry(self, key: str) -> CacheEntry | None:
        """Raw entry for inspection, without touching access statistics."""
        return self._entries.get(key)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created > self.ttl_seconds

    def _evict_lru(self) -> None:
        # O(n) scan; n is bounded by max_size
        lru = min(self._entries.values(), key=lambda e: e.accessed, default=None)
        if lru is None:
            return
        del self._entries[lru.key]
        self._eviction_count += 1
        logger.debug("Cache eviction", key=lru.key, accessed=lru.accessed)


__all__ = [
    "CacheEntry",
    "CacheEntryStats",
    "CacheStats",
    "ReminderCache",
    "relevancy_score",
]

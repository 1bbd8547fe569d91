"""Tests for the reminder content cache."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from dm_reminders.engine.cache import ReminderCache, relevancy_score
from dm_reminders.models import ReminderContent, ReminderType, Urgency


if TYPE_CHECKING:
    from tests.conftest import FakeClock


def _content(
    reminder_id: str = "r1",
    *,
    text: str = "Goblin: 7/7 HP",
    reminder_type: ReminderType = ReminderType.TURN_START,
    urgency: Urgency = Urgency.MEDIUM,
    persistent: bool = False,
) -> ReminderContent:
    return ReminderContent(
        id=reminder_id,
        content=text,
        type=reminder_type,
        urgency=urgency,
        persistent=persistent,
    )


@pytest.fixture
def cache(fake_clock: FakeClock) -> ReminderCache:
    """Provide a small cache on the manual clock."""
    return ReminderCache(max_size=2, ttl_seconds=300, clock=fake_clock)


class TestRelevancyScore:
    """Tests for relevancy_score."""

    def test_weighted_score(self) -> None:
        """Test the weighted components."""
        content = _content(
            text="x" * 50,
            reminder_type=ReminderType.DEATH_TRIGGER,
            urgency=Urgency.CRITICAL,
            persistent=True,
        )
        # 4 * 0.4 + 5 * 0.3 + 0.5 * 0.2 + 1
        assert relevancy_score(content) == pytest.approx(4.2)

    def test_length_component_capped(self) -> None:
        """Test that very long text contributes at most 0.4."""
        short = _content(text="x" * 200)
        long = _content(text="x" * 5000)
        assert relevancy_score(short) == pytest.approx(relevancy_score(long))


class TestReminderCache:
    """Tests for ReminderCache."""

    def test_invalid_arguments(self) -> None:
        """Test capacity and TTL bounds."""
        with pytest.raises(ValueError):
            ReminderCache(max_size=0)
        with pytest.raises(ValueError):
            ReminderCache(ttl_seconds=0)

    def test_round_trip(self, cache: ReminderCache) -> None:
        """Test a hit returns the content and counts a hit only."""
        content = _content()
        cache.set("k", content)

        assert cache.get("k") == content

        stats = cache.get_stats()
        assert stats.hit_count == 1
        assert stats.miss_count == 0
        assert stats.entries[0].hits == 1

    def test_miss(self, cache: ReminderCache) -> None:
        """Test an absent key counts a miss."""
        assert cache.get("missing") is None
        assert cache.get_stats().miss_count == 1
        assert cache.hit_rate == 0.0

    def test_expiry(self, cache: ReminderCache, fake_clock: FakeClock) -> None:
        """Test an entry past its TTL is removed on read."""
        cache.set("k", _content())
        fake_clock.advance(300)
        assert cache.get("k") is not None

        fake_clock.advance(0.5)
        assert cache.get("k") is None
        stats = cache.get_stats()
        assert stats.expired_count == 1
        assert stats.miss_count == 1
        assert len(cache) == 0

    def test_lru_eviction(self, cache: ReminderCache, fake_clock: FakeClock) -> None:
        """Test the least recently accessed entry is evicted when full."""
        cache.set("a", _content("a"))
        fake_clock.advance(1)
        cache.set("b", _content("b"))
        fake_clock.advance(1)
        cache.get("a")
        fake_clock.advance(1)

        cache.set("c", _content("c"))

        assert "b" not in cache
        assert "a" in cache
        assert "c" in cache
        assert cache.get_stats().eviction_count == 1

    def test_replace_does_not_evict(self, cache: ReminderCache) -> None:
        """Test overwriting an existing key at capacity evicts nothing."""
        cache.set("a", _content("a"))
        cache.set("b", _content("b"))
        cache.set("a", _content("a", text="updated"))

        assert len(cache) == 2
        assert cache.get_stats().eviction_count == 0
        assert cache.get("a") == _content("a", text="updated")

    def test_invalidate(self, cache: ReminderCache) -> None:
        """Test invalidating reports whether the entry existed."""
        cache.set("a", _content())

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False

    def test_cleanup_expired(self, cache: ReminderCache, fake_clock: FakeClock) -> None:
        """Test the sweep removes expired entries without reads."""
        cache.set("old", _content("old"))
        fake_clock.advance(200)
        cache.set("new", _content("new"))
        fake_clock.advance(150)

        assert cache.cleanup_expired() == 1
        assert "new" in cache
        assert cache.get_stats().expired_count == 1

    def test_clear_resets_counters(self, cache: ReminderCache) -> None:
        """Test clearing removes entries and statistics."""
        cache.set("a", _content())
        cache.get("a")
        cache.get("b")

        cache.clear()

        stats = cache.get_stats()
        assert (stats.size, stats.hit_count, stats.miss_count) == (0, 0, 0)

    def test_stats(self, cache: ReminderCache, fake_clock: FakeClock) -> None:
        """Test hit rate, entry age and relevancy in statistics."""
        cache.set("a", _content())
        fake_clock.advance(10)
        cache.get("a")
        cache.get("zzz")

        stats = cache.get_stats()

        assert stats.hit_rate == 0.5
        assert stats.max_size == 2
        assert stats.entries[0].age_seconds == pytest.approx(10)
        assert stats.entries[0].relevancy == pytest.approx(relevancy_score(_content()))
        assert cache.sweep_interval_seconds == 150

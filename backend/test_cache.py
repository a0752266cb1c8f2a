"""Response cache: per-read TTL, recency tracking, LRU eviction, refresh threshold."""

import math

from cache import ResponseCache

MINUTE = 60


def make_cache(clock, max_size=10):
    return ResponseCache(max_size=max_size, ttl=30 * MINUTE, refresh_threshold=20 * MINUTE, clock=clock)


# ─────────────────────────── Get / put ──────────────────────────

def test_put_then_get_round_trip(clock):
    c = make_cache(clock)
    c.put("Paris", {"temp": 72})
    assert c.get("Paris", 10 ** 9) == {"temp": 72}


def test_keys_are_case_insensitive(clock):
    c = make_cache(clock)
    c.put("New York", "ny")
    assert c.get("new york") == "ny"
    assert c.get("  NEW YORK ") == "ny"
    assert "NeW yOrK" in c
    assert len(c) == 1


def test_missing_key_returns_none(clock):
    assert make_cache(clock).get("atlantis") is None


def test_ttl_is_scoped_per_read(clock):
    c = make_cache(clock)
    c.put("tokyo", "stale-but-kept")
    clock.advance(31 * MINUTE)
    assert c.get("tokyo", 30 * MINUTE) is None
    assert c.get("tokyo", math.inf) == "stale-but-kept"
    assert c.get_stale("tokyo") == "stale-but-kept"
    assert "tokyo" in c


def test_entry_is_fresh_until_exactly_ttl(clock):
    c = make_cache(clock)
    c.put("denver", 1)
    clock.advance(30 * MINUTE - 1)
    assert c.get("denver") == 1
    clock.advance(1)
    assert c.get("denver") is None


def test_stale_read_still_updates_recency(clock):
    c = make_cache(clock)
    c.put("tokyo", 1)
    clock.advance(2 * 60 * MINUTE)
    assert c.get("tokyo") is None
    entry = c.entry("tokyo")
    assert entry.access_count == 2
    assert entry.last_accessed_at == clock.now


def test_put_on_existing_entry_carries_access_count(clock):
    c = make_cache(clock)
    c.put("paris", "v1")
    c.get("paris")
    c.get("paris")
    clock.advance(5 * MINUTE)
    c.put("paris", "v2")
    entry = c.entry("paris")
    assert entry.payload == "v2"
    assert entry.access_count == 4
    assert entry.stored_at == clock.now


def test_new_entry_starts_with_one_access(clock):
    c = make_cache(clock)
    c.put("miami", 1)
    assert c.entry("miami").access_count == 1


# ─────────────────────────── Eviction ───────────────────────────

def test_capacity_plus_one_evicts_exactly_one(clock):
    c = make_cache(clock, max_size=10)
    for i in range(11):
        c.put(f"city-{i}", i)
        clock.advance(1)
    assert len(c) == 10
    assert "city-0" not in c


def test_evicts_least_recently_accessed_not_oldest_stored(clock):
    c = make_cache(clock, max_size=3)
    for name in ("a", "b", "c"):
        c.put(name, name)
        clock.advance(1)
    c.get("a")                 # a is now the most recent
    clock.advance(1)
    c.put("d", "d")
    assert "b" not in c
    assert all(k in c for k in ("a", "c", "d"))


def test_eviction_tie_broken_by_insertion_order(clock):
    c = make_cache(clock, max_size=2)
    c.put("first", 1)
    c.put("second", 2)
    c.put("third", 3)          # all share one timestamp
    assert "first" not in c
    assert "second" in c and "third" in c


def test_replacing_entry_does_not_evict(clock):
    c = make_cache(clock, max_size=2)
    c.put("a", 1)
    c.put("b", 2)
    c.put("a", 3)
    assert len(c) == 2


# ─────────────────────────── Refresh threshold ──────────────────

def test_refresh_due_after_threshold(clock):
    c = make_cache(clock)
    c.put("paris", 1)
    clock.advance(20 * MINUTE)
    assert not c.is_refresh_due("paris")
    clock.advance(1)
    assert c.is_refresh_due("paris")
    assert c.get("paris") == 1          # still fresh under the 30 minute TTL


def test_refresh_due_false_for_missing_key(clock):
    assert not make_cache(clock).is_refresh_due("nowhere")


# ─────────────────────────── Housekeeping ───────────────────────

def test_invalidate_and_clear(clock):
    c = make_cache(clock)
    c.put("a", 1)
    c.put("b", 2)
    assert c.invalidate("A")
    assert not c.invalidate("A")
    c.clear()
    assert len(c) == 0


def test_stats_and_age(clock):
    c = make_cache(clock)
    c.put("boston", 1)
    clock.advance(25 * MINUTE)
    assert c.age("boston") == 25 * MINUTE
    assert c.age("nowhere") is None
    [info] = c.stats()
    assert info["key"] == "boston"
    assert info["refreshDue"] is True
    assert info["accessCount"] == 1

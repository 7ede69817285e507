from __future__ import annotations

from timetagger.cache import DecodeCache, TimelineCache
from timetagger.entities import TimeRecord


def _records():
    return [TimeRecord(0, 100, "a", 1, 0), TimeRecord(100, 150, "b", 0, 5)]


def test_timeline_cache_hits_within_ttl_and_expires():
    cache = TimelineCache(ttl_ms=5000)
    cache.put("2024-01-01", _records(), now=1000, open_tail=False)
    assert cache.get("2024-01-01", now=5999, current_rest_time=0) == _records()
    assert cache.get("2024-01-01", now=6000, current_rest_time=0) is None
    assert cache.get("2024-01-01", now=6001, current_rest_time=0) is None


def test_timeline_cache_refreshes_open_tail():
    cache = TimelineCache(ttl_ms=5000)
    cache.put("2024-01-01", _records(), now=150, open_tail=True)
    records = cache.get("2024-01-01", now=4000, current_rest_time=750)
    assert records[0] == _records()[0]
    assert records[1] == TimeRecord(100, 4000, "b", 0, 750)


def test_timeline_cache_rejects_clock_going_backwards():
    cache = TimelineCache(ttl_ms=5000)
    cache.put("2024-01-01", _records(), now=1000, open_tail=False)
    assert cache.get("2024-01-01", now=999, current_rest_time=0) is None


def test_store_writes_invalidate_affected_days():
    cache = TimelineCache(ttl_ms=5000)
    cache.put("2024-01-01", _records(), now=0, open_tail=False)
    cache.put("2024-01-02", _records(), now=0, open_tail=False)

    cache.on_store_write({"pending_queue", "current_rest_time"})
    assert cache.get("2024-01-01", 1, 0) is not None

    cache.on_store_write({"events_2024-01-01"})
    assert cache.get("2024-01-01", 1, 0) is None
    assert cache.get("2024-01-02", 1, 0) is not None

    cache.on_store_write({"last_tag"})
    assert cache.get("2024-01-02", 1, 0) is None


def test_disabled_caches_always_miss():
    timeline = TimelineCache(ttl_ms=5000, enabled=False)
    timeline.put("2024-01-01", _records(), now=0, open_tail=False)
    assert timeline.get("2024-01-01", 1, 0) is None
    assert TimelineCache(ttl_ms=0).enabled is False

    decoded: DecodeCache[tuple] = DecodeCache(enabled=False)
    decoded.put("[]", ())
    assert decoded.get("[]") is None


def test_decode_cache_keys_on_raw_payload():
    decoded: DecodeCache[tuple] = DecodeCache()
    decoded.put("[1]", (1,))
    assert decoded.get("[1]") == (1,)
    assert decoded.get("[2]") is None
    decoded.clear()
    assert decoded.get("[1]") is None


def test_caching_does_not_change_query_results(make_tagger, clock):
    cached = make_tagger(cache_enabled=True)
    uncached = make_tagger(cache_enabled=False)
    cached.activate()

    def assert_same():
        assert cached.today_records() == uncached.today_records()
        assert cached.pending_tasks() == uncached.pending_tasks()
        assert cached.get_suggested_task() == uncached.get_suggested_task()
        assert cached.current_task() == uncached.current_task()

    steps = [
        lambda: cached.add_task(2, "docs"),
        lambda: cached.add_task(3, "inbox"),
        lambda: cached.add_task(0, "incident"),
        cached.start_task_rest,
        cached.stop_task_rest,
        lambda: cached.update_current_task_tag("incident review"),
        cached.complete_task,
        cached.start_first_pending_task,
    ]
    assert_same()
    for step in steps:
        clock.advance(seconds=2)
        assert_same()
        step()
        assert_same()
        clock.advance(seconds=1)
        assert_same()

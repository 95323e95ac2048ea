from __future__ import annotations

import json
import unittest


class FakeClock:
    """Millisecond time source for throttle tests."""

    def __init__(self) -> None:
        self.t = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, ms: float) -> None:
        self.t += float(ms)


class BrokenStore:
    """Store whose every operation fails, like a full or disabled storage."""

    def get(self, key: str) -> str | None:
        raise OSError("storage disabled")

    def set(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")

    def remove(self, key: str) -> None:
        raise OSError("storage disabled")


def _make(video_id: str = "lecture-1", store=None, clk: FakeClock | None = None):
    from watchprogress.core.diagnostics import CollectDiagnostics
    from watchprogress.core.store import MemoryStore
    from watchprogress.core.tracker import IntervalProgressTracker

    clk = clk or FakeClock()
    store = store if store is not None else MemoryStore()
    diags = CollectDiagnostics()
    tracker = IntervalProgressTracker(video_id, store=store, time_fn=clk.now, diagnostic_fn=diags)
    return tracker, store, clk, diags


def _watch(tracker, clk: FakeClock, start: float, end: float) -> None:
    tracker.start_watching(start)
    clk.advance(1000)
    tracker.update_watching(end)
    tracker.stop_watching()


class StateMachineTests(unittest.TestCase):
    def test_overlapping_sessions_merge(self) -> None:
        from watchprogress.core.intervals import Interval

        tracker, _, clk, _ = _make()
        tracker.init(100)
        _watch(tracker, clk, 0, 20)
        _watch(tracker, clk, 15, 30)
        _watch(tracker, clk, 50, 60)

        self.assertEqual(tracker.watched_intervals, (Interval(0, 30), Interval(50, 60)))
        self.assertEqual(tracker.unique_seconds_watched(), 40)
        self.assertEqual(tracker.progress_percentage(), 40)

    def test_touching_sessions_fold(self) -> None:
        from watchprogress.core.intervals import Interval

        tracker, _, clk, _ = _make()
        tracker.init(100)
        _watch(tracker, clk, 0, 10)
        _watch(tracker, clk, 10, 20)
        self.assertEqual(tracker.watched_intervals, (Interval(0, 20),))

    def test_seek_never_counts_skipped_span(self) -> None:
        from watchprogress.core.intervals import Interval

        tracker, _, clk, _ = _make()
        tracker.init(100)
        tracker.start_watching(0)
        clk.advance(1000)
        tracker.update_watching(10)
        tracker.handle_seek(50)
        self.assertTrue(tracker.is_watching)
        self.assertEqual(tracker.current_interval, Interval(50, 50))
        clk.advance(1000)
        tracker.update_watching(60)
        tracker.stop_watching()

        self.assertEqual(tracker.watched_intervals, (Interval(0, 10), Interval(50, 60)))
        for iv in tracker.watched_intervals:
            self.assertFalse(iv.start < 30 < iv.end)

    def test_seek_while_idle_opens_interval(self) -> None:
        tracker, _, _, _ = _make()
        tracker.handle_seek(42)
        self.assertTrue(tracker.is_watching)
        self.assertEqual(tracker.current_interval.start, 42)

    def test_double_start_keeps_first_interval(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.start_watching(5)
        clk.advance(2000)
        tracker.start_watching(99)
        self.assertEqual(tracker.current_interval.start, 5)

    def test_idle_operations_are_noops(self) -> None:
        tracker, store, _, _ = _make()
        tracker.stop_watching()
        tracker.stop_watching()
        tracker.update_watching(50)
        self.assertFalse(tracker.is_watching)
        self.assertIsNone(tracker.current_interval)
        self.assertEqual(tracker.watched_intervals, ())
        self.assertEqual(store.entries, {})

    def test_zero_width_interval_discarded(self) -> None:
        tracker, store, _, diags = _make()
        tracker.start_watching(12)
        tracker.stop_watching()
        self.assertEqual(tracker.watched_intervals, ())
        self.assertFalse(tracker.is_watching)
        self.assertEqual(store.entries, {})
        self.assertIn("InvalidInterval", diags.kinds())

    def test_position_behind_start_is_discarded(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.start_watching(30)
        clk.advance(1000)
        tracker.update_watching(10)
        tracker.stop_watching()
        self.assertEqual(tracker.watched_intervals, ())


class ThrottleTests(unittest.TestCase):
    def test_updates_inside_window_are_dropped(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.start_watching(0)

        clk.advance(1000)
        tracker.update_watching(5)
        self.assertEqual(tracker.current_interval.end, 5)

        clk.advance(500)
        tracker.update_watching(8)
        self.assertEqual(tracker.current_interval.end, 5)

        clk.advance(499)
        tracker.update_watching(9)
        self.assertEqual(tracker.current_interval.end, 5)

        clk.advance(501)
        tracker.update_watching(10)
        self.assertEqual(tracker.current_interval.end, 10)

    def test_update_right_after_start_is_throttled(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.start_watching(0)
        clk.advance(200)
        tracker.update_watching(0.2)
        self.assertEqual(tracker.current_interval.end, 0)

    def test_flush_commits_last_accepted_position(self) -> None:
        from watchprogress.core.intervals import Interval

        tracker, _, clk, _ = _make()
        tracker.init(100)
        tracker.start_watching(0)
        clk.advance(1000)
        tracker.update_watching(5)
        clk.advance(300)
        tracker.update_watching(5.3)
        tracker.stop_watching()
        self.assertEqual(tracker.watched_intervals, (Interval(0, 5),))

    def test_zero_throttle_accepts_every_update(self) -> None:
        from watchprogress.core.store import MemoryStore
        from watchprogress.core.tracker import IntervalProgressTracker

        clk = FakeClock()
        tracker = IntervalProgressTracker("v", store=MemoryStore(), throttle_ms=0, time_fn=clk.now)
        tracker.start_watching(0)
        tracker.update_watching(1)
        tracker.update_watching(2)
        self.assertEqual(tracker.current_interval.end, 2)


class MetricsTests(unittest.TestCase):
    def test_clamped_to_duration(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.init(30)
        _watch(tracker, clk, 0, 20)
        _watch(tracker, clk, 40, 55)
        self.assertEqual(tracker.unique_seconds_watched(), 30)
        self.assertEqual(tracker.progress_percentage(), 100)

    def test_unique_seconds_is_float(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.init(100)
        _watch(tracker, clk, 0, 20)
        self.assertIsInstance(tracker.unique_seconds_watched(), float)
        self.assertEqual(tracker.unique_seconds_watched(), 20.0)

        tracker.init(12.5)
        self.assertEqual(tracker.unique_seconds_watched(), 12.5)
        self.assertEqual(tracker.progress_percentage(), 100)

    def test_zero_duration_progress_is_zero(self) -> None:
        tracker, _, clk, _ = _make()
        _watch(tracker, clk, 0, 20)
        self.assertEqual(tracker.total_duration, 0)
        self.assertEqual(tracker.progress_percentage(), 0)
        self.assertEqual(tracker.unique_seconds_watched(), 0)

    def test_rounding(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.init(200)
        _watch(tracker, clk, 0, 10.5)
        self.assertEqual(tracker.unique_seconds_watched(), 11)
        # 11 / 200 = 5.5% rounds half up
        self.assertEqual(tracker.progress_percentage(), 6)

    def test_init_overwrites_duration(self) -> None:
        tracker, _, _, _ = _make()
        tracker.init(100)
        tracker.init(60)
        self.assertEqual(tracker.total_duration, 60)

    def test_invalid_duration_becomes_zero(self) -> None:
        tracker, _, _, diags = _make()
        tracker.init(float("nan"))
        self.assertEqual(tracker.total_duration, 0)
        tracker.init(-5)
        self.assertEqual(tracker.total_duration, 0)
        self.assertEqual(diags.kinds().count("InvalidDuration"), 2)

    def test_timeline_segments(self) -> None:
        tracker, _, clk, _ = _make()
        tracker.init(100)
        _watch(tracker, clk, 10, 30)
        (seg,) = tracker.timeline_segments()
        self.assertAlmostEqual(seg.offset_fraction, 0.1)
        self.assertAlmostEqual(seg.width_fraction, 0.2)


class PersistenceTests(unittest.TestCase):
    def test_commit_writes_record(self) -> None:
        tracker, store, clk, _ = _make("abc")
        tracker.init(120)
        _watch(tracker, clk, 0, 20)
        _watch(tracker, clk, 50, 60)

        data = json.loads(store.entries["video-progress-abc"])
        self.assertEqual(
            data,
            {
                "watchedIntervals": [{"start": 0.0, "end": 20.0}, {"start": 50.0, "end": 60.0}],
                "totalDuration": 120.0,
                "lastPosition": 60.0,
            },
        )

    def test_state_hydrated_on_construction(self) -> None:
        from watchprogress.core.intervals import Interval

        tracker, store, clk, _ = _make("abc")
        tracker.init(120)
        _watch(tracker, clk, 0, 20)

        again, _, _, _ = _make("abc", store=store)
        self.assertEqual(again.watched_intervals, (Interval(0, 20),))
        self.assertEqual(again.total_duration, 120)
        self.assertEqual(again.resume_position(), 20)
        self.assertFalse(again.is_watching)

    def test_resume_position_reads_persisted_record(self) -> None:
        from watchprogress.core.store import MemoryStore

        store = MemoryStore()
        store.set(
            "video-progress-abc",
            json.dumps({"watchedIntervals": [{"start": 0, "end": 10}], "totalDuration": 50, "lastPosition": 42}),
        )
        tracker, _, clk, _ = _make("abc", store=store)
        self.assertEqual(tracker.resume_position(), 42)

        # In-memory progress that was never persisted does not move it.
        tracker.start_watching(0)
        clk.advance(1000)
        tracker.update_watching(48)
        self.assertEqual(tracker.resume_position(), 42)

    def test_resume_position_without_record(self) -> None:
        tracker, _, _, _ = _make()
        self.assertEqual(tracker.resume_position(), 0)

    def test_overlapping_saved_intervals_are_normalized(self) -> None:
        from watchprogress.core.intervals import Interval
        from watchprogress.core.store import MemoryStore

        store = MemoryStore()
        store.set(
            "video-progress-old",
            json.dumps(
                {
                    "watchedIntervals": [{"start": 15, "end": 30}, {"start": 0, "end": 20}, {"start": 40, "end": 45}],
                    "totalDuration": 60,
                    "lastPosition": 45,
                }
            ),
        )
        tracker, _, _, _ = _make("old", store=store)
        self.assertEqual(tracker.watched_intervals, (Interval(0, 30), Interval(40, 45)))
        self.assertEqual(tracker.unique_seconds_watched(), 35)

    def test_malformed_record_falls_back_to_empty(self) -> None:
        from watchprogress.core.store import MemoryStore

        store = MemoryStore()
        store.set("video-progress-bad", "{not json")
        tracker, _, _, diags = _make("bad", store=store)
        self.assertEqual(tracker.watched_intervals, ())
        self.assertEqual(tracker.total_duration, 0)
        self.assertEqual(tracker.resume_position(), 0)
        self.assertIn("MalformedPersistedData", diags.kinds())

    def test_hostile_records_never_raise(self) -> None:
        from watchprogress.core.store import MemoryStore

        huge = "1" + "0" * 400
        for raw in (
            '{"totalDuration": %s}' % huge,
            '{"watchedIntervals": [], "lastPosition": %s}' % huge,
            "[" * 100000 + "]" * 100000,
            '{"watchedIntervals": ["0-10"]}',
        ):
            with self.subTest(raw=raw[:40]):
                store = MemoryStore(entries={"video-progress-x": raw})
                tracker, _, _, diags = _make("x", store=store)
                self.assertEqual(tracker.watched_intervals, ())
                self.assertEqual(tracker.total_duration, 0)
                self.assertEqual(tracker.resume_position(), 0)
                self.assertIn("MalformedPersistedData", diags.kinds())

    def test_failed_file_save_not_reported_as_resume_point(self) -> None:
        import tempfile
        from pathlib import Path

        from watchprogress.core.intervals import Interval
        from watchprogress.core.store import JsonFileStore

        with tempfile.TemporaryDirectory() as tmp:
            blocker = Path(tmp) / "blocker"
            blocker.write_text("", encoding="utf-8")
            store = JsonFileStore(path=blocker / "data" / "progress.json")
            tracker, _, clk, diags = _make("x", store=store)
            tracker.init(100)
            _watch(tracker, clk, 0, 20)

            self.assertEqual(tracker.watched_intervals, (Interval(0, 20),))
            self.assertEqual(tracker.progress_percentage(), 20)
            self.assertEqual(tracker.resume_position(), 0)
            self.assertIn("StorageUnavailable", diags.kinds())

    def test_reset_clears_memory_and_record(self) -> None:
        tracker, store, clk, _ = _make("abc")
        tracker.init(100)
        _watch(tracker, clk, 0, 20)
        tracker.start_watching(30)

        tracker.reset_progress()
        self.assertEqual(tracker.watched_intervals, ())
        self.assertIsNone(tracker.current_interval)
        self.assertFalse(tracker.is_watching)
        self.assertEqual(tracker.total_duration, 100)
        self.assertNotIn("video-progress-abc", store.entries)

        again, _, _, _ = _make("abc", store=store)
        self.assertEqual(again.watched_intervals, ())
        self.assertEqual(again.resume_position(), 0)

    def test_storage_failure_never_raises(self) -> None:
        from watchprogress.core.intervals import Interval

        tracker, _, clk, diags = _make("abc", store=BrokenStore())
        tracker.init(100)
        _watch(tracker, clk, 0, 20)
        self.assertEqual(tracker.watched_intervals, (Interval(0, 20),))
        self.assertEqual(tracker.progress_percentage(), 20)
        self.assertEqual(tracker.resume_position(), 0)
        tracker.reset_progress()
        self.assertEqual(tracker.watched_intervals, ())
        self.assertIn("StorageUnavailable", diags.kinds())

    def test_trackers_are_isolated_by_video_id(self) -> None:
        tracker_a, store, clk, _ = _make("a")
        tracker_a.init(100)
        _watch(tracker_a, clk, 0, 20)

        tracker_b, _, _, _ = _make("b", store=store)
        self.assertEqual(tracker_b.watched_intervals, ())
        tracker_b.reset_progress()
        self.assertIn("video-progress-a", store.entries)


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import math
from typing import Callable

from .clock import monotonic_ms
from .diagnostics import Diagnostic, DiagnosticFn, InvalidInterval, PrintDiagnostics
from .intervals import Interval, TimelineSegment, merge_intervals, timeline_segments, total_length
from .store import KeyValueStore, ProgressRecord, ProgressStore

DEFAULT_THROTTLE_MS = 1000.0


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


class IntervalProgressTracker:
    """Tracks unique watched time of one video as a set of disjoint intervals.

    Playback events drive a two-state machine (idle / watching). While
    watching, the open interval grows with throttled position updates; on
    stop or seek it is committed, merged into the watched set and persisted.

    Never raises for ordinary event sequences: double start, double stop and
    updates while idle are no-ops, and storage failures go to
    `diagnostic_fn`.
    """

    def __init__(
        self,
        video_id: str,
        *,
        store: KeyValueStore,
        throttle_ms: float = DEFAULT_THROTTLE_MS,
        time_fn: Callable[[], float] = monotonic_ms,
        diagnostic_fn: DiagnosticFn | None = None,
    ) -> None:
        self._video_id = str(video_id)
        self._diagnostic_fn: DiagnosticFn = diagnostic_fn or PrintDiagnostics()
        self._progress = ProgressStore(store=store, diagnostic_fn=self._diagnostic_fn)
        self._time_fn = time_fn
        self.throttle_ms = max(0.0, float(throttle_ms))

        self._intervals: list[Interval] = []
        self._current: Interval | None = None
        self._total_duration = 0.0
        self._is_watching = False
        self._last_update_ms = 0.0

        self._hydrate()

    # -- state -------------------------------------------------------------

    @property
    def video_id(self) -> str:
        return self._video_id

    @property
    def total_duration(self) -> float:
        return self._total_duration

    @property
    def is_watching(self) -> bool:
        return self._is_watching

    @property
    def current_interval(self) -> Interval | None:
        return self._current

    @property
    def watched_intervals(self) -> tuple[Interval, ...]:
        return tuple(self._intervals)

    def _debug(self, kind: str, message: str, error: BaseException | None = None) -> None:
        self._diagnostic_fn(
            Diagnostic(level="debug", kind=kind, video_id=self._video_id, message=message, error=error)
        )

    def _hydrate(self) -> None:
        rec = self._progress.load(self._video_id)
        self._intervals = list(rec.watched_intervals)
        self._total_duration = float(rec.total_duration)

    def _record(self) -> ProgressRecord:
        last = self._intervals[-1].end if self._intervals else 0.0
        return ProgressRecord(
            watched_intervals=list(self._intervals),
            total_duration=self._total_duration,
            last_position=last,
        )

    # -- playback events ---------------------------------------------------

    def init(self, duration: float) -> None:
        """Set the media duration reported by the player (replaces any earlier value)."""

        try:
            d = float(duration)
        except (TypeError, ValueError):
            d = math.nan
        if not math.isfinite(d) or d < 0:
            self._diagnostic_fn(
                Diagnostic(
                    level="warn",
                    kind="InvalidDuration",
                    video_id=self._video_id,
                    message=f"ignoring duration {duration!r}; using 0",
                )
            )
            d = 0.0
        self._total_duration = d

    def start_watching(self, t: float) -> None:
        if self._is_watching:
            return
        self._is_watching = True
        self._current = Interval(start=float(t), end=float(t))
        self._last_update_ms = float(self._time_fn())

    def update_watching(self, t: float) -> None:
        if not self._is_watching or self._current is None:
            return
        now = float(self._time_fn())
        if now - self._last_update_ms < self.throttle_ms:
            return
        # Position can move behind the interval start (e.g. a missed seek);
        # keep the interval well-formed and let stop discard it.
        end = max(float(t), self._current.start)
        self._current = Interval(start=self._current.start, end=end)
        self._last_update_ms = now

    def stop_watching(self) -> None:
        if not self._is_watching:
            return
        cur = self._current
        if cur is not None:
            if cur.end > cur.start:
                self._intervals.append(Interval(start=cur.start, end=cur.end))
                self._merge()
                self._debug("commit", f"[{cur.start:.2f}, {cur.end:.2f}] -> {len(self._intervals)} interval(s)")
                self._progress.save(self._video_id, self._record())
            else:
                self._debug(
                    "InvalidInterval",
                    f"discarded zero-width interval at {cur.start:.2f}",
                    InvalidInterval(f"[{cur.start:.2f}, {cur.end:.2f}]"),
                )
        self._is_watching = False
        self._current = None

    def handle_seek(self, t: float) -> None:
        """Close the running interval and reopen at the seek target.

        The skipped span is never counted: the new interval starts exactly at
        `t` with zero width.
        """

        if self._is_watching:
            self.stop_watching()
        self.start_watching(t)

    def _merge(self) -> None:
        before = len(self._intervals)
        if before <= 1:
            return
        self._intervals = merge_intervals(self._intervals)
        if len(self._intervals) != before:
            self._debug("merge", f"{before} -> {len(self._intervals)} interval(s)")

    # -- queries -----------------------------------------------------------

    def unique_seconds_watched(self) -> float:
        """Whole seconds of unique content, as a float clamped to [0, total_duration].

        The clamp can leave a fractional value when the duration itself is
        fractional.
        """

        rounded = _round_half_up(total_length(self._intervals))
        return float(max(0.0, min(float(rounded), self._total_duration)))

    def progress_percentage(self) -> int:
        if self._total_duration <= 0:
            return 0
        pct = _round_half_up(self.unique_seconds_watched() / self._total_duration * 100.0)
        return max(0, min(pct, 100))

    def resume_position(self) -> float:
        """Last position from the persisted record (not the in-memory state)."""

        return self._progress.load_last_position(self._video_id)

    def timeline_segments(self) -> list[TimelineSegment]:
        return timeline_segments(self._intervals, self._total_duration)

    def reset_progress(self) -> None:
        self._intervals = []
        self._current = None
        self._is_watching = False
        self._progress.delete(self._video_id)
        self._debug("reset", "progress cleared")

from __future__ import annotations

from dataclasses import dataclass

from .clock import format_time
from .intervals import Interval, TimelineSegment
from .tracker import IntervalProgressTracker


@dataclass(frozen=True)
class ProgressSnapshot:
    percentage: int
    unique_seconds: float
    unique_label: str
    duration: float
    duration_label: str
    intervals: tuple[Interval, ...]
    segments: tuple[TimelineSegment, ...]


@dataclass
class PlaybackSession:
    """Wires player events to an `IntervalProgressTracker`.

    Event names follow the HTML media element (loadedmetadata, play, pause,
    ended, timeupdate, seeking) so any player adapter can forward them 1:1.
    """

    tracker: IntervalProgressTracker
    resume_tail_sec: float = 5.0
    debug: bool = False

    def on_loaded_metadata(self, duration: float) -> float | None:
        """Initialize the tracker; return where playback should resume, if anywhere.

        Resumes only strictly inside (0, duration - resume_tail_sec) so a video
        finished last time starts over.
        """

        self.tracker.init(duration)
        resume = self.tracker.resume_position()
        if resume > 0 and resume < self.tracker.total_duration - float(self.resume_tail_sec):
            if self.debug:
                print(f"[debug] session: video_id={self.tracker.video_id} resume at {format_time(resume)}")
            return resume
        return None

    def on_play(self, t: float) -> None:
        self.tracker.start_watching(t)

    def on_time_update(self, t: float) -> None:
        self.tracker.update_watching(t)

    def on_pause(self) -> None:
        self.tracker.stop_watching()

    def on_ended(self) -> None:
        self.tracker.stop_watching()

    def on_seeking(self, t: float) -> None:
        self.tracker.handle_seek(t)

    def on_close(self) -> None:
        # Flush whatever is open before the host goes away.
        if self.tracker.is_watching:
            self.tracker.stop_watching()

    def on_reset(self) -> float:
        self.tracker.reset_progress()
        return 0.0

    def snapshot(self) -> ProgressSnapshot:
        unique = self.tracker.unique_seconds_watched()
        duration = self.tracker.total_duration
        return ProgressSnapshot(
            percentage=self.tracker.progress_percentage(),
            unique_seconds=unique,
            unique_label=format_time(unique),
            duration=duration,
            duration_label=format_time(duration),
            intervals=self.tracker.watched_intervals,
            segments=tuple(self.tracker.timeline_segments()),
        )

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence


@dataclass(frozen=True)
class Interval:
    """A closed span of media, in seconds, watched contiguously."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Interval end ({self.end}) must be >= start ({self.start})")

    @property
    def width(self) -> float:
        return float(self.end) - float(self.start)

    def to_dict(self) -> dict[str, float]:
        return {"start": float(self.start), "end": float(self.end)}

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "Interval":
        return Interval(start=float(d["start"]), end=float(d["end"]))


@dataclass(frozen=True)
class TimelineSegment:
    """Position of one watched interval on a 0..1 timeline bar."""

    offset_fraction: float
    width_fraction: float


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Union overlapping or touching intervals into sorted, disjoint spans.

    Ties on `start` put the longer interval first so the sweep is
    deterministic. After merging, `out[i].end < out[i + 1].start` holds for
    every adjacent pair.
    """

    ordered = sorted(intervals, key=lambda iv: (iv.start, -iv.end))
    if len(ordered) <= 1:
        return ordered

    merged: list[Interval] = []
    run_start = ordered[0].start
    run_end = ordered[0].end
    for nxt in ordered[1:]:
        # Touching boundaries fold too (closed intervals).
        if run_end >= nxt.start:
            run_end = max(run_end, nxt.end)
        else:
            merged.append(Interval(start=run_start, end=run_end))
            run_start, run_end = nxt.start, nxt.end
    merged.append(Interval(start=run_start, end=run_end))
    return merged


def total_length(intervals: Iterable[Interval]) -> float:
    return sum((iv.width for iv in intervals), 0.0)


def timeline_segments(intervals: Sequence[Interval], total_duration: float) -> list[TimelineSegment]:
    """Map intervals onto fractions of `total_duration` for drawing.

    Returns an empty list when the duration is unknown (<= 0). Offsets are
    clamped to [0, 1] and widths so that a segment never runs past the bar.
    """

    total = float(total_duration)
    if not (total > 0):
        return []

    out: list[TimelineSegment] = []
    for iv in intervals:
        offset = min(1.0, max(0.0, iv.start / total))
        width = min(1.0 - offset, max(0.0, iv.width / total))
        out.append(TimelineSegment(offset_fraction=offset, width_fraction=width))
    return out

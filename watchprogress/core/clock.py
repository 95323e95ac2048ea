from __future__ import annotations

import math
import time
from dataclasses import dataclass


def monotonic_ms() -> float:
    """Default tracker time source: monotonic wall-clock in milliseconds."""

    return time.monotonic() * 1000.0


@dataclass
class ManualClock:
    """Settable millisecond clock for replaying recorded events."""

    now_ms: float = 0.0

    def __call__(self) -> float:
        return float(self.now_ms)

    def set_seconds(self, seconds: float) -> None:
        self.now_ms = float(seconds) * 1000.0


def format_time(seconds: float) -> str:
    """Render a media offset as M:SS (minutes are not wrapped into hours)."""

    s = float(seconds)
    if not math.isfinite(s) or s < 0:
        s = 0.0
    minutes = int(s // 60)
    rest = int(s % 60)
    return f"{minutes}:{rest:02d}"

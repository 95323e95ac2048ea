from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from ..core.session import PlaybackSession


class PropertySource(Protocol):
    def get_property(self, name: str) -> Any: ...

    def command(self, *cmd: Any, timeout_sec: float = 2.0) -> dict[str, Any]: ...


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


@dataclass
class MpvProgressWatcher:
    """Turns polled mpv properties into `PlaybackSession` events.

    mpv exposes state, not events, so transitions are derived between polls:
    pause flips become play/pause, an eof-reached rising edge becomes ended,
    and a position jump that wall-clock time cannot explain becomes a seek.
    Detection is only as precise as the poll interval.
    """

    client: PropertySource
    session: PlaybackSession
    seek_threshold_sec: float = 2.0
    time_fn: Callable[[], float] = time.monotonic
    debug: bool = False

    _loaded: bool = False
    _playing: bool = False
    _eof: bool = False
    _last_pos: float | None = None
    _last_poll: float | None = None

    def _load_metadata(self) -> None:
        duration = _as_float(self.client.get_property("duration"))
        if duration is None or duration <= 0:
            return
        self._loaded = True
        target = self.session.on_loaded_metadata(duration)
        if target is not None:
            if self.debug:
                print(f"[debug] mpv-watch: seek to resume position {target:.2f}s")
            self.client.command("seek", target, "absolute")

    def _is_jump(self, pos: float, now: float) -> bool:
        if self._last_pos is None or self._last_poll is None:
            return False
        thr = float(self.seek_threshold_sec)
        elapsed = max(0.0, now - self._last_poll)
        return pos < self._last_pos - thr or pos > self._last_pos + elapsed + thr

    def poll(self) -> None:
        if not self._loaded:
            self._load_metadata()

        pos = _as_float(self.client.get_property("time-pos"))
        if pos is None:
            # Nothing loaded (idle) or still opening the file.
            return
        paused = self.client.get_property("pause") is True
        eof = self.client.get_property("eof-reached") is True
        now = float(self.time_fn())

        if eof:
            if not self._eof and self._playing:
                self.session.on_ended()
                self._playing = False
            self._eof = True
        else:
            self._eof = False
            playing = not paused
            if playing and not self._playing:
                self.session.on_play(pos)
                self._playing = True
            elif not playing and self._playing:
                self.session.on_pause()
                self._playing = False
            elif self._is_jump(pos, now):
                if self.debug:
                    print(f"[debug] mpv-watch: seek {self._last_pos:.2f}s -> {pos:.2f}s")
                self.session.on_seeking(pos)
            elif playing:
                self.session.on_time_update(pos)

        self._last_pos = pos
        self._last_poll = now

    def close(self) -> None:
        self.session.on_close()
        self._playing = False

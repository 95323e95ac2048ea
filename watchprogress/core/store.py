from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .diagnostics import Diagnostic, DiagnosticFn, MalformedPersistedData, PrintDiagnostics, StorageUnavailable
from .intervals import Interval, merge_intervals

KEY_PREFIX = "video-progress-"


def progress_key(video_id: str) -> str:
    return f"{KEY_PREFIX}{video_id}"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


@dataclass
class MemoryStore:
    """Dict-backed store; lives as long as the process."""

    entries: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.entries.get(key)

    def set(self, key: str, value: str) -> None:
        self.entries[key] = str(value)

    def remove(self, key: str) -> None:
        self.entries.pop(key, None)


@dataclass
class JsonFileStore:
    """Key-value store persisted to a single JSON file.

    Layout: {"version": 1, "entries": {key: serialized value}}. A corrupt or
    unreadable file loads as empty; write errors propagate to the caller.
    """

    path: Path
    debug: bool = False

    _entries: dict[str, str] | None = None

    def _ensure_loaded(self) -> dict[str, str]:
        if self._entries is not None:
            return self._entries
        self._entries = {}
        try:
            if not self.path.exists():
                return self._entries
            data = json.loads(self.path.read_text(encoding="utf-8"))
            raw = data.get("entries") if isinstance(data, dict) else None
            if isinstance(raw, dict):
                for k, v in raw.items():
                    if isinstance(k, str) and isinstance(v, str):
                        self._entries[k] = v
        except Exception as e:
            # Corrupt store should not crash playback.
            if self.debug:
                print(f"[debug] store: failed to load {self.path}: {e}")
            self._entries = {}
        return self._entries

    def _save(self) -> None:
        entries = self._ensure_loaded()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": 1,
            "entries": dict(sorted(entries.items(), key=lambda kv: kv[0])),
        }
        # Atomic-ish write
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str) -> str | None:
        return self._ensure_loaded().get(key)

    def _save_or_restore(self, key: str, previous: str | None) -> None:
        # The cache must only ever mirror what reached disk.
        try:
            self._save()
        except Exception:
            entries = self._ensure_loaded()
            if previous is None:
                entries.pop(key, None)
            else:
                entries[key] = previous
            raise

    def set(self, key: str, value: str) -> None:
        entries = self._ensure_loaded()
        previous = entries.get(key)
        entries[key] = str(value)
        self._save_or_restore(key, previous)

    def remove(self, key: str) -> None:
        entries = self._ensure_loaded()
        if key in entries:
            previous = entries.pop(key)
            self._save_or_restore(key, previous)


def _number(value: Any, *, what: str, default: float = 0.0) -> float:
    # JSON null / missing falls back like an unset field.
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedPersistedData(f"{what} must be a number, got {value!r}")
    try:
        out = float(value)
    except OverflowError as e:
        raise MalformedPersistedData(f"{what} is out of range") from e
    if not math.isfinite(out):
        raise MalformedPersistedData(f"{what} must be finite, got {value!r}")
    return out


@dataclass
class ProgressRecord:
    watched_intervals: list[Interval] = field(default_factory=list)
    total_duration: float = 0.0
    last_position: float = 0.0

    @staticmethod
    def empty() -> "ProgressRecord":
        return ProgressRecord()

    @staticmethod
    def from_dict(d: Any) -> "ProgressRecord":
        if not isinstance(d, dict):
            raise MalformedPersistedData(f"record must be an object, got {type(d).__name__}")

        raw_intervals = d.get("watchedIntervals")
        if raw_intervals is None:
            raw_intervals = []
        if not isinstance(raw_intervals, list):
            raise MalformedPersistedData("watchedIntervals must be a list")

        intervals: list[Interval] = []
        for i, item in enumerate(raw_intervals):
            if not isinstance(item, dict):
                raise MalformedPersistedData(f"watchedIntervals[{i}] must be an object")
            start = _number(item.get("start"), what=f"watchedIntervals[{i}].start", default=math.nan)
            end = _number(item.get("end"), what=f"watchedIntervals[{i}].end", default=math.nan)
            if math.isnan(start) or math.isnan(end):
                raise MalformedPersistedData(f"watchedIntervals[{i}] requires start and end")
            if end < start:
                raise MalformedPersistedData(f"watchedIntervals[{i}] has end < start")
            if end == start:
                continue
            intervals.append(Interval(start=start, end=end))

        total = _number(d.get("totalDuration"), what="totalDuration")
        if total < 0:
            raise MalformedPersistedData("totalDuration must be >= 0")
        last = _number(d.get("lastPosition"), what="lastPosition")
        return ProgressRecord(watched_intervals=intervals, total_duration=total, last_position=max(0.0, last))

    def to_dict(self) -> dict[str, Any]:
        return {
            "watchedIntervals": [iv.to_dict() for iv in self.watched_intervals],
            "totalDuration": float(self.total_duration),
            "lastPosition": float(self.last_position),
        }

    @staticmethod
    def decode(raw: str) -> "ProgressRecord":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError, RecursionError) as e:
            raise MalformedPersistedData(f"unparsable value: {e}") from e
        return ProgressRecord.from_dict(data)

    def encode(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass
class ProgressStore:
    """Persistence boundary for per-video progress records.

    Nothing raised by the underlying store or by a corrupt value escapes:
    failures are reported to `diagnostic_fn` and loads fall back to empty.
    """

    store: KeyValueStore
    diagnostic_fn: DiagnosticFn = field(default_factory=PrintDiagnostics)

    def _report(self, level: str, kind: str, video_id: str, message: str, error: BaseException | None = None) -> None:
        self.diagnostic_fn(Diagnostic(level=level, kind=kind, video_id=video_id, message=message, error=error))

    def _read(self, video_id: str) -> str | None:
        try:
            return self.store.get(progress_key(video_id))
        except Exception as e:
            err = StorageUnavailable(str(e))
            self._report("error", "StorageUnavailable", video_id, "load failed; using empty progress", err)
            return None

    def load(self, video_id: str) -> ProgressRecord:
        raw = self._read(video_id)
        if raw is None:
            return ProgressRecord.empty()
        try:
            rec = ProgressRecord.decode(raw)
        except MalformedPersistedData as e:
            self._report("error", "MalformedPersistedData", video_id, "error loading saved progress", e)
            return ProgressRecord.empty()

        # Older saves or concurrent writers may have left overlaps behind.
        if len(rec.watched_intervals) > 1:
            rec.watched_intervals = merge_intervals(rec.watched_intervals)
        return rec

    def load_last_position(self, video_id: str) -> float:
        raw = self._read(video_id)
        if raw is None:
            return 0.0
        try:
            return ProgressRecord.decode(raw).last_position
        except MalformedPersistedData as e:
            self._report("warn", "MalformedPersistedData", video_id, "resume position unavailable", e)
            return 0.0

    def save(self, video_id: str, record: ProgressRecord) -> bool:
        try:
            self.store.set(progress_key(video_id), record.encode())
            return True
        except Exception as e:
            err = StorageUnavailable(str(e))
            self._report("error", "StorageUnavailable", video_id, "save skipped; progress kept in memory", err)
            return False

    def delete(self, video_id: str) -> bool:
        try:
            self.store.remove(progress_key(video_id))
            return True
        except Exception as e:
            err = StorageUnavailable(str(e))
            self._report("error", "StorageUnavailable", video_id, "delete failed", err)
            return False

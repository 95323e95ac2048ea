from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable


class ProgressError(RuntimeError):
    pass


class MalformedPersistedData(ProgressError):
    """Stored progress value is unparsable or does not match the record schema."""


class InvalidInterval(ProgressError):
    """Interval with zero or negative width. Discarded, never surfaced."""


class StorageUnavailable(ProgressError):
    """The underlying key-value store raised on get/set/remove."""


@dataclass(frozen=True)
class Diagnostic:
    level: str  # "debug" | "warn" | "error"
    kind: str
    video_id: str
    message: str
    error: BaseException | None = None

    def format(self) -> str:
        line = f"[{self.level}] progress: {self.kind} video_id={self.video_id} {self.message}"
        if self.error is not None:
            line += f" ({type(self.error).__name__}: {self.error})"
        return line


DiagnosticFn = Callable[[Diagnostic], None]


@dataclass
class PrintDiagnostics:
    """Console sink for tracker diagnostics.

    Warnings and errors are always printed (to stderr); debug lines only when
    `debug` is on.
    """

    debug: bool = False

    def __call__(self, diag: Diagnostic) -> None:
        if diag.level == "debug":
            if self.debug:
                print(diag.format())
            return
        print(diag.format(), file=sys.stderr)


@dataclass
class CollectDiagnostics:
    """Sink that keeps every diagnostic; handy for hosts that surface them in a UI."""

    items: list[Diagnostic] = field(default_factory=list)

    def __call__(self, diag: Diagnostic) -> None:
        self.items.append(diag)

    def kinds(self) -> list[str]:
        return [d.kind for d in self.items]

"""WatchProgress - unique watched-time tracking for video playback.

Core concept: playback is recorded as intervals of media time; overlapping
and touching intervals are merged so rewatching never inflates progress and
skipping ahead never counts the skipped span.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"

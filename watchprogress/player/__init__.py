"""Player adapters.

mpv is observed over its JSON IPC; properties are polled and turned into
playback events for the tracker.
"""

from .mpv_ipc import MpvIpcClient, MpvIpcError
from .mpv_watcher import MpvProgressWatcher

__all__ = ["MpvIpcClient", "MpvIpcError", "MpvProgressWatcher"]

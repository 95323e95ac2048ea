from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any, Iterator

from watchprogress.core.clock import ManualClock, format_time
from watchprogress.core.config import Settings, load_settings_profile
from watchprogress.core.diagnostics import PrintDiagnostics
from watchprogress.core.session import PlaybackSession
from watchprogress.core.store import JsonFileStore
from watchprogress.core.tracker import IntervalProgressTracker
from watchprogress.player import MpvIpcClient, MpvIpcError, MpvProgressWatcher


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="watchprogress")
    parser.add_argument("--profile", type=str, default=None, help="Select config/settings.{profile}.json if present.")
    parser.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Override settings config path (takes precedence over profile).",
    )
    parser.add_argument("--data", type=str, default=None, help="Override the progress store JSON file.")
    parser.add_argument("--debug", action="store_true", help="Print debug diagnostics.")

    sub = parser.add_subparsers(dest="command", required=True)

    p_status = sub.add_parser("status", help="Show stored progress for a video.")
    p_status.add_argument("video_id")

    p_reset = sub.add_parser("reset", help="Delete stored progress for a video.")
    p_reset.add_argument("video_id")

    p_replay = sub.add_parser("replay", help="Feed a JSON-lines player event log through the tracker.")
    p_replay.add_argument("video_id")
    p_replay.add_argument("events", type=str, help="Event log path ('-' for stdin).")

    p_watch = sub.add_parser("watch", help="Track a running mpv through its IPC socket.")
    p_watch.add_argument("video_id")
    p_watch.add_argument("--ipc", type=str, default=None, help="mpv --input-ipc-server path.")

    return parser.parse_args(argv)


def _build_tracker(
    video_id: str, *, settings: Settings, store: JsonFileStore, debug: bool, time_fn: Any = None
) -> IntervalProgressTracker:
    kwargs: dict[str, Any] = {}
    if time_fn is not None:
        kwargs["time_fn"] = time_fn
    return IntervalProgressTracker(
        video_id,
        store=store,
        throttle_ms=settings.throttle_ms,
        diagnostic_fn=PrintDiagnostics(debug=debug),
        **kwargs,
    )


def _print_status(tracker: IntervalProgressTracker) -> None:
    unique = tracker.unique_seconds_watched()
    print(f"video:    {tracker.video_id}")
    print(f"duration: {format_time(tracker.total_duration)} ({tracker.total_duration:.2f}s)")
    print(f"progress: {tracker.progress_percentage()}%")
    print(f"watched:  {unique:g} seconds ({format_time(unique)})")
    print(f"resume:   {format_time(tracker.resume_position())}")
    if tracker.watched_intervals:
        print("intervals:")
        for iv in tracker.watched_intervals:
            print(f"  {iv.start:.2f}s - {iv.end:.2f}s ({format_time(iv.start)} - {format_time(iv.end)})")


def _read_events(path: str) -> Iterator[dict[str, Any]]:
    fh = sys.stdin if path == "-" else open(path, "r", encoding="utf-8")
    try:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            evt = json.loads(line)
            if not isinstance(evt, dict) or "event" not in evt:
                raise ValueError(f"{path}:{lineno}: expected an object with an 'event' field")
            yield evt
    finally:
        if fh is not sys.stdin:
            fh.close()


def _replay(session: PlaybackSession, clock: ManualClock, events: Iterator[dict[str, Any]], *, debug: bool) -> int:
    applied = 0
    for evt in events:
        if "at" in evt:
            clock.set_seconds(float(evt["at"]))
        kind = str(evt["event"]).strip().lower()
        t = float(evt.get("t", 0.0))
        if kind == "loadedmetadata":
            resume = session.on_loaded_metadata(float(evt["duration"]))
            if resume is not None:
                print(f"resume available at {format_time(resume)}")
        elif kind == "play":
            session.on_play(t)
        elif kind == "timeupdate":
            session.on_time_update(t)
        elif kind == "pause":
            session.on_pause()
        elif kind == "ended":
            session.on_ended()
        elif kind == "seeking":
            session.on_seeking(t)
        elif kind == "close":
            session.on_close()
        elif kind == "reset":
            session.on_reset()
        else:
            raise ValueError(f"unknown event {kind!r}")
        applied += 1
        if debug:
            print(f"[debug] replay: {kind} t={t:.2f} watching={session.tracker.is_watching}")
    session.on_close()
    return applied


def _watch(watcher: MpvProgressWatcher, *, poll_interval_sec: float) -> None:
    try:
        while True:
            watcher.poll()
            time.sleep(poll_interval_sec)
    except KeyboardInterrupt:
        print("Exiting.")
    except MpvIpcError as e:
        print(f"mpv went away: {e}")
    finally:
        watcher.close()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    repo_root = Path(__file__).resolve().parents[1]
    settings_path = Path(args.settings).expanduser() if args.settings else None
    try:
        settings = load_settings_profile(
            repo_root=repo_root, profile=args.profile, path_override=settings_path, debug=args.debug
        )
    except (OSError, ValueError) as e:
        print(f"Error: invalid settings: {e}", file=sys.stderr)
        return 2
    debug = bool(args.debug or settings.debug)

    data_path = Path(args.data).expanduser() if args.data else settings.resolved_data_path(repo_root)
    store = JsonFileStore(path=data_path, debug=debug)

    if args.command == "status":
        _print_status(_build_tracker(args.video_id, settings=settings, store=store, debug=debug))
        return 0

    if args.command == "reset":
        tracker = _build_tracker(args.video_id, settings=settings, store=store, debug=debug)
        tracker.reset_progress()
        print(f"Progress reset for {args.video_id}.")
        return 0

    if args.command == "replay":
        clock = ManualClock()
        tracker = _build_tracker(args.video_id, settings=settings, store=store, debug=debug, time_fn=clock)
        session = PlaybackSession(tracker=tracker, resume_tail_sec=settings.resume_tail_sec, debug=debug)
        try:
            applied = _replay(session, clock, _read_events(args.events), debug=debug)
        except (OSError, ValueError, KeyError) as e:
            session.on_close()
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Replayed {applied} event(s).")
        _print_status(tracker)
        return 0

    if args.command == "watch":
        tracker = _build_tracker(args.video_id, settings=settings, store=store, debug=debug)
        session = PlaybackSession(tracker=tracker, resume_tail_sec=settings.resume_tail_sec, debug=debug)
        client = MpvIpcClient(ipc_path=args.ipc or settings.ipc_path, debug=debug)
        try:
            client.connect()
        except MpvIpcError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Tracking {args.video_id} via {client.ipc_path} (Ctrl-C to stop)")
        watcher = MpvProgressWatcher(
            client=client, session=session, seek_threshold_sec=settings.seek_threshold_sec, debug=debug
        )
        try:
            _watch(watcher, poll_interval_sec=settings.poll_interval_sec)
        finally:
            client.close()
        _print_status(tracker)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())

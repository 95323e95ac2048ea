from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path


def resolve_profile_config_path(*, repo_root: Path, base_name: str, profile: str | None) -> tuple[Path, str]:
    """Return the config path to use for a given base file name and profile.

    Resolution order:
    1) config/{base_name}.{profile}.json if profile is provided and file exists
    2) config/{base_name}.json

    Returns (path, reason) where reason is "profile" or "fallback".
    """

    config_dir = repo_root / "config"
    if profile:
        prof = str(profile).strip().lower()
        prof_path = config_dir / f"{base_name}.{prof}.json"
        if prof_path.exists():
            return prof_path, "profile"
    return config_dir / f"{base_name}.json", "fallback"


@dataclass(frozen=True)
class Settings:
    data_path: Path = Path("data") / "progress.json"
    throttle_ms: float = 1000.0
    resume_tail_sec: float = 5.0
    seek_threshold_sec: float = 2.0
    poll_interval_sec: float = 0.25
    ipc_path: str = "/tmp/mpv.sock"
    debug: bool = False

    def resolved_data_path(self, repo_root: Path) -> Path:
        p = self.data_path.expanduser()
        return p if p.is_absolute() else repo_root / p


def load_settings_profile(
    *,
    repo_root: Path,
    profile: str | None = None,
    path_override: Path | None = None,
    debug: bool = False,
) -> Settings:
    """Load settings honoring per-profile files and optional overrides.

    An explicit override must exist; a missing default file yields defaults.
    """

    if path_override is not None:
        if debug:
            print(f"[debug] config: profile={profile or '-'} settings={path_override} (override)")
        return load_settings(path_override)
    path, reason = resolve_profile_config_path(repo_root=repo_root, base_name="settings", profile=profile)
    if not path.exists():
        if debug:
            print(f"[debug] config: profile={profile or '-'} settings={path} missing; using defaults")
        return Settings()
    if debug:
        print(f"[debug] config: profile={profile or '-'} settings={path} ({reason})")
    return load_settings(path)


def load_settings(path: Path) -> Settings:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a JSON object")
    defaults = Settings()

    data_path_raw = data.get("data_path")
    data_path = Path(str(data_path_raw)) if data_path_raw else defaults.data_path
    throttle_ms = float(data.get("throttle_ms", defaults.throttle_ms))
    if throttle_ms < 0:
        raise ValueError("throttle_ms must be >= 0")
    resume_tail_sec = float(data.get("resume_tail_sec", defaults.resume_tail_sec))
    if resume_tail_sec < 0:
        raise ValueError("resume_tail_sec must be >= 0")
    seek_threshold_sec = float(data.get("seek_threshold_sec", defaults.seek_threshold_sec))
    if seek_threshold_sec <= 0:
        raise ValueError("seek_threshold_sec must be > 0")
    poll_interval_sec = float(data.get("poll_interval_sec", defaults.poll_interval_sec))
    if poll_interval_sec <= 0:
        raise ValueError("poll_interval_sec must be > 0")
    ipc_path = str(data.get("ipc_path") or defaults.ipc_path)
    debug = bool(data.get("debug", defaults.debug))
    return Settings(
        data_path=data_path,
        throttle_ms=throttle_ms,
        resume_tail_sec=resume_tail_sec,
        seek_threshold_sec=seek_threshold_sec,
        poll_interval_sec=poll_interval_sec,
        ipc_path=ipc_path,
        debug=debug,
    )

"""Per-user locations for clawde's config, state, logs and attachments."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "clawde"
STATE_FILE_NAME = "state.json"


def _platform_dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_config_path))


def state_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_state_path))


def state_file() -> Path:
    """Default location of the persisted bot state."""
    return state_dir() / STATE_FILE_NAME


def log_dir() -> Path:
    return ensure_dir(Path(_platform_dirs().user_log_path))


def attachment_dir() -> Path:
    # Downloads are throwaway, so they live in the cache tree.
    return ensure_dir(Path(_platform_dirs().user_cache_path) / "attachments")

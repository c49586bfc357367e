"""Utility functions for polychat."""

import time
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the polychat data directory (~/.polychat)."""
    return ensure_dir(Path.home() / ".polychat")


def get_channels_path(user_id: str) -> Path:
    """Get the cached channel list file for a user."""
    return ensure_dir(get_data_path() / "channels") / f"{safe_filename(user_id)}.json"


def safe_filename(name: str) -> str:
    """Convert a string to a safe filename."""
    unsafe = '<>:"/\\|?*'
    for char in unsafe:
        name = name.replace(char, "_")
    return name.strip() or "_"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)

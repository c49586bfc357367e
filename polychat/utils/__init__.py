"""Utility functions for polychat."""

from polychat.utils.helpers import ensure_dir, get_data_path, now_ms

__all__ = ["ensure_dir", "get_data_path", "now_ms"]

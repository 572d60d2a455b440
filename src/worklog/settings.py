"""Environment-driven settings for store discovery."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MARKER_DIR = ".worklog"
DEFAULT_DEPTH_LIMIT = 5

INDEX_FILENAME = "index.json"
SCOPE_FILENAME = "scope.json"
TASKS_DIRNAME = "tasks"


@dataclass(frozen=True)
class Settings:
    """Knobs shared by every scope operation.

    ``marker_dir`` is the name of the directory that turns a folder into a
    store; ``depth_limit`` bounds the recursive topology scan.
    """

    marker_dir: str = DEFAULT_MARKER_DIR
    depth_limit: int = DEFAULT_DEPTH_LIMIT


def _depth_from_env() -> int:
    raw = os.getenv("WORKLOG_DEPTH_LIMIT", "")
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_DEPTH_LIMIT
    return value if value > 0 else DEFAULT_DEPTH_LIMIT


def load_settings() -> Settings:
    """Build settings from ``WORKLOG_DIR`` and ``WORKLOG_DEPTH_LIMIT``."""
    marker_dir = os.getenv("WORKLOG_DIR", DEFAULT_MARKER_DIR).strip() or DEFAULT_MARKER_DIR
    return Settings(marker_dir=marker_dir, depth_limit=_depth_from_env())

"""Load and save ``scope.json`` as a tagged ``RootConfig``/``ChildConfig``."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from worklog.errors import INVALID_STATE, WorklogError
from worklog.scope.types import ChildConfig, RootConfig, ScopeConfig, ScopeEntry
from worklog.settings import SCOPE_FILENAME
from worklog.store.schemas import SCOPE_SCHEMA, validate_data
from worklog.utils.fs import atomic_write_json

logger = logging.getLogger(__name__)


def config_path(store_path: Path) -> Path:
    return store_path / SCOPE_FILENAME


def parse_config(data: object, source: str = SCOPE_FILENAME) -> ScopeConfig:
    """Turn a decoded ``scope.json`` document into its variant.

    Raises:
        WorklogError: ``invalid_state`` when the document fits neither shape.
    """
    ok, errors = validate_data(data, SCOPE_SCHEMA)
    if not ok or not isinstance(data, dict):
        raise WorklogError(INVALID_STATE, f"Malformed scope config {source}: {'; '.join(errors)}")
    if "parent" in data:
        return ChildConfig(parent=str(data["parent"]))
    return RootConfig(children=tuple(ScopeEntry.from_dict(item) for item in data["children"]))


def load_config(store_path: Path) -> ScopeConfig | None:
    """Return the store's configuration, or ``None`` when it has none.

    Raises:
        WorklogError: ``invalid_state`` when the file is unreadable JSON or
            fits neither shape.
    """
    path = config_path(store_path)
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise WorklogError(INVALID_STATE, f"Malformed scope config {path}: {exc}") from exc
    return parse_config(data, str(path))


def try_load_config(store_path: Path) -> ScopeConfig | None:
    """Best-effort variant used by scans: any failure reads as no config."""
    try:
        return load_config(store_path)
    except (WorklogError, OSError) as exc:
        logger.debug("ignoring unreadable scope config in %s: %s", store_path, exc)
        return None


def load_root_config(store_path: Path) -> RootConfig:
    """Load a root configuration; a missing file is an empty child list.

    Raises:
        WorklogError: ``invalid_state`` if the store is configured as a child.
    """
    config = load_config(store_path)
    if config is None:
        return RootConfig()
    if isinstance(config, ChildConfig):
        raise WorklogError(INVALID_STATE, f"Store {store_path} is a child store, not a root store")
    return config


def save_config(store_path: Path, config: ScopeConfig) -> None:
    atomic_write_json(config_path(store_path), config.to_dict())

"""``index.json`` repository: the per-store summary of every task."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from worklog.errors import INVALID_STATE, WorklogError
from worklog.settings import INDEX_FILENAME
from worklog.store.schemas import INDEX_SCHEMA, validate_data
from worklog.utils.fs import atomic_write_json

INDEX_VERSION = 2


@dataclass
class Index:
    tasks: dict[str, dict[str, Any]] = field(default_factory=dict)
    version: int = INDEX_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "tasks": self.tasks}


def index_path(store_path: Path) -> Path:
    return store_path / INDEX_FILENAME


def index_exists(store_path: Path) -> bool:
    return index_path(store_path).is_file()


def load_index(store_path: Path) -> Index:
    """Read a store's index; a missing file is an empty index.

    Raises:
        WorklogError: ``invalid_state`` on malformed JSON or shape.
    """
    path = index_path(store_path)
    if not path.is_file():
        return Index()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise WorklogError(INVALID_STATE, f"Malformed index {path}: {exc}") from exc
    ok, errors = validate_data(data, INDEX_SCHEMA)
    if not ok:
        raise WorklogError(INVALID_STATE, f"Malformed index {path}: {'; '.join(errors)}")
    return Index(tasks=dict(data["tasks"]), version=int(data.get("version", INDEX_VERSION)))


def save_index(store_path: Path, index: Index) -> None:
    atomic_write_json(index_path(store_path), index.to_dict())


def summary_from_meta(meta: dict[str, Any]) -> dict[str, Any]:
    """Denormalize task frontmatter into an index summary entry."""
    status = str(meta.get("status", "created"))
    created = str(meta.get("created_at", ""))
    status_updated_at = (
        meta.get(f"{status}_at") if status in ("ready", "started", "done", "cancelled") else None
    ) or created
    entry: dict[str, Any] = {
        "name": str(meta.get("name", "")),
        "desc": str(meta.get("desc", "")),
        "status": status,
        "created": created,
        "status_updated_at": str(status_updated_at),
    }
    if meta.get("done_at"):
        entry["done_at"] = meta["done_at"]
    if meta.get("cancelled_at"):
        entry["cancelled_at"] = meta["cancelled_at"]
    if meta.get("tags"):
        entry["tags"] = list(meta["tags"])
    if meta.get("parent"):
        entry["parent"] = str(meta["parent"])
    return entry

"""Task-level store access: ids, records, entries and checkpoints.

A store is addressed by its marker directory (``<dir>/.worklog``). Every
mutation writes the task record and its index summary together.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from worklog.errors import INVALID_ARGS, INVALID_STATE, NOT_INITIALIZED, TASK_NOT_FOUND, WorklogError
from worklog.settings import TASKS_DIRNAME
from worklog.store.document import (
    TASK_STATUSES,
    Checkpoint,
    Entry,
    TaskRecord,
    new_meta,
    parse_task,
    render_task,
)
from worklog.store.index import Index, index_exists, load_index, save_index, summary_from_meta
from worklog.utils.fs import atomic_write_text
from worklog.utils.timestamps import SHORT_FORMAT, id_date_prefix, iso_now, parse_timestamp, short_now

logger = logging.getLogger(__name__)

ID_PREFIX_LENGTH = 6
CHECKPOINT_THRESHOLD = 50

STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "created": frozenset({"ready", "started", "done", "cancelled"}),
    "ready": frozenset({"created", "started", "done", "cancelled"}),
    "started": frozenset({"ready", "done", "cancelled"}),
    "done": frozenset({"started"}),
    "cancelled": frozenset(),
}


def increment_letter(suffix: str) -> str:
    """Next suffix in ``a..z, aa, ab, ...`` order (``""`` -> ``"a"``)."""
    if not suffix:
        return "a"
    chars = list(suffix)
    idx = len(chars) - 1
    while idx >= 0:
        if chars[idx] == "z":
            chars[idx] = "a"
            idx -= 1
        else:
            chars[idx] = chr(ord(chars[idx]) + 1)
            break
    if idx < 0:
        chars.insert(0, "a")
    return "".join(chars)


def next_id_with_prefix(prefix: str, existing: set[str] | list[str]) -> str:
    """Allocate ``prefix`` + the suffix after the largest one already used."""
    suffixes = [task_id[len(prefix) :] for task_id in existing if task_id.startswith(prefix)]
    if not suffixes:
        return f"{prefix}a"
    last = max(suffixes, key=lambda s: (len(s), s))
    return f"{prefix}{increment_letter(last)}"


def new_uid() -> str:
    return str(uuid.uuid4())


_TAG_PATTERN = re.compile(r"^[a-zA-Z0-9/_-]+$")
MAX_TAG_LENGTH = 100


def validate_tag(tag: str) -> str | None:
    """Return why ``tag`` is invalid, or ``None`` when it is fine."""
    if not tag:
        return "Tag cannot be empty"
    if len(tag) > MAX_TAG_LENGTH:
        return f"Tag too long (max {MAX_TAG_LENGTH} characters)"
    if any(ch.isspace() for ch in tag):
        return "Tag cannot contain whitespace"
    if tag.startswith("/") or tag.endswith("/"):
        return "Tag cannot start or end with /"
    if "//" in tag:
        return "Tag cannot contain empty segments (//)"
    if not _TAG_PATTERN.match(tag):
        return "Tag can only contain letters, digits, /, _ and -"
    return None


def require_valid_tag(tag: str) -> str:
    error = validate_tag(tag)
    if error:
        raise WorklogError(INVALID_ARGS, f"Invalid tag '{tag}': {error}")
    return tag


def matches_tag_pattern(pattern: str, tag: str) -> bool:
    """Hierarchical match: ``feat`` matches ``feat`` and ``feat/x``."""
    return tag == pattern or tag.startswith(f"{pattern}/")


def init_store(store_path: Path) -> bool:
    """Create the marker directory, ``tasks/`` and an empty index.

    Returns False when the store already existed.
    """
    created = not index_exists(store_path)
    (store_path / TASKS_DIRNAME).mkdir(parents=True, exist_ok=True)
    if created:
        save_index(store_path, Index())
        logger.info("initialized store %s", store_path)
    return created


@dataclass(frozen=True)
class TraceResult:
    task_id: str
    status: str
    entries_since_checkpoint: int


class TaskStore:
    """Records and index of one store."""

    def __init__(self, store_path: Path) -> None:
        self.path = store_path
        self.tasks_dir = store_path / TASKS_DIRNAME

    def __repr__(self) -> str:
        return f"TaskStore({str(self.path)!r})"

    @property
    def initialized(self) -> bool:
        return index_exists(self.path)

    def require_initialized(self) -> None:
        if not self.initialized:
            raise WorklogError(NOT_INITIALIZED, f"No worklog store at {self.path}. Run 'wl init' first.")

    def task_file(self, task_id: str) -> Path:
        return self.tasks_dir / f"{task_id}.md"

    def load_index(self) -> Index:
        return load_index(self.path)

    def save_index(self, index: Index) -> None:
        save_index(self.path, index)

    def task_ids(self) -> list[str]:
        return list(self.load_index().tasks)

    def load(self, task_id: str) -> TaskRecord:
        path = self.task_file(task_id)
        if not path.is_file():
            raise WorklogError(TASK_NOT_FOUND, f"Task not found: {task_id}")
        try:
            return parse_task(path.read_text(encoding="utf-8"))
        except (ValueError, yaml.YAMLError) as exc:
            raise WorklogError(INVALID_STATE, f"Malformed task file {path}: {exc}") from exc

    def write_record(self, record: TaskRecord) -> None:
        atomic_write_text(self.task_file(record.id), render_task(record))

    def save(self, record: TaskRecord, index: Index | None = None) -> None:
        """Write the record and upsert its summary into the index."""
        index = index if index is not None else self.load_index()
        self.write_record(record)
        index.tasks[record.id] = summary_from_meta(record.meta)
        self.save_index(index)

    def delete(self, task_id: str) -> None:
        path = self.task_file(task_id)
        if path.exists():
            path.unlink()
        index = self.load_index()
        if index.tasks.pop(task_id, None) is not None:
            self.save_index(index)

    def ensure_uid(self, task_id: str) -> TaskRecord:
        """Return the record, writing a fresh ``uid`` only when it has none."""
        record = self.load(task_id)
        if not record.uid:
            record.meta["uid"] = new_uid()
            self.write_record(record)
            logger.debug("backfilled uid %s for %s in %s", record.meta["uid"], task_id, self.path)
        return record

    def generate_task_id(self, today: date | None = None) -> str:
        existing = set(self.task_ids())
        if self.tasks_dir.is_dir():
            existing.update(p.stem for p in self.tasks_dir.glob("*.md"))
        return next_id_with_prefix(id_date_prefix(today), existing)

    def free_id(self, desired: str) -> str:
        """``desired`` if unused, else the next id sharing its six-char prefix."""
        existing = set(self.task_ids())
        if desired not in existing and not self.task_file(desired).exists():
            return desired
        if self.tasks_dir.is_dir():
            existing.update(p.stem for p in self.tasks_dir.glob("*.md"))
        return next_id_with_prefix(desired[:ID_PREFIX_LENGTH], existing)


def create_task(
    store: TaskStore,
    name: str,
    desc: str = "",
    tags: list[str] | None = None,
    today: date | None = None,
) -> TaskRecord:
    """Create a task, initializing the store on first use."""
    if not name.strip():
        raise WorklogError(INVALID_ARGS, "Task name must not be empty")
    for tag in tags or []:
        require_valid_tag(tag)
    init_store(store.path)
    task_id = store.generate_task_id(today)
    record = TaskRecord(
        meta=new_meta(
            task_id=task_id,
            uid=new_uid(),
            name=name,
            desc=desc,
            created_at=iso_now(),
            tags=tags,
        )
    )
    store.save(record)
    logger.info("created task %s in %s", task_id, store.path)
    return record


def _normalize_short_ts(value: str | None) -> str:
    if not value:
        return short_now()
    try:
        return parse_timestamp(value).strftime(SHORT_FORMAT)
    except ValueError as exc:
        raise WorklogError(INVALID_ARGS, f"Invalid timestamp: {value}") from exc


def entries_since_checkpoint(record: TaskRecord) -> list[Entry]:
    if not record.last_checkpoint:
        return list(record.entries)
    cutoff = parse_timestamp(record.last_checkpoint)
    return [e for e in record.entries if parse_timestamp(e.ts) > cutoff]


def add_entry(store: TaskStore, task_id: str, message: str, timestamp: str | None = None) -> TraceResult:
    """Append an entry (trace) to a task."""
    if not message.strip():
        raise WorklogError(INVALID_ARGS, "Entry message must not be empty")
    record = store.load(task_id)
    if record.meta.get("status") == "cancelled":
        raise WorklogError(INVALID_STATE, f"Task {task_id} is cancelled")
    record.entries.append(Entry(ts=_normalize_short_ts(timestamp), msg=message.strip()))
    record.meta["has_uncheckpointed_entries"] = True
    store.save(record)

    pending = len(entries_since_checkpoint(record))
    status = "checkpoint_recommended" if pending >= CHECKPOINT_THRESHOLD else "ok"
    return TraceResult(task_id=task_id, status=status, entries_since_checkpoint=pending)


def add_checkpoint(
    store: TaskStore,
    task_id: str,
    changes: str,
    learnings: str = "",
    timestamp: str | None = None,
) -> Checkpoint:
    """Record a checkpoint closing every entry up to now."""
    record = store.load(task_id)
    checkpoint = Checkpoint(ts=_normalize_short_ts(timestamp), changes=changes.strip(), learnings=learnings.strip())
    record.checkpoints.append(checkpoint)
    record.meta["last_checkpoint"] = parse_timestamp(checkpoint.ts).isoformat()
    record.meta["has_uncheckpointed_entries"] = False
    store.save(record)
    return checkpoint


def set_status(store: TaskStore, task_id: str, status: str) -> TaskRecord:
    """Apply a lifecycle transition, stamping ``<status>_at``."""
    if status not in TASK_STATUSES:
        raise WorklogError(INVALID_ARGS, f"Unknown status: {status}")
    record = store.load(task_id)
    current = str(record.meta.get("status", "created"))
    if status not in STATUS_TRANSITIONS.get(current, frozenset()):
        raise WorklogError(INVALID_STATE, f"Cannot change status from {current} to {status}")
    now = iso_now()
    record.meta["status"] = status
    if status != "created":
        record.meta[f"{status}_at"] = now
    if status == "started" and current == "done":
        record.meta["done_at"] = None
    store.save(record)
    return record


def list_tasks(store: TaskStore, include_closed: bool = False) -> list[dict[str, Any]]:
    """Index rows sorted by id; done/cancelled tasks hidden unless asked."""
    rows = []
    for task_id, entry in sorted(store.load_index().tasks.items()):
        if not include_closed and entry.get("status") in ("done", "cancelled"):
            continue
        rows.append({"id": task_id, **entry})
    return rows

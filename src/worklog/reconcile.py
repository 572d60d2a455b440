"""Import/merge reconciliation between two stores.

Tasks are matched by ``uid``. A task already present in the destination has
its entries and checkpoints unioned by timestamp; a new task is copied,
renamed when its local id is taken. Every task is reconciled on its own so
one broken record never aborts the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from worklog.context import ScopeContext
from worklog.errors import IMPORT_SOURCE_NOT_FOUND, INVALID_ARGS, WorklogError
from worklog.scope.resolve import store_display_id
from worklog.store.document import Checkpoint, Entry, TaskRecord
from worklog.store.index import index_exists, summary_from_meta
from worklog.store.tasks import TaskStore, init_store, require_valid_tag
from worklog.utils.fs import remove_tree
from worklog.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

IMPORTED = "imported"
MERGED = "merged"
SKIPPED = "skipped"

NOTHING_TO_MERGE = "No new entries or checkpoints to merge"

# Per-task failures that are reported instead of aborting the batch.
TASK_FAILURES = (WorklogError, OSError, ValueError, yaml.YAMLError)


@dataclass
class ImportTaskResult:
    id: str
    status: str
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "status": self.status}
        if self.warnings:
            out["warnings"] = list(self.warnings)
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class ImportOutput:
    imported: int = 0
    merged: int = 0
    skipped: int = 0
    failed: int = 0
    tasks: list[ImportTaskResult] = field(default_factory=list)
    tag: str | None = None

    def record(self, result: ImportTaskResult) -> None:
        self.tasks.append(result)
        if result.error:
            self.failed += 1
        elif result.status == IMPORTED:
            self.imported += 1
        elif result.status == MERGED:
            self.merged += 1
        else:
            self.skipped += 1

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "imported": self.imported,
            "merged": self.merged,
            "skipped": self.skipped,
            "failed": self.failed,
            "tasks": [task.to_dict() for task in self.tasks],
        }
        if self.tag:
            out["tag"] = self.tag
        return out


@dataclass(frozen=True)
class Reconciled:
    """Outcome of one task plus whether its source copy may be deleted."""

    result: ImportTaskResult
    removable: bool


def destination_uids(destination: TaskStore) -> dict[str, str]:
    """``uid -> id`` for the destination, backfilling missing uids.

    Records that cannot be read are left out of the map.
    """
    mapping: dict[str, str] = {}
    for task_id in destination.task_ids():
        try:
            record = destination.ensure_uid(task_id)
        except TASK_FAILURES as exc:
            logger.warning("cannot read destination task %s: %s", task_id, exc)
            continue
        if record.uid:
            mapping[record.uid] = task_id
    return mapping


def _merge(source: TaskRecord, destination: TaskStore, dest_id: str) -> Reconciled:
    target = destination.load(dest_id)
    cutoff = parse_timestamp(target.last_checkpoint) if target.last_checkpoint else None

    stale: list[str] = []
    known_entries = {entry.ts for entry in target.entries}
    new_entries: list[Entry] = []
    for entry in source.entries:
        if entry.ts in known_entries:
            continue
        if cutoff is not None and parse_timestamp(entry.ts) < cutoff:
            stale.append(f"Entry at {entry.ts} is older than last checkpoint, skipped")
            continue
        known_entries.add(entry.ts)
        new_entries.append(entry)

    known_checkpoints = {checkpoint.ts for checkpoint in target.checkpoints}
    new_checkpoints: list[Checkpoint] = []
    for checkpoint in source.checkpoints:
        if checkpoint.ts not in known_checkpoints:
            known_checkpoints.add(checkpoint.ts)
            new_checkpoints.append(checkpoint)

    if not new_entries and not new_checkpoints:
        warnings = stale or [NOTHING_TO_MERGE]
        return Reconciled(ImportTaskResult(dest_id, SKIPPED, warnings), removable=not stale)

    if new_entries:
        target.entries = sorted([*target.entries, *new_entries], key=lambda e: parse_timestamp(e.ts))
        target.meta["has_uncheckpointed_entries"] = True
    if new_checkpoints:
        target.checkpoints = sorted([*target.checkpoints, *new_checkpoints], key=lambda c: parse_timestamp(c.ts))
        newest = max(parse_timestamp(c.ts) for c in target.checkpoints)
        if cutoff is None or newest > cutoff:
            target.meta["last_checkpoint"] = newest.isoformat()
    destination.save(target)
    logger.debug(
        "merged %d entries and %d checkpoints into %s",
        len(new_entries),
        len(new_checkpoints),
        dest_id,
    )
    return Reconciled(ImportTaskResult(dest_id, MERGED, stale), removable=not stale)


def reconcile_task(
    source: TaskStore,
    source_id: str,
    destination: TaskStore,
    uids: dict[str, str],
    summary: dict[str, Any] | None = None,
    record: TaskRecord | None = None,
) -> Reconciled:
    """Bring one source task into ``destination``.

    ``uids`` is the destination's ``uid -> id`` map and is updated in place.
    ``record`` overrides the source record when the caller already edited it.
    """
    record = record or source.ensure_uid(source_id)
    uid = record.uid or ""
    existing = uids.get(uid)
    if existing is not None:
        return _merge(record, destination, existing)

    target_id = destination.free_id(source_id)
    warnings: list[str] = []
    if target_id != source_id:
        record.meta["id"] = target_id
        warnings.append(f"Renamed from {source_id} to {target_id}")

    index = destination.load_index()
    destination.write_record(record)
    entry = dict(summary) if summary else summary_from_meta(record.meta)
    if record.tags:
        entry["tags"] = record.tags
    else:
        entry.pop("tags", None)
    index.tasks[target_id] = entry
    destination.save_index(index)
    uids[uid] = target_id
    logger.debug("imported %s as %s into %s", source_id, target_id, destination.path)
    return Reconciled(ImportTaskResult(target_id, IMPORTED, warnings), removable=True)


def remove_from_source(source: TaskStore, task_ids: list[str]) -> bool:
    """Delete reconciled tasks from the source; drop the store once empty.

    Returns True when the whole source store was removed.
    """
    if not task_ids:
        return False
    index = source.load_index()
    for task_id in task_ids:
        path = source.task_file(task_id)
        if path.exists():
            path.unlink()
        index.tasks.pop(task_id, None)
    source.save_index(index)
    logger.info("removed %d tasks from %s", len(task_ids), source.path)
    if not index.tasks:
        remove_tree(source.path)
        logger.info("removed empty store %s", source.path)
        return True
    return False


def import_tasks(source_path: Path, destination_path: Path, remove_source: bool = False) -> ImportOutput:
    """Reconcile every task of the source store into the destination store.

    Raises:
        WorklogError: ``import_source_not_found`` when the source has no
            index, ``invalid_args`` when source and destination coincide.
    """
    if not index_exists(source_path):
        raise WorklogError(IMPORT_SOURCE_NOT_FOUND, f"Source worklog not found: {source_path}")
    if source_path.resolve() == destination_path.resolve():
        raise WorklogError(INVALID_ARGS, "Source and destination are the same store")

    source = TaskStore(source_path)
    destination = TaskStore(destination_path)
    init_store(destination_path)

    output = ImportOutput()
    uids = destination_uids(destination)
    removable: list[str] = []
    for source_id, summary in source.load_index().tasks.items():
        try:
            outcome = reconcile_task(source, source_id, destination, uids, summary)
        except TASK_FAILURES as exc:
            logger.warning("failed to import %s: %s", source_id, exc)
            output.record(ImportTaskResult(source_id, SKIPPED, error=str(exc)))
            continue
        output.record(outcome.result)
        if outcome.removable:
            removable.append(source_id)

    if remove_source:
        remove_from_source(source, removable)
    return output


def _tag_task(store: TaskStore, task_id: str, tag: str) -> None:
    record = store.load(task_id)
    record.meta["tags"] = sorted({*record.tags, tag})
    index = store.load_index()
    store.write_record(record)
    entry = index.tasks.get(task_id) or summary_from_meta(record.meta)
    entry["tags"] = record.meta["tags"]
    index.tasks[task_id] = entry
    store.save_index(index)


def source_scope_tag(source_path: Path, context: ScopeContext) -> str:
    """Default tag for a scope import: the source store's display id."""
    if context.git_root is None:
        return source_path.parent.name
    return store_display_id(source_path, context)


def import_scope_to_tag(
    source_path: Path,
    context: ScopeContext,
    tag: str | None = None,
    remove_source: bool = False,
) -> ImportOutput:
    """Import into the active store and tag every newly imported task."""
    tag_name = require_valid_tag(tag or source_scope_tag(source_path, context))
    output = import_tasks(source_path, context.store, remove_source=remove_source)
    destination = context.tasks
    for result in output.tasks:
        if result.status == IMPORTED and not result.error:
            _tag_task(destination, result.id, tag_name)
    output.tag = tag_name
    return output

"""Move tasks between stores: assign, assign-by-tag and export.

Moves go through the reconciliation engine, so a task whose uid already lives
in the target is merged instead of duplicated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from worklog.context import ScopeContext
from worklog.errors import INVALID_STATE, TASK_NOT_FOUND, WorklogError
from worklog.reconcile import TASK_FAILURES, destination_uids, reconcile_task
from worklog.scope.config import load_config, save_config
from worklog.scope.discovery import discover_scopes
from worklog.scope.types import ChildConfig, RootConfig, ScopeEntry
from worklog.store.document import TaskRecord
from worklog.store.index import load_index
from worklog.store.tasks import TaskStore, init_store, matches_tag_pattern, require_valid_tag
from worklog.tasks.resolve import resolve_task
from worklog.utils.fs import is_within, relative_path, resolve_against

logger = logging.getLogger(__name__)


@dataclass
class RelocateOutput:
    """Per-task outcome of a move.

    ``kept`` holds tasks that merged with warnings and therefore stay in
    their source store.
    """

    assigned: list[dict[str, Any]] = field(default_factory=list)
    kept: list[dict[str, Any]] = field(default_factory=list)
    updated: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "assigned": self.assigned,
            "moved": len(self.assigned),
            "kept": self.kept,
            "updated": self.updated,
            "errors": self.errors,
        }


def _move(
    source: TaskStore,
    task_id: str,
    target: TaskStore,
    uids: dict[str, str],
    output: RelocateOutput,
    record: TaskRecord | None = None,
) -> None:
    outcome = reconcile_task(source, task_id, target, uids, record=record)
    if outcome.removable:
        source.delete(task_id)
    rows = output.assigned if outcome.removable else output.kept
    rows.append(
        {
            "id": task_id,
            "to": outcome.result.id,
            "status": outcome.result.status,
            "warnings": outcome.result.warnings,
            "removed": outcome.removable,
        }
    )


def assign_tasks(
    context: ScopeContext,
    target: Path,
    task_refs: list[str],
    source: Path | None = None,
) -> RelocateOutput:
    """Move tasks into ``target``.

    References resolve across all scopes, or as exact ids within ``source``
    when one is given. Per-task failures are collected, not raised.
    """
    init_store(target)
    target_store = TaskStore(target)
    uids = destination_uids(target_store)
    output = RelocateOutput()
    for ref in task_refs:
        try:
            if source is not None:
                owner, task_id = TaskStore(source), ref
            else:
                resolved = resolve_task(ref, context)
                owner, task_id = resolved.context.tasks, resolved.task_id
            if owner.path.resolve() == target.resolve():
                output.updated += 1
                continue
            _move(owner, task_id, target_store, uids, output)
        except TASK_FAILURES as exc:
            logger.warning("cannot assign %s: %s", ref, exc)
            output.errors.append({"id": ref, "error": getattr(exc, "message", str(exc))})
    return output


def strip_tag(tags: list[str], pattern: str) -> list[str]:
    """Drop ``pattern`` and turn ``pattern/x`` sub-tags into ``x``."""
    kept: list[str] = []
    for tag in tags:
        if tag == pattern:
            continue
        kept.append(tag[len(pattern) + 1 :] if tag.startswith(f"{pattern}/") else tag)
    return kept


def _retag(record: TaskRecord, tags: list[str]) -> None:
    if tags:
        record.meta["tags"] = tags
    else:
        record.meta.pop("tags", None)


def tagged_tasks(context: ScopeContext, pattern: str) -> list[tuple[Path, str]]:
    """``(store, task id)`` for every task carrying a tag matching ``pattern``."""
    found: list[tuple[Path, str]] = []
    for scope in discover_scopes(context.require_root(), context.settings):
        try:
            tasks = load_index(scope.path).tasks
        except WorklogError as exc:
            logger.debug("skipping store %s: %s", scope.path, exc.message)
            continue
        for task_id, entry in tasks.items():
            if any(matches_tag_pattern(pattern, tag) for tag in entry.get("tags") or []):
                found.append((scope.path, task_id))
    return found


def assign_by_tag(context: ScopeContext, target: Path, tag: str) -> RelocateOutput:
    """Move every task tagged ``tag`` (or ``tag/...``) into ``target``, dropping the tag."""
    require_valid_tag(tag)
    matches = tagged_tasks(context, tag)
    init_store(target)
    target_store = TaskStore(target)
    uids = destination_uids(target_store)
    output = RelocateOutput()
    for store_path, task_id in matches:
        source = TaskStore(store_path)
        try:
            record = source.ensure_uid(task_id)
            _retag(record, strip_tag(record.tags, tag))
            if store_path.resolve() == target.resolve():
                source.save(record)
                output.updated += 1
                continue
            _move(source, task_id, target_store, uids, output, record=record)
        except TASK_FAILURES as exc:
            logger.warning("cannot assign %s: %s", task_id, exc)
            output.errors.append({"id": task_id, "error": getattr(exc, "message", str(exc))})
    return output


def export_scope(
    context: ScopeContext,
    tag: str,
    target_path: str,
    remove_tag: bool = False,
    scope_id: str | None = None,
) -> dict[str, Any]:
    """Move tagged tasks into a new child store at ``target_path`` and register it."""
    require_valid_tag(tag)
    git_root = context.require_root()
    marker = context.settings.marker_dir

    root_store = git_root / marker
    config = load_config(root_store)
    if isinstance(config, ChildConfig):
        raise WorklogError(INVALID_STATE, "Root worklog is configured as a child scope. This is invalid.")

    matches = tagged_tasks(context, tag)
    if not matches:
        raise WorklogError(TASK_NOT_FOUND, f"No tasks with tag: {tag}")

    target_dir = resolve_against(context.cwd, target_path)
    target = target_dir / marker
    existing = load_index(target).tasks if target.is_dir() else {}
    if existing:
        raise WorklogError(
            INVALID_STATE,
            f"Target worklog has {len(existing)} tasks. Choose different path.",
        )
    init_store(target)
    target_store = TaskStore(target)
    uids = destination_uids(target_store)

    output = RelocateOutput()
    for store_path, task_id in matches:
        source = TaskStore(store_path)
        try:
            record = source.ensure_uid(task_id)
            if remove_tag:
                _retag(record, strip_tag(record.tags, tag))
            _move(source, task_id, target_store, uids, output, record=record)
        except TASK_FAILURES as exc:
            logger.warning("cannot export %s: %s", task_id, exc)
            output.errors.append({"id": task_id, "error": getattr(exc, "message", str(exc))})

    effective_id = scope_id or tag
    rel = relative_path(git_root, target_dir) if is_within(target_dir, git_root) else str(target_dir)
    save_config(target, ChildConfig(parent=relative_path(target_dir, git_root)))
    children = config.children if isinstance(config, RootConfig) else ()
    children = tuple(child for child in children if child.path != rel)
    init_store(root_store)
    save_config(root_store, RootConfig(children=(*children, ScopeEntry(path=rel, id=effective_id))))

    return {
        "exported": len(output.assigned),
        "scopeId": effective_id,
        "targetPath": rel,
        "kept": [row["id"] for row in output.kept],
        "errors": output.errors,
    }

"""Scope management: add, add-parent, rename, delete and list."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from worklog.context import ScopeContext
from worklog.errors import (
    ALREADY_HAS_PARENT,
    INVALID_ARGS,
    INVALID_STATE,
    NOT_INITIALIZED,
    SCOPE_HAS_TASKS,
    SCOPE_NOT_FOUND,
    WORKTREE_NOT_FOUND,
    WorklogError,
)
from worklog.scope.config import load_config, load_root_config, save_config
from worklog.scope.discovery import discover_scopes, refresh_hierarchy
from worklog.scope.relocate import assign_tasks
from worklog.scope.resolve import find_nearest_store, resolve_scope_identifier
from worklog.scope.types import ROOT_RELATIVE_PATH, ChildConfig, RootConfig, ScopeEntry
from worklog.store.index import index_exists, load_index
from worklog.store.tasks import init_store
from worklog.utils.fs import is_within, relative_path, remove_tree, resolve_against

logger = logging.getLogger(__name__)


def upsert_child(children: tuple[ScopeEntry, ...], entry: ScopeEntry) -> tuple[ScopeEntry, ...]:
    """Replace the child with the same path, or append."""
    if any(child.path == entry.path for child in children):
        return tuple(entry if child.path == entry.path else child for child in children)
    return (*children, entry)


def _points_at(store: Path, config: ChildConfig, git_root: Path) -> bool:
    return resolve_against(store.parent, config.parent).resolve() == git_root.resolve()


def _link_to_root(store: Path, git_root: Path) -> None:
    save_config(store, ChildConfig(parent=relative_path(store.parent, git_root)))


def add_scope(
    context: ScopeContext,
    scope_id: str,
    path: str | None = None,
    worktree: bool = False,
    git_ref: str | None = None,
) -> dict[str, Any]:
    """Create or adopt a child store and register it in the root child list."""
    git_root = context.require_root()
    if path and worktree:
        raise WorklogError(INVALID_ARGS, "Cannot use --path and --worktree together. Choose one.")

    marker = context.settings.marker_dir
    ref: str | None = None
    if worktree:
        ref = git_ref or scope_id
        target_dir = context.vcs.resolve_worktree_path(ref, context.cwd)
        if target_dir is None:
            if context.vcs.get_current_branch(context.cwd) != ref:
                raise WorklogError(
                    WORKTREE_NOT_FOUND,
                    f"No worktree found for ref: {ref}. Create the worktree first with 'git worktree add'.",
                )
            target_dir = git_root
        target_dir = target_dir.resolve()
        effective = relative_path(git_root, target_dir) if is_within(target_dir, git_root) else str(target_dir)
    else:
        effective = (path or scope_id).rstrip("/")
        target_dir = resolve_against(git_root, effective)
        if is_within(target_dir, git_root):
            effective = relative_path(git_root, target_dir)

    if effective == ROOT_RELATIVE_PATH:
        raise WorklogError(INVALID_ARGS, "The root store cannot be added as a child scope")

    root_store = git_root / marker
    if isinstance(load_config(root_store), ChildConfig):
        raise WorklogError(INVALID_STATE, "Root worklog is configured as a child scope. This is invalid.")
    root_config = load_root_config(root_store)

    store = target_dir / marker
    existing = load_config(store) if store.is_dir() else None
    if isinstance(existing, ChildConfig) and not _points_at(store, existing, git_root):
        raise WorklogError(ALREADY_HAS_PARENT, f"Scope at {effective} already has a parent configured.")
    init_store(store)
    _link_to_root(store, git_root)

    previous = next((child for child in root_config.children if child.path == effective), None)
    entry = ScopeEntry(
        path=effective,
        id=scope_id,
        type="worktree" if worktree else "path",
        git_ref=ref,
        tags=previous.tags if previous else (),
    )
    init_store(root_store)
    save_config(root_store, RootConfig(children=upsert_child(root_config.children, entry)))
    return {"status": "scope_created", "id": scope_id, "path": effective}


def add_parent(context: ScopeContext, parent_path: str, scope_id: str | None = None) -> dict[str, Any]:
    """Link the nearest store to a parent store anywhere on disk."""
    marker = context.settings.marker_dir
    child_store = find_nearest_store(context.cwd, None, context.settings)
    if child_store is None:
        raise WorklogError(NOT_INITIALIZED, "No worklog found. Run 'wl init' first.")
    child_dir = child_store.parent

    parent_dir = resolve_against(context.cwd, parent_path)
    parent_store = parent_dir / marker
    if not parent_store.is_dir():
        raise WorklogError(
            NOT_INITIALIZED,
            f"No worklog found at parent path: {parent_path}. Run 'wl init' there first.",
        )
    if parent_store.resolve() == child_store.resolve():
        raise WorklogError(INVALID_ARGS, "A scope cannot be its own parent")

    child_config = load_config(child_store)
    if isinstance(child_config, ChildConfig):
        raise WorklogError(
            ALREADY_HAS_PARENT,
            f"This scope already has a parent configured: {child_config.parent}.",
        )
    parent_config = load_config(parent_store)
    if isinstance(parent_config, ChildConfig):
        raise WorklogError(INVALID_STATE, "Parent is configured as a child scope itself.")

    save_config(child_store, ChildConfig(parent=relative_path(child_dir, parent_dir)))
    rel_child = relative_path(parent_dir, child_dir)
    children = parent_config.children if isinstance(parent_config, RootConfig) else ()
    existing = next((child for child in children if child.path == rel_child), None)
    if existing is None:
        children = (*children, ScopeEntry(path=rel_child, id=scope_id or child_dir.name))
    elif scope_id:
        children = upsert_child(
            children,
            ScopeEntry(path=existing.path, id=scope_id, type=existing.type, git_ref=existing.git_ref, tags=existing.tags),
        )
    save_config(parent_store, RootConfig(children=children))
    return {"status": "parent_configured", "parent": str(parent_dir)}


def rename_scope(context: ScopeContext, scope_id: str, new_id: str) -> dict[str, Any]:
    git_root = context.require_root()
    root_store = git_root / context.settings.marker_dir
    config = load_config(root_store)
    if not isinstance(config, RootConfig) or not config.children:
        raise WorklogError(SCOPE_NOT_FOUND, "Root configuration corrupted or no child scopes found.")
    child = config.find_child(scope_id)
    if child is None:
        raise WorklogError(SCOPE_NOT_FOUND, f"Scope not found: {scope_id}")
    renamed = ScopeEntry(path=child.path, id=new_id, type=child.type, git_ref=child.git_ref, tags=child.tags)
    save_config(root_store, RootConfig(children=upsert_child(config.children, renamed)))
    return {"status": "scope_renamed", "id": new_id, "path": child.path}


def delete_scope(
    context: ScopeContext,
    scope_id: str,
    move_to: str | None = None,
    delete_tasks: bool = False,
) -> dict[str, Any]:
    """Delete a child store, relocating or dropping its tasks first."""
    git_root = context.require_root()
    marker = context.settings.marker_dir
    store = resolve_scope_identifier(scope_id, context)
    root_store = git_root / marker
    if store.resolve() == root_store.resolve():
        raise WorklogError(INVALID_STATE, "The root store cannot be deleted")
    if not index_exists(store):
        raise WorklogError(NOT_INITIALIZED, f"No worklog at: {store}")

    task_ids = list(load_index(store).tasks)
    moved = 0
    if task_ids:
        if move_to:
            target = resolve_scope_identifier(move_to, context)
            if target.resolve() == store.resolve():
                raise WorklogError(INVALID_ARGS, "Cannot move tasks into the scope being deleted")
            output = assign_tasks(context, target, task_ids, source=store)
            if output.errors:
                raise WorklogError(
                    SCOPE_HAS_TASKS,
                    f"Could not move every task out of {scope_id}: "
                    + "; ".join(f"{err['id']}: {err['error']}" for err in output.errors),
                )
            moved = len(output.assigned)
            left = sorted(load_index(store).tasks)
            if left:
                raise WorklogError(
                    SCOPE_HAS_TASKS,
                    f"Tasks still in {scope_id} after the move: {', '.join(left)}. "
                    "Inspect their warnings before deleting the scope.",
                )
        elif not delete_tasks:
            raise WorklogError(
                SCOPE_HAS_TASKS,
                f"Scope has {len(task_ids)} task(s). Use --move-to <scope-id> or --delete-tasks",
            )

    remove_tree(store)
    logger.info("deleted store %s", store)

    config = load_config(root_store)
    if isinstance(config, RootConfig):
        kept = tuple(
            child
            for child in config.children
            if resolve_against(git_root, child.path) / marker != store
        )
        save_config(root_store, RootConfig(children=kept))
    return {"status": "scope_deleted", "id": scope_id, "moved": moved}


def _rows_from_parent(parent: Path, context: ScopeContext) -> list[dict[str, Any]]:
    marker = context.settings.marker_dir
    config = load_config(parent)
    rows = [{"id": parent.parent.name, "path": ROOT_RELATIVE_PATH, "isActive": parent == context.store}]
    if not isinstance(config, RootConfig):
        return rows
    for child in config.children:
        store = resolve_against(parent.parent, child.path) / marker
        if store.is_dir():
            rows.append({"id": child.id, "path": child.path, "isActive": store == context.store})
    return rows


def list_scopes(
    context: ScopeContext,
    scope_id: str | None = None,
    refresh: bool = False,
) -> dict[str, Any]:
    """All scopes (``{"scopes": [...]}``) or one scope's detail."""
    if refresh:
        refreshed = refresh_hierarchy(context.require_root(), context.settings)
        logger.info("refreshed %d child scope(s) under %s", len(refreshed.children), refreshed.root)

    if scope_id:
        git_root = context.require_root()
        store = resolve_scope_identifier(scope_id, context)
        if not index_exists(store):
            raise WorklogError(NOT_INITIALIZED, f"No worklog at: {store}")
        return {
            "id": scope_id,
            "path": relative_path(git_root, store.parent),
            "taskCount": len(load_index(store).tasks),
        }

    nearest = find_nearest_store(context.cwd, None, context.settings)
    if nearest is not None:
        config = load_config(nearest)
        if isinstance(config, ChildConfig):
            parent = resolve_against(nearest.parent, config.parent) / context.settings.marker_dir
            if parent.is_dir():
                return {"scopes": _rows_from_parent(parent, context)}

    git_root = context.require_root()
    return {
        "scopes": [
            {"id": scope.id, "path": scope.relative_path, "isActive": scope.path == context.store}
            for scope in discover_scopes(git_root, context.settings)
        ]
    }

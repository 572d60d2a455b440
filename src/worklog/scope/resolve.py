"""Map scope identifiers and working directories to concrete stores."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from worklog.errors import SCOPE_AMBIGUOUS, SCOPE_NOT_FOUND, WorklogError
from worklog.scope.config import try_load_config
from worklog.scope.discovery import discover_scopes
from worklog.scope.types import ROOT_DISPLAY_ID, ChildConfig, RootConfig
from worklog.settings import Settings
from worklog.utils.fs import relative_path, resolve_against

if TYPE_CHECKING:
    from worklog.context import ScopeContext

logger = logging.getLogger(__name__)

ROOT_TOKEN = "/"
ACTIVE_TOKEN = "."


def find_nearest_store(start: Path, stop_at: Path | None, settings: Settings) -> Path | None:
    """Walk up from ``start`` (inclusive) to the first directory holding a store.

    The walk stops after ``stop_at`` or at the filesystem root.
    """
    current = start
    while True:
        candidate = current / settings.marker_dir
        if candidate.is_dir():
            return candidate
        if stop_at is not None and current == stop_at:
            return None
        if current.parent == current:
            return None
        current = current.parent


def resolve_active_scope(
    cwd: Path,
    git_root: Path | None,
    settings: Settings,
    explicit: Path | None = None,
) -> Path:
    """Pick the active store.

    Priority: explicit store, nearest enclosing store, initialized root
    store, then ``cwd/<marker>`` as a not-yet-created default.
    """
    if explicit is not None:
        return explicit
    nearest = find_nearest_store(cwd, git_root, settings)
    if nearest is not None:
        return nearest
    if git_root is not None and (git_root / settings.marker_dir).is_dir():
        return git_root / settings.marker_dir
    return cwd / settings.marker_dir


def resolve_scope_identifier(identifier: str, context: ScopeContext) -> Path:
    """Resolve a scope id, relative path, ``/`` or ``.`` to a store path.

    Raises:
        WorklogError: ``not_in_git_repo``, ``scope_not_found`` or
            ``scope_ambiguous``.
    """
    if identifier == ACTIVE_TOKEN:
        return context.store
    git_root = context.require_root()
    marker = context.settings.marker_dir
    if identifier in (ROOT_TOKEN, ROOT_DISPLAY_ID):
        return git_root / marker

    wanted = identifier.rstrip("/")
    for scope in discover_scopes(git_root, context.settings):
        if scope.relative_path == wanted:
            return scope.path

    config = try_load_config(git_root / marker)
    matches = []
    if isinstance(config, RootConfig):
        matches = [child for child in config.children if child.id == identifier]
    if not matches:
        raise WorklogError(SCOPE_NOT_FOUND, f"Scope not found: {identifier}")
    if len(matches) > 1:
        paths = ", ".join(child.path for child in matches)
        raise WorklogError(
            SCOPE_AMBIGUOUS,
            f"Scope id '{identifier}' is ambiguous, matches paths: {paths}",
        )
    return resolve_against(git_root, matches[0].path) / marker


def parent_store(store_path: Path, settings: Settings) -> Path | None:
    """Follow a child configuration's parent pointer, if any."""
    config = try_load_config(store_path)
    if not isinstance(config, ChildConfig):
        return None
    return resolve_against(store_path.parent, config.parent) / settings.marker_dir


def child_stores(store_path: Path, settings: Settings) -> list[Path]:
    """Stores listed in a root configuration's child list."""
    config = try_load_config(store_path)
    if not isinstance(config, RootConfig):
        return []
    return [resolve_against(store_path.parent, child.path) / settings.marker_dir for child in config.children]


def store_display_id(store_path: Path, context: ScopeContext) -> str:
    """Human-facing id of a store: child-list id, else its relative path."""
    git_root = context.git_root
    root_store = context.root_store
    if root_store is not None and store_path == root_store:
        return ROOT_DISPLAY_ID
    if git_root is None:
        return str(store_path.parent)
    rel = relative_path(git_root, store_path.parent)
    config = try_load_config(git_root / context.settings.marker_dir)
    if isinstance(config, RootConfig):
        for child in config.children:
            if child.path == rel or resolve_against(git_root, child.path) == store_path.parent:
                return child.id
    return rel

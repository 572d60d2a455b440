"""Topology discovery: find every store below a root directory.

The scan is best-effort. Unreadable directories are skipped and whatever was
reachable is returned.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from worklog.scope.config import save_config, try_load_config
from worklog.scope.types import (
    ROOT_DISPLAY_ID,
    ROOT_RELATIVE_PATH,
    ChildConfig,
    DiscoveredScope,
    RootConfig,
    ScopeEntry,
)
from worklog.settings import Settings
from worklog.utils.fs import relative_path, resolve_against

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({"node_modules", "dist", "build", "target", "__pycache__", "venv"})


def _scan(
    directory: Path,
    depth: int,
    settings: Settings,
    visited: set[str],
    found: list[Path],
) -> None:
    if depth >= settings.depth_limit:
        return
    try:
        children = sorted(
            (entry for entry in directory.iterdir() if entry.is_dir()),
            key=lambda p: p.name,
        )
    except OSError as exc:
        logger.debug("skipping unreadable directory %s: %s", directory, exc)
        return

    for child in children:
        if child.name.startswith(".") or child.name in SKIP_DIRS:
            continue
        real = os.path.realpath(child)
        if real in visited:
            logger.debug("skipping already visited %s", child)
            continue
        visited.add(real)
        try:
            if (child / settings.marker_dir).is_dir():
                found.append(child)
        except OSError as exc:
            logger.debug("skipping unreadable directory %s: %s", child, exc)
            continue
        _scan(child, depth + 1, settings, visited, found)


def _child_ids_by_path(root: Path, settings: Settings) -> dict[str, ScopeEntry]:
    config = try_load_config(root / settings.marker_dir)
    if not isinstance(config, RootConfig):
        return {}
    return {child.path: child for child in config.children}


def discover_scopes(root: Path, settings: Settings) -> list[DiscoveredScope]:
    """Every store under ``root`` (root store first, then scan order)."""
    root = root.resolve()
    known = _child_ids_by_path(root, settings)
    scopes: list[DiscoveredScope] = []

    if (root / settings.marker_dir).is_dir():
        scopes.append(
            DiscoveredScope(
                path=root / settings.marker_dir,
                relative_path=ROOT_RELATIVE_PATH,
                id=ROOT_DISPLAY_ID,
                is_root=True,
            )
        )

    found: list[Path] = []
    _scan(root, 0, settings, {os.path.realpath(root)}, found)
    for directory in found:
        rel = relative_path(root, directory)
        entry = known.get(rel)
        scopes.append(
            DiscoveredScope(
                path=directory / settings.marker_dir,
                relative_path=rel,
                id=entry.id if entry else rel,
                is_root=False,
            )
        )
    logger.debug("discovered %d stores under %s", len(scopes), root)
    return scopes


@dataclass(frozen=True)
class RefreshResult:
    root: Path
    children: tuple[ScopeEntry, ...] = field(default_factory=tuple)


def refresh_hierarchy(root: Path, settings: Settings) -> RefreshResult:
    """Rewrite the root and child configurations to match a fresh scan.

    Previously assigned ids, types, git refs and tags survive by relative
    path. Worktree entries outside the scan are kept while their store
    still exists.
    """
    root = root.resolve()
    root_store = root / settings.marker_dir
    known = _child_ids_by_path(root, settings)

    children: list[ScopeEntry] = []
    seen: set[str] = set()
    for scope in discover_scopes(root, settings):
        if scope.is_root:
            continue
        previous = known.get(scope.relative_path)
        children.append(previous or ScopeEntry(path=scope.relative_path, id=scope.relative_path))
        seen.add(scope.relative_path)
        save_config(scope.path, ChildConfig(parent=relative_path(scope.directory, root)))

    for rel, entry in known.items():
        if rel in seen or entry.type != "worktree":
            continue
        if (resolve_against(root, rel) / settings.marker_dir).is_dir():
            children.append(entry)
        else:
            logger.info("dropping worktree scope %s: store no longer exists", entry.id)

    root_store.mkdir(parents=True, exist_ok=True)
    result = RefreshResult(root=root_store, children=tuple(children))
    save_config(root_store, RootConfig(children=result.children))
    return result

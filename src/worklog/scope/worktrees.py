"""Keep worktree scopes in the root child list in step with ``git worktree``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from worklog.context import ScopeContext
from worklog.errors import NOT_INITIALIZED, WorklogError
from worklog.scope.config import load_root_config, save_config
from worklog.scope.types import ChildConfig, RootConfig, ScopeEntry
from worklog.store.tasks import init_store
from worklog.utils.fs import is_within, relative_path

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)

    def to_dict(self) -> dict[str, Any]:
        return {"added": self.added, "removed": self.removed, "warnings": self.warnings}


def sync_worktrees(context: ScopeContext, dry_run: bool = False) -> SyncResult:
    """Register a store per branch worktree and drop entries whose worktree is gone."""
    git_root = context.require_root()
    marker = context.settings.marker_dir
    root_store = git_root / marker
    if not root_store.is_dir():
        raise WorklogError(NOT_INITIALIZED, "No worklog found at git root. Run 'wl init' first.")
    config = load_root_config(root_store)

    worktrees = context.vcs.list_worktrees(context.cwd)
    main = next((wt for wt in worktrees if wt.is_main), None)
    branches = {wt.branch for wt in worktrees if wt.branch}
    result = SyncResult()

    children: list[ScopeEntry] = []
    for child in config.children:
        if child.type == "worktree" and child.git_ref not in branches:
            result.removed.append(child.id)
            result.warnings.append(
                f"Worktree for '{child.git_ref}' no longer exists. "
                "Tasks and traces in this scope have been lost. "
                f"Consider running 'wl scopes delete {child.id}' before removing worktrees."
            )
            continue
        children.append(child)

    registered = {child.git_ref for child in children if child.type == "worktree"}
    for worktree in worktrees:
        if worktree.is_main or not worktree.branch or worktree.branch in registered:
            continue
        path = worktree.path.resolve()
        anchor = main.path.resolve() if main else git_root
        effective = relative_path(anchor, path) if is_within(path, anchor) else str(path)
        result.added.append(worktree.branch)
        children.append(ScopeEntry(path=effective, id=worktree.branch, type="worktree", git_ref=worktree.branch))
        if not dry_run:
            store = path / marker
            init_store(store)
            save_config(store, ChildConfig(parent=relative_path(path, git_root)))
            logger.info("registered worktree scope %s at %s", worktree.branch, path)

    if result.changed and not dry_run:
        save_config(root_store, RootConfig(children=tuple(children)))
    return result

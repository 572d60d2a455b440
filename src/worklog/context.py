"""Per-invocation scope context threaded through every operation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

from worklog.errors import NOT_IN_GIT_REPO, WorklogError
from worklog.scope.resolve import resolve_active_scope, resolve_scope_identifier
from worklog.settings import Settings, load_settings
from worklog.store.tasks import TaskStore
from worklog.vcs.git import GitService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeContext:
    """Where a command runs and which store it acts on.

    ``store`` is the active store's marker directory; ``git_root`` is the
    topology root, ``None`` outside a repository (degraded mode).
    """

    cwd: Path
    git_root: Path | None
    store: Path
    settings: Settings
    vcs: GitService

    @property
    def root_store(self) -> Path | None:
        if self.git_root is None:
            return None
        return self.git_root / self.settings.marker_dir

    def require_root(self) -> Path:
        """Return the topology root or raise ``not_in_git_repo``."""
        if self.git_root is None:
            raise WorklogError(NOT_IN_GIT_REPO, "Not in a git repository")
        return self.git_root

    def with_store(self, store: Path) -> ScopeContext:
        return replace(self, store=store)

    @property
    def tasks(self) -> TaskStore:
        return TaskStore(self.store)


def build_context(
    cwd: Path | None = None,
    scope: str | None = None,
    settings: Settings | None = None,
    vcs: GitService | None = None,
) -> ScopeContext:
    """Resolve the active store for ``cwd``, honoring an explicit ``--scope``."""
    settings = settings or load_settings()
    vcs = vcs or GitService()
    cwd = (cwd or Path.cwd()).resolve()
    git_root = vcs.get_root(cwd)

    context = ScopeContext(
        cwd=cwd,
        git_root=git_root,
        store=resolve_active_scope(cwd, git_root, settings),
        settings=settings,
        vcs=vcs,
    )
    if scope:
        context = context.with_store(resolve_scope_identifier(scope, context))
    logger.debug("active store %s (git root %s)", context.store, git_root)
    return context

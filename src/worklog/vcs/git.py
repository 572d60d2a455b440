"""Git-backed VCS service: repository root, worktrees and current branch.

Raw ``git`` output is parsed here only; callers receive typed values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from worklog.vcs.exec import run_git

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorktreeInfo:
    """One entry of ``git worktree list``."""

    path: Path
    branch: str | None
    is_main: bool


def parse_worktree_porcelain(listing: str) -> list[WorktreeInfo]:
    """Parse ``git worktree list --porcelain`` output.

    The first block is the main worktree. ``detached`` blocks have no branch.
    """
    worktrees: list[WorktreeInfo] = []
    active_path: str | None = None
    active_branch: str | None = None

    def _flush() -> None:
        if active_path is not None:
            worktrees.append(
                WorktreeInfo(
                    path=Path(active_path),
                    branch=active_branch,
                    is_main=not worktrees,
                )
            )

    for raw_line in listing.splitlines():
        line = raw_line.strip()
        if line.startswith("worktree "):
            _flush()
            active_path = line.split(" ", 1)[1]
            active_branch = None
            continue
        if line.startswith("branch "):
            active_branch = line.split(" ", 1)[1].removeprefix("refs/heads/")
            continue
        if line == "detached":
            active_branch = None
    _flush()
    return worktrees


class GitService:
    """Thin wrapper over the git CLI."""

    def get_root(self, cwd: Path) -> Path | None:
        """Return the repository top-level for ``cwd`` or ``None`` outside git."""
        try:
            result = run_git(["rev-parse", "--show-toplevel"], cwd=cwd, check=False)
        except OSError as exc:
            logger.debug("no git root for %s: %s", cwd, exc)
            return None
        if not result.ok:
            logger.debug("no git root for %s: %s", cwd, result.stderr.strip())
            return None
        root = result.first_line()
        if not root:
            return None
        return Path(root).resolve()

    def list_worktrees(self, cwd: Path) -> list[WorktreeInfo]:
        """List every worktree of the repository containing ``cwd``.

        Raises:
            ExecError: If git refuses the listing.
        """
        listing = run_git(["worktree", "list", "--porcelain"], cwd=cwd).stdout
        return parse_worktree_porcelain(listing)

    def get_current_branch(self, cwd: Path) -> str | None:
        result = run_git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd, check=False)
        if not result.ok:
            return None
        branch = result.first_line()
        return None if branch in ("", "HEAD") else branch

    def resolve_worktree_path(self, branch: str, cwd: Path) -> Path | None:
        for worktree in self.list_worktrees(cwd):
            if worktree.branch == branch:
                return worktree.path
        return None

"""VCS service used for topology root and worktree discovery."""

from worklog.vcs.exec import ExecError, ExecResult, run_git
from worklog.vcs.git import GitService, WorktreeInfo, parse_worktree_porcelain

__all__ = [
    "ExecError",
    "ExecResult",
    "GitService",
    "WorktreeInfo",
    "parse_worktree_porcelain",
    "run_git",
]

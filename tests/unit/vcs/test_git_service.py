"""Unit tests for the git VCS service."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from worklog.vcs.exec import GIT_MISSING, ExecError, ExecResult, run_git
from worklog.vcs.git import GitService, WorktreeInfo, parse_worktree_porcelain

PORCELAIN = """worktree /repo
HEAD 1111111111111111111111111111111111111111
branch refs/heads/main

worktree /repo-feat
HEAD 2222222222222222222222222222222222222222
branch refs/heads/feature/login

worktree /repo-detached
HEAD 3333333333333333333333333333333333333333
detached
"""


class _GitStub:
    def __init__(self, outputs: dict[tuple[str, ...], ExecResult]):
        self.outputs = outputs

    def __call__(self, args: list[str], *, cwd: Path, check: bool = True) -> ExecResult:
        key = tuple(args)
        if key not in self.outputs:
            raise AssertionError(f"missing stub for args: {args}")
        result = self.outputs[key]
        if check and result.returncode != 0:
            raise ExecError(result)
        return result


def _result(args: list[str], stdout: str = "", stderr: str = "", code: int = 0) -> ExecResult:
    return ExecResult(argv=tuple(["git", *args]), cwd=Path("/repo"), returncode=code, stdout=stdout, stderr=stderr)


def test_parse_worktree_porcelain() -> None:
    assert parse_worktree_porcelain(PORCELAIN) == [
        WorktreeInfo(path=Path("/repo"), branch="main", is_main=True),
        WorktreeInfo(path=Path("/repo-feat"), branch="feature/login", is_main=False),
        WorktreeInfo(path=Path("/repo-detached"), branch=None, is_main=False),
    ]


def test_parse_empty_listing() -> None:
    assert parse_worktree_porcelain("") == []


def test_get_root(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    args = ["rev-parse", "--show-toplevel"]
    monkeypatch.setattr("worklog.vcs.git.run_git", _GitStub({tuple(args): _result(args, stdout=f"{tmp_path}\n")}))

    assert GitService().get_root(tmp_path) == tmp_path.resolve()


def test_get_root_outside_a_repository(monkeypatch: pytest.MonkeyPatch) -> None:
    args = ["rev-parse", "--show-toplevel"]
    failing = _result(args, stderr="fatal: not a git repository", code=128)
    monkeypatch.setattr("worklog.vcs.git.run_git", _GitStub({tuple(args): failing}))

    assert GitService().get_root(Path("/tmp")) is None


@pytest.mark.parametrize(
    ("stdout", "code", "expected"),
    [("main\n", 0, "main"), ("HEAD\n", 0, None), ("", 128, None)],
)
def test_get_current_branch(monkeypatch: pytest.MonkeyPatch, stdout: str, code: int, expected: str | None) -> None:
    args = ["rev-parse", "--abbrev-ref", "HEAD"]
    monkeypatch.setattr("worklog.vcs.git.run_git", _GitStub({tuple(args): _result(args, stdout=stdout, code=code)}))

    assert GitService().get_current_branch(Path("/repo")) == expected


def test_resolve_worktree_path(monkeypatch: pytest.MonkeyPatch) -> None:
    args = ["worktree", "list", "--porcelain"]
    monkeypatch.setattr("worklog.vcs.git.run_git", _GitStub({tuple(args): _result(args, stdout=PORCELAIN)}))
    service = GitService()

    assert service.resolve_worktree_path("feature/login", Path("/repo")) == Path("/repo-feat")
    assert service.resolve_worktree_path("nope", Path("/repo")) is None


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_run_git_check_mode(tmp_path: Path) -> None:
    ok = run_git(["--version"], cwd=tmp_path, check=False)
    assert ok.ok
    assert ok.argv == ("git", "--version")
    assert ok.first_line().startswith("git version")

    with pytest.raises(ExecError, match="git definitely-not-a-command failed"):
        run_git(["definitely-not-a-command"], cwd=tmp_path)


def test_missing_git_binary_is_a_failed_result(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("worklog.vcs.exec.GIT", "worklog-no-such-git")

    result = run_git(["status"], cwd=tmp_path, check=False)

    assert result.returncode == GIT_MISSING
    assert GitService().get_root(tmp_path) is None
    with pytest.raises(ExecError):
        run_git(["status"], cwd=tmp_path)


def test_real_repository_root_and_branch(git_repo: Path) -> None:
    nested = git_repo / "a" / "b"
    nested.mkdir(parents=True)
    service = GitService()

    assert service.get_root(nested) == git_repo
    assert service.get_current_branch(git_repo) == "main"
    assert service.list_worktrees(git_repo)[0] == WorktreeInfo(path=git_repo, branch="main", is_main=True)

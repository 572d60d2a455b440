"""Pytest configuration and fixtures for worklog tests."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from worklog.context import ScopeContext, build_context
from worklog.settings import Settings
from worklog.store.document import Checkpoint, Entry, TaskRecord, new_meta
from worklog.store.tasks import TaskStore, init_store
from worklog.vcs.git import GitService, WorktreeInfo


class FakeVcs(GitService):
    """In-memory stand-in for git: a fixed root, worktree list and branch."""

    def __init__(
        self,
        root: Path | None,
        worktrees: list[WorktreeInfo] | None = None,
        branch: str | None = "main",
    ) -> None:
        self.root = root.resolve() if root is not None else None
        self.worktrees = worktrees or []
        self.branch = branch

    def get_root(self, cwd: Path) -> Path | None:
        return self.root

    def list_worktrees(self, cwd: Path) -> list[WorktreeInfo]:
        return list(self.worktrees)

    def get_current_branch(self, cwd: Path) -> str | None:
        return self.branch


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A plain directory standing in for the topology root."""
    root = tmp_path / "repo"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A real git repository with one commit on ``main``."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    root = tmp_path / "gitrepo"
    root.mkdir()
    git(root, "init")
    git(root, "config", "user.email", "test@example.com")
    git(root, "config", "user.name", "Test User")
    (root / "README.md").write_text("# test\n", encoding="utf-8")
    git(root, "add", "README.md")
    git(root, "commit", "-m", "initial")
    git(root, "branch", "-M", "main")
    return root.resolve()


@pytest.fixture
def make_store() -> Callable[[Path], Path]:
    """Initialize a store inside ``directory`` and return its marker path."""

    def _make(directory: Path) -> Path:
        store = directory / ".worklog"
        init_store(store)
        return store

    return _make


@pytest.fixture
def make_context(settings: Settings) -> Callable[..., ScopeContext]:
    def _make(
        root: Path | None,
        cwd: Path | None = None,
        scope: str | None = None,
        vcs: GitService | None = None,
    ) -> ScopeContext:
        where = cwd if cwd is not None else root
        assert where is not None
        return build_context(where, scope=scope, settings=settings, vcs=vcs or FakeVcs(root))

    return _make


@pytest.fixture
def add_task() -> Callable[..., TaskRecord]:
    """Write a task record straight into a store.

    ``entries`` are ``(ts, msg)`` pairs and ``checkpoints`` are
    ``(ts, changes, learnings)`` triples. ``uid=None`` writes a record
    without a uid.
    """

    def _add(
        store: Path,
        task_id: str,
        *,
        uid: str | None = "",
        name: str = "task",
        entries: list[tuple[str, str]] | None = None,
        checkpoints: list[tuple[str, str, str]] | None = None,
        last_checkpoint: str | None = None,
        tags: list[str] | None = None,
        status: str = "created",
    ) -> TaskRecord:
        init_store(store)
        meta = new_meta(
            task_id=task_id,
            uid=uid if uid else f"uid-{task_id}",
            name=name,
            desc="",
            created_at="2026-01-22T09:00:00",
            tags=tags,
        )
        if uid is None:
            meta.pop("uid")
        meta["status"] = status
        meta["last_checkpoint"] = last_checkpoint
        record = TaskRecord(
            meta=meta,
            entries=[Entry(ts=ts, msg=msg) for ts, msg in entries or []],
            checkpoints=[Checkpoint(ts=ts, changes=c, learnings=lrn) for ts, c, lrn in checkpoints or []],
        )
        TaskStore(store).save(record)
        return record

    return _add


@pytest.fixture
def fake_vcs() -> type[FakeVcs]:
    return FakeVcs

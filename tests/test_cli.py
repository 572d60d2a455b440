"""End-to-end tests for the ``wl`` command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from worklog import __version__
from worklog.cli import cli

runner = CliRunner()


@pytest.fixture
def in_repo(git_repo: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.delenv("WORKLOG_DIR", raising=False)
    monkeypatch.delenv("WORKLOG_DEPTH_LIMIT", raising=False)
    monkeypatch.chdir(git_repo)
    return git_repo


def _json(*args: str) -> dict:
    result = runner.invoke(cli, ["--json", *args])
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_version() -> None:
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_task_lifecycle(in_repo: Path) -> None:
    assert _json("init")["status"] == "initialized"
    assert _json("init")["status"] == "already_initialized"

    created = _json("add", "Fix login", "--desc", "SSO loop", "--tag", "auth")
    task_id = created["id"]
    assert created["uid"]

    listed = _json("list")["tasks"]
    assert [(row["id"], row["name"], row["tags"]) for row in listed] == [(task_id, "Fix login", ["auth"])]

    traced = _json("trace", task_id[:6], "found the redirect", "--timestamp", "2020-01-22 10:00")
    assert traced == {"status": "ok", "entries_since_checkpoint": 1}

    checkpoint = _json("checkpoint", task_id, "patched middleware", "--learnings", "cookies")
    assert checkpoint["status"] == "checkpoint_created"

    shown = _json("show", task_id)
    assert shown["scope"] == "(root)"
    assert shown["task"]["has_uncheckpointed_entries"] is False
    assert shown["entries_since_checkpoint"] == []
    assert shown["checkpoints"][0]["learnings"] == "cookies"

    assert _json("status", task_id, "started") == {"id": task_id, "status": "started"}
    assert _json("status", task_id, "done")["status"] == "done"
    assert _json("list")["tasks"] == []
    assert len(_json("list", "--all")["tasks"]) == 1


def test_rich_output(in_repo: Path) -> None:
    runner.invoke(cli, ["add", "Plain output"])

    result = runner.invoke(cli, ["list"])

    assert result.exit_code == 0
    assert "Plain output" in result.output


def test_errors_exit_non_zero_with_code(in_repo: Path) -> None:
    runner.invoke(cli, ["init"])

    result = runner.invoke(cli, ["--json", "show", "nothing-here"])
    assert result.exit_code == 1
    assert "task_not_found" in result.output

    text = runner.invoke(cli, ["trace", "nothing-here", "msg"])
    assert text.exit_code == 1
    assert "task_not_found" in text.output


def test_unknown_status_is_rejected(in_repo: Path) -> None:
    task_id = _json("add", "Task")["id"]

    result = runner.invoke(cli, ["status", task_id, "archived"])

    assert result.exit_code != 0
    assert "archived" in result.output
    assert _json("show", task_id)["task"]["status"] == "created"


def test_scopes_flow(in_repo: Path) -> None:
    _json("init")
    assert _json("scopes", "add", "api", "--path", "services/api")["status"] == "scope_created"

    task_id = _json("add", "Root task", "--tag", "backend")["id"]
    moved = _json("scopes", "assign", "api", task_id)
    assert moved["moved"] == 1

    detail = _json("scopes", "list", "api")
    assert detail == {"id": "api", "path": "services/api", "taskCount": 1}

    rows = _json("scopes", "list")["scopes"]
    assert [row["id"] for row in rows] == ["(root)", "api"]

    shown = _json("--scope", "api", "show", task_id)
    assert shown["scope"] == "api"

    assert _json("scopes", "rename", "api", "backend")["id"] == "backend"
    deleted = _json("scopes", "delete", "backend", "--move-to", "/")
    assert deleted == {"status": "scope_deleted", "id": "backend", "moved": 1}
    assert [row["id"] for row in _json("list")["tasks"]] == [task_id]


def test_assign_needs_refs_or_tag(in_repo: Path) -> None:
    _json("init")
    _json("scopes", "add", "api")

    result = runner.invoke(cli, ["scopes", "assign", "api"])

    assert result.exit_code == 1
    assert "invalid_args" in result.output


def test_import_from_path(in_repo: Path, tmp_path: Path) -> None:
    _json("init")
    other = tmp_path / "elsewhere"
    other.mkdir()

    with pytest.MonkeyPatch.context() as mp:
        mp.chdir(other)
        task_id = _json("add", "Outside task")["id"]

    output = _json("import", "--path", str(other), "--rm")

    assert (output["imported"], output["failed"]) == (1, 0)
    assert not (other / ".worklog").exists()
    assert [row["id"] for row in _json("list")["tasks"]] == [task_id]


def test_import_needs_exactly_one_source(in_repo: Path) -> None:
    result = runner.invoke(cli, ["--json", "import"])

    assert result.exit_code == 1
    assert "invalid_args" in result.output

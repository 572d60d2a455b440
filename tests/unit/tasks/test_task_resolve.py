"""Tests for task reference resolution across scopes."""

from __future__ import annotations

from pathlib import Path

import pytest

from worklog.errors import INVALID_ARGS, SCOPE_NOT_FOUND, TASK_NOT_FOUND, WorklogError
from worklog.scope.config import save_config
from worklog.scope.types import ChildConfig, RootConfig, ScopeEntry
from worklog.tasks.resolve import candidate_stores, resolve_task, short_id


@pytest.fixture
def topology(repo: Path, make_store) -> Path:
    root = make_store(repo)
    make_store(repo / "api")
    make_store(repo / "web")
    save_config(root, RootConfig(children=(ScopeEntry(path="api", id="api"), ScopeEntry(path="web", id="web"))))
    save_config(repo / "api" / ".worklog", ChildConfig(parent=".."))
    save_config(repo / "web" / ".worklog", ChildConfig(parent=".."))
    return repo


def test_short_id_is_shortest_unique_prefix_plus_one() -> None:
    ids = ["260122a", "260122b", "abc123x", "abc123y", "zz"]

    assert short_id("abc123x", ids) == "abc123x"
    assert short_id("260122a", ids) == "260122a"
    assert short_id("zz", ids) == "zz"
    assert short_id("abcdefgh", ["zzzzz"]) == "abcdef"


def test_prefix_resolves_in_active_store(topology: Path, make_context, add_task) -> None:
    add_task(topology / "api" / ".worklog", "260122a")
    context = make_context(topology, cwd=topology / "api")

    resolved = resolve_task("2601", context)

    assert resolved.task_id == "260122a"
    assert resolved.store == topology / "api" / ".worklog"


def test_ambiguous_prefix_lists_each_match(topology: Path, make_context, add_task) -> None:
    store = topology / "api" / ".worklog"
    add_task(store, "abc123x", name="first")
    add_task(store, "abc123y", name="second")
    context = make_context(topology, cwd=topology / "api")

    with pytest.raises(WorklogError) as excinfo:
        resolve_task("abc", context)

    assert excinfo.value.code == INVALID_ARGS
    message = excinfo.value.message
    assert "matches 2 tasks" in message
    assert "api:abc123x  first" in message
    assert "api:abc123y  second" in message


def test_local_ambiguity_does_not_widen(topology: Path, make_context, add_task) -> None:
    add_task(topology / "api" / ".worklog", "abc123x")
    add_task(topology / "api" / ".worklog", "abc123y")
    add_task(topology / "web" / ".worklog", "abc999z")
    context = make_context(topology, cwd=topology / "api")

    with pytest.raises(WorklogError) as excinfo:
        resolve_task("abc", context)

    assert "matches 2 tasks" in excinfo.value.message
    assert "abc999z" not in excinfo.value.message


def test_search_widens_when_active_store_has_no_match(topology: Path, make_context, add_task) -> None:
    add_task(topology / "web" / ".worklog", "260122q")
    context = make_context(topology, cwd=topology / "api")

    resolved = resolve_task("260122q", context)

    assert resolved.task_id == "260122q"
    assert resolved.store == topology / "web" / ".worklog"
    assert resolved.context.tasks.load("260122q").id == "260122q"


def test_widened_ambiguity_spans_stores(topology: Path, make_context, add_task) -> None:
    add_task(topology / ".worklog", "260122a", name="root task")
    add_task(topology / "web" / ".worklog", "260122b", name="web task")
    context = make_context(topology, cwd=topology / "api")

    with pytest.raises(WorklogError) as excinfo:
        resolve_task("2601", context)

    lines = excinfo.value.message.splitlines()
    assert lines[1:] == ["  (root):260122a  root task", "  web:260122b  web task"]


def test_long_match_lists_are_truncated(topology: Path, make_context, add_task) -> None:
    store = topology / "api" / ".worklog"
    for suffix in "abcdefghijkl":
        add_task(store, f"260122{suffix}")
    context = make_context(topology, cwd=topology / "api")

    with pytest.raises(WorklogError) as excinfo:
        resolve_task("2601", context)

    lines = excinfo.value.message.splitlines()
    assert len(lines) == 12
    assert lines[-1] == "  ... and 2 more"


def test_not_found_after_widening(topology: Path, make_context) -> None:
    context = make_context(topology, cwd=topology / "api")

    with pytest.raises(WorklogError) as excinfo:
        resolve_task("deadbeef", context)

    assert excinfo.value.code == TASK_NOT_FOUND
    assert "searched all scopes" in excinfo.value.message


def test_scope_hint_limits_the_search(topology: Path, make_context, add_task) -> None:
    add_task(topology / "web" / ".worklog", "260122a")
    add_task(topology / "api" / ".worklog", "260122b")
    context = make_context(topology, cwd=topology / "api")

    resolved = resolve_task("web:2601", context)
    assert (resolved.task_id, resolved.store) == ("260122a", topology / "web" / ".worklog")

    with pytest.raises(WorklogError) as excinfo:
        resolve_task("web:260122b", context)
    assert excinfo.value.code == TASK_NOT_FOUND
    assert "searched web" in excinfo.value.message


def test_parent_hint(topology: Path, make_context, add_task) -> None:
    add_task(topology / ".worklog", "260122r")
    context = make_context(topology, cwd=topology / "api")

    resolved = resolve_task("^:260122r", context)
    assert resolved.store == topology / ".worklog"

    root_context = make_context(topology)
    with pytest.raises(WorklogError) as excinfo:
        resolve_task("^:260122r", root_context)
    assert excinfo.value.code == SCOPE_NOT_FOUND


def test_empty_reference_is_rejected(topology: Path, make_context) -> None:
    with pytest.raises(WorklogError) as excinfo:
        resolve_task("web:", make_context(topology))

    assert excinfo.value.code == INVALID_ARGS


def test_malformed_index_is_skipped_while_widening(topology: Path, make_context, add_task) -> None:
    (topology / "web" / ".worklog" / "index.json").write_text("{broken", encoding="utf-8")
    add_task(topology / ".worklog", "260122s")
    context = make_context(topology, cwd=topology / "api")

    assert resolve_task("260122s", context).store == topology / ".worklog"


def test_candidate_stores_are_deduplicated(topology: Path, make_context) -> None:
    context = make_context(topology, cwd=topology / "api")

    stores = candidate_stores(context)

    assert stores == [
        topology / ".worklog",
        topology / "api" / ".worklog",
        topology / "web" / ".worklog",
    ]

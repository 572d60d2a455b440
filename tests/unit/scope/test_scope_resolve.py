"""Tests for active-scope selection and scope identifier resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from worklog.errors import NOT_IN_GIT_REPO, SCOPE_AMBIGUOUS, SCOPE_NOT_FOUND, WorklogError
from worklog.scope.config import save_config
from worklog.scope.resolve import (
    child_stores,
    find_nearest_store,
    parent_store,
    resolve_active_scope,
    resolve_scope_identifier,
    store_display_id,
)
from worklog.scope.types import ChildConfig, RootConfig, ScopeEntry
from worklog.settings import Settings


@pytest.fixture
def topology(repo: Path, make_store) -> Path:
    root = make_store(repo)
    make_store(repo / "services" / "api")
    make_store(repo / "web")
    save_config(
        root,
        RootConfig(
            children=(
                ScopeEntry(path="services/api", id="api"),
                ScopeEntry(path="web", id="web"),
            )
        ),
    )
    save_config(repo / "services" / "api" / ".worklog", ChildConfig(parent="../.."))
    save_config(repo / "web" / ".worklog", ChildConfig(parent=".."))
    return repo


def test_nearest_store_wins_over_root(topology: Path, settings: Settings) -> None:
    cwd = topology / "services" / "api" / "src"
    cwd.mkdir(parents=True)

    assert resolve_active_scope(cwd, topology, settings) == topology / "services" / "api" / ".worklog"


def test_root_store_when_nothing_nearer(topology: Path, settings: Settings) -> None:
    cwd = topology / "docs"
    cwd.mkdir()

    assert resolve_active_scope(cwd, topology, settings) == topology / ".worklog"


def test_degraded_mode_defaults_to_cwd(tmp_path: Path, settings: Settings) -> None:
    cwd = tmp_path / "loose"
    cwd.mkdir()

    assert resolve_active_scope(cwd, None, settings) == cwd / ".worklog"


def test_explicit_store_overrides_everything(topology: Path, settings: Settings) -> None:
    explicit = topology / "web" / ".worklog"

    assert resolve_active_scope(topology, topology, settings, explicit=explicit) == explicit


def test_nearest_store_walk_stops_at_boundary(tmp_path: Path, settings: Settings, make_store) -> None:
    make_store(tmp_path)
    inner = tmp_path / "repo" / "deep"
    inner.mkdir(parents=True)

    assert find_nearest_store(inner, tmp_path / "repo", settings) is None
    assert find_nearest_store(inner, None, settings) == tmp_path / ".worklog"


def test_identifier_tokens(topology: Path, make_context) -> None:
    context = make_context(topology, cwd=topology / "web")

    assert resolve_scope_identifier("/", context) == topology / ".worklog"
    assert resolve_scope_identifier("(root)", context) == topology / ".worklog"
    assert resolve_scope_identifier(".", context) == topology / "web" / ".worklog"


def test_identifier_by_path_and_by_id(topology: Path, make_context) -> None:
    context = make_context(topology)

    assert resolve_scope_identifier("services/api", context) == topology / "services" / "api" / ".worklog"
    assert resolve_scope_identifier("services/api/", context) == topology / "services" / "api" / ".worklog"
    assert resolve_scope_identifier("api", context) == topology / "services" / "api" / ".worklog"


def test_duplicate_ids_are_ambiguous(topology: Path, make_context, make_store) -> None:
    make_store(topology / "legacy" / "api")
    save_config(
        topology / ".worklog",
        RootConfig(
            children=(
                ScopeEntry(path="services/api", id="api"),
                ScopeEntry(path="legacy/api", id="api"),
            )
        ),
    )
    context = make_context(topology)

    with pytest.raises(WorklogError) as excinfo:
        resolve_scope_identifier("api", context)

    assert excinfo.value.code == SCOPE_AMBIGUOUS
    assert "services/api" in excinfo.value.message
    assert "legacy/api" in excinfo.value.message
    assert resolve_scope_identifier("services/api", context) == topology / "services" / "api" / ".worklog"
    assert resolve_scope_identifier("legacy/api", context) == topology / "legacy" / "api" / ".worklog"


def test_unknown_identifier(topology: Path, make_context) -> None:
    with pytest.raises(WorklogError) as excinfo:
        resolve_scope_identifier("nope", make_context(topology))

    assert excinfo.value.code == SCOPE_NOT_FOUND


def test_identifiers_need_a_topology_root(tmp_path: Path, make_context) -> None:
    context = make_context(None, cwd=tmp_path)

    assert resolve_scope_identifier(".", context) == tmp_path.resolve() / ".worklog"
    with pytest.raises(WorklogError) as excinfo:
        resolve_scope_identifier("/", context)
    assert excinfo.value.code == NOT_IN_GIT_REPO


def test_parent_and_children(topology: Path, settings: Settings) -> None:
    api = topology / "services" / "api" / ".worklog"

    assert parent_store(api, settings) == topology / ".worklog"
    assert parent_store(topology / ".worklog", settings) is None
    assert child_stores(topology / ".worklog", settings) == [api, topology / "web" / ".worklog"]
    assert child_stores(api, settings) == []


def test_display_ids(topology: Path, make_context, make_store) -> None:
    context = make_context(topology)
    make_store(topology / "tools")

    assert store_display_id(topology / ".worklog", context) == "(root)"
    assert store_display_id(topology / "services" / "api" / ".worklog", context) == "api"
    assert store_display_id(topology / "tools" / ".worklog", context) == "tools"

"""Resolve a possibly abbreviated, possibly scope-qualified task reference.

References take two forms:

* ``<prefix>``: searched in the active store, then across the topology when
  nothing matched there.
* ``<scope>:<prefix>``: searched only in the named store. ``^`` names the
  active store's parent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from worklog.context import ScopeContext
from worklog.errors import INVALID_ARGS, INVALID_STATE, SCOPE_NOT_FOUND, TASK_NOT_FOUND, WorklogError
from worklog.scope.discovery import discover_scopes
from worklog.scope.resolve import child_stores, parent_store, resolve_scope_identifier, store_display_id
from worklog.store.index import load_index

logger = logging.getLogger(__name__)

PARENT_HINT = "^"
SHORT_ID_MIN = 5
MAX_LISTED_MATCHES = 10


@dataclass(frozen=True)
class ResolvedTask:
    """A task id plus the context switched to the store that owns it."""

    task_id: str
    context: ScopeContext

    @property
    def store(self) -> Path:
        return self.context.store


@dataclass(frozen=True)
class _Match:
    store: Path
    task_id: str
    name: str


def short_id(task_id: str, all_ids: list[str] | set[str]) -> str:
    """Shortest unambiguous prefix (at least five chars) plus one char of margin."""
    length = SHORT_ID_MIN
    lowered = [other.lower() for other in all_ids if other != task_id]
    while length < len(task_id):
        prefix = task_id[:length].lower()
        if not any(other.startswith(prefix) for other in lowered):
            return task_id[: min(length + 1, len(task_id))]
        length += 1
    return task_id


def _matches_in(store: Path, prefix: str) -> list[_Match]:
    lowered = prefix.lower()
    tasks = load_index(store).tasks
    return [
        _Match(store=store, task_id=task_id, name=str(entry.get("name", "")))
        for task_id, entry in tasks.items()
        if task_id.lower().startswith(lowered)
    ]


def _single(reference: str, matches: list[_Match], context: ScopeContext, searched_all: bool) -> _Match:
    if not matches:
        where = "searched all scopes" if searched_all else f"searched {store_display_id(context.store, context)}"
        raise WorklogError(TASK_NOT_FOUND, f"Task not found: {reference} ({where})")
    if len(matches) > 1:
        raise WorklogError(INVALID_ARGS, _ambiguity_message(reference, matches, context))
    return matches[0]


def _ambiguity_message(reference: str, matches: list[_Match], context: ScopeContext) -> str:
    all_ids = [m.task_id for m in matches]
    rows = sorted(
        ((store_display_id(m.store, context), m) for m in matches),
        key=lambda row: (row[0], row[1].task_id),
    )
    lines = [f"Ambiguous task reference '{reference}' matches {len(matches)} tasks:"]
    for display, match in rows[:MAX_LISTED_MATCHES]:
        lines.append(f"  {display}:{short_id(match.task_id, all_ids)}  {match.name}")
    if len(rows) > MAX_LISTED_MATCHES:
        lines.append(f"  ... and {len(rows) - MAX_LISTED_MATCHES} more")
    return "\n".join(lines)


def candidate_stores(context: ScopeContext) -> list[Path]:
    """Stores searched when the active store has no match, deduplicated in order."""
    candidates: list[Path] = []
    if context.git_root is not None:
        candidates.extend(scope.path for scope in discover_scopes(context.git_root, context.settings))
    candidates.extend(child_stores(context.store, context.settings))
    parent = parent_store(context.store, context.settings)
    if parent is not None:
        candidates.append(parent)

    seen: set[Path] = set()
    ordered: list[Path] = []
    for store in candidates:
        key = store.resolve()
        if key in seen:
            continue
        seen.add(key)
        ordered.append(store)
    return ordered


def _widened_matches(prefix: str, context: ScopeContext) -> list[_Match]:
    matches: list[_Match] = []
    for store in candidate_stores(context):
        try:
            matches.extend(_matches_in(store, prefix))
        except WorklogError as exc:
            if exc.code != INVALID_STATE:
                raise
            logger.debug("skipping store with malformed index %s: %s", store, exc.message)
    return matches


def _split_reference(reference: str) -> tuple[str | None, str]:
    hint, sep, prefix = reference.partition(":")
    if not sep or not hint:
        return None, reference
    return hint, prefix


def resolve_task(reference: str, context: ScopeContext) -> ResolvedTask:
    """Resolve ``reference`` to exactly one task.

    Raises:
        WorklogError: ``task_not_found`` when nothing matches, ``invalid_args``
            when several tasks match or the reference is empty, plus any scope
            resolution error for an explicit hint.
    """
    hint, prefix = _split_reference(reference.strip())
    if not prefix:
        raise WorklogError(INVALID_ARGS, "Task reference must not be empty")

    if hint is not None:
        if hint == PARENT_HINT:
            store = parent_store(context.store, context.settings)
            if store is None:
                raise WorklogError(SCOPE_NOT_FOUND, "Active store has no parent scope")
        else:
            store = resolve_scope_identifier(hint, context)
        scoped = context.with_store(store)
        match = _single(reference, _matches_in(store, prefix), scoped, searched_all=False)
        return ResolvedTask(task_id=match.task_id, context=scoped)

    local = _matches_in(context.store, prefix)
    if local:
        match = _single(reference, local, context, searched_all=False)
        return ResolvedTask(task_id=match.task_id, context=context)

    logger.debug("no match for %s in %s, widening search", prefix, context.store)
    match = _single(reference, _widened_matches(prefix, context), context, searched_all=True)
    return ResolvedTask(task_id=match.task_id, context=context.with_store(match.store))

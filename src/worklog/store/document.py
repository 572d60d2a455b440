"""Task record document service: markdown with YAML frontmatter.

A record looks like::

    ---
    id: 260122a
    uid: 6c0e...
    name: Fix login
    ...
    ---

    # Entries

    ## 2026-01-22 10:15

    Investigated the redirect loop.

    # Checkpoints

    ## 2026-01-22 12:00

    ### Changes

    Patched the session middleware.

    ### Learnings

    Cookies are scoped per worktree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import yaml

TASK_STATUSES: tuple[str, ...] = ("created", "ready", "started", "done", "cancelled")

ENTRIES_HEADING = "# Entries"
CHECKPOINTS_HEADING = "# Checkpoints"

_TIMESTAMP_TITLE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_CHANGES_HEADING = re.compile(r"^###\s+Changes\s*$")
_LEARNINGS_HEADING = re.compile(r"^###\s+Learnings\s*$")


@dataclass(frozen=True)
class Entry:
    ts: str
    msg: str


@dataclass(frozen=True)
class Checkpoint:
    ts: str
    changes: str
    learnings: str


@dataclass
class TaskRecord:
    """Parsed task record: frontmatter plus append-only entries and checkpoints."""

    meta: dict[str, Any]
    entries: list[Entry] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)

    @property
    def id(self) -> str:
        return str(self.meta.get("id", ""))

    @property
    def uid(self) -> str | None:
        value = self.meta.get("uid")
        return str(value) if value else None

    @property
    def last_checkpoint(self) -> str | None:
        value = self.meta.get("last_checkpoint")
        return str(value) if value else None

    @property
    def tags(self) -> list[str]:
        return list(self.meta.get("tags") or [])


def new_meta(
    *,
    task_id: str,
    uid: str,
    name: str,
    desc: str,
    created_at: str,
    tags: list[str] | None = None,
) -> dict[str, Any]:
    """Frontmatter for a freshly created task."""
    meta: dict[str, Any] = {
        "id": task_id,
        "uid": uid,
        "name": name,
        "desc": desc,
        "status": "created",
        "created_at": created_at,
        "ready_at": None,
        "started_at": None,
        "done_at": None,
        "cancelled_at": None,
        "last_checkpoint": None,
        "has_uncheckpointed_entries": False,
    }
    if tags:
        meta["tags"] = list(tags)
    return meta


def _normalize_value(value: Any) -> Any:
    # YAML turns unquoted timestamps into datetime objects.
    if isinstance(value, datetime):
        return value.replace(tzinfo=None).isoformat() if value.tzinfo is None else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _normalize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_value(v) for v in value]
    return value


def _split_frontmatter(text: str) -> tuple[str, list[str]]:
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        raise ValueError("Invalid task file: missing frontmatter")
    for idx in range(1, len(lines)):
        if lines[idx].strip() == "---":
            return "\n".join(lines[1:idx]), lines[idx + 1 :]
    raise ValueError("Invalid task file: unterminated frontmatter")


def _block_text(lines: list[str]) -> str:
    return "\n".join(lines).strip()


def _parse_checkpoint(ts: str, lines: list[str]) -> Checkpoint:
    changes_idx = -1
    learnings_idx = -1
    for idx, line in enumerate(lines):
        if _CHANGES_HEADING.match(line):
            changes_idx = idx
        elif _LEARNINGS_HEADING.match(line):
            learnings_idx = idx

    changes = ""
    learnings = ""
    if changes_idx >= 0:
        end = learnings_idx if learnings_idx > changes_idx else len(lines)
        changes = _block_text(lines[changes_idx + 1 : end])
    if learnings_idx >= 0:
        learnings = _block_text(lines[learnings_idx + 1 :])
    return Checkpoint(ts=ts, changes=changes, learnings=learnings)


def parse_task(text: str) -> TaskRecord:
    """Parse a task record.

    Raises:
        ValueError: If the frontmatter is missing or not a mapping.
        yaml.YAMLError: If the frontmatter is not valid YAML.
    """
    raw_meta, body = _split_frontmatter(text)
    loaded = yaml.safe_load(raw_meta) if raw_meta.strip() else {}
    if not isinstance(loaded, dict):
        raise ValueError("Invalid task file: frontmatter is not a mapping")
    meta = {str(k): _normalize_value(v) for k, v in loaded.items()}
    for key in ("id", "uid"):
        if meta.get(key) is not None:
            meta[key] = str(meta[key])

    record = TaskRecord(meta=meta)
    section: str | None = None
    block_title: str | None = None
    block_lines: list[str] = []

    def _close_block() -> None:
        if block_title is None:
            return
        if section == "entries":
            record.entries.append(Entry(ts=block_title, msg=_block_text(block_lines)))
        elif section == "checkpoints" and _TIMESTAMP_TITLE.match(block_title):
            record.checkpoints.append(_parse_checkpoint(block_title, block_lines))

    for line in body:
        if line.startswith("# "):
            _close_block()
            block_title, block_lines = None, []
            heading = line.strip()
            if heading == ENTRIES_HEADING:
                section = "entries"
            elif heading == CHECKPOINTS_HEADING:
                section = "checkpoints"
            else:
                section = None
            continue
        if line.startswith("## ") and section is not None:
            _close_block()
            block_title, block_lines = line[3:].strip(), []
            continue
        if block_title is not None:
            block_lines.append(line)
    _close_block()
    return record


def render_task(record: TaskRecord) -> str:
    """Serialize a record back to markdown."""
    frontmatter = yaml.safe_dump(
        record.meta,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    parts = [f"---\n{frontmatter}---\n", f"\n{ENTRIES_HEADING}\n"]
    for entry in record.entries:
        parts.append(f"\n## {entry.ts}\n\n{entry.msg}\n")
    parts.append(f"\n{CHECKPOINTS_HEADING}\n")
    for checkpoint in record.checkpoints:
        parts.append(
            f"\n## {checkpoint.ts}\n\n"
            f"### Changes\n\n{checkpoint.changes}\n\n"
            f"### Learnings\n\n{checkpoint.learnings}\n"
        )
    return "".join(parts)

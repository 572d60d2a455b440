"""Filesystem helpers: atomic writes and path arithmetic."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` through a sibling temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.worklog.tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


def dumps_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False) + "\n"


def atomic_write_json(path: Path, obj: Any) -> None:
    atomic_write_text(path, dumps_json(obj))


def remove_tree(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


def relative_path(from_dir: Path, to_dir: Path) -> str:
    """Return a POSIX relative path from one directory to another ("." if equal)."""
    rel = os.path.relpath(to_dir, from_dir)
    return Path(rel).as_posix()


def resolve_against(base: Path, target: str) -> Path:
    """Resolve ``target`` (absolute or relative to ``base``) to a normalized path."""
    candidate = Path(target)
    if not candidate.is_absolute():
        candidate = base / candidate
    return Path(os.path.normpath(candidate))


def is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True

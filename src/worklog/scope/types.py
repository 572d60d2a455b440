"""Typed values for stores and their configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Union

ScopeType = Literal["path", "worktree"]

ROOT_DISPLAY_ID = "(root)"
ROOT_RELATIVE_PATH = "."


@dataclass(frozen=True)
class ScopeEntry:
    """One child registered in the root store's configuration.

    ``path`` is relative to the topology root, or absolute for worktrees that
    live outside the repository directory.
    """

    path: str
    id: str
    type: ScopeType = "path"
    git_ref: str | None = None
    tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScopeEntry:
        return cls(
            path=str(data["path"]),
            id=str(data["id"]),
            type="worktree" if data.get("type") == "worktree" else "path",
            git_ref=data.get("gitRef"),
            tags=tuple(data.get("tags") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"path": self.path, "id": self.id}
        if self.type != "path":
            out["type"] = self.type
        if self.git_ref:
            out["gitRef"] = self.git_ref
        if self.tags:
            out["tags"] = list(self.tags)
        return out


@dataclass(frozen=True)
class RootConfig:
    children: tuple[ScopeEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"children": [child.to_dict() for child in self.children]}

    def find_child(self, identifier: str) -> ScopeEntry | None:
        """Match by id first, then by path."""
        for child in self.children:
            if child.id == identifier:
                return child
        for child in self.children:
            if child.path == identifier:
                return child
        return None


@dataclass(frozen=True)
class ChildConfig:
    """Child store pointing at its parent (path relative to the child's directory)."""

    parent: str

    def to_dict(self) -> dict[str, Any]:
        return {"parent": self.parent}


ScopeConfig = Union[RootConfig, ChildConfig]


@dataclass(frozen=True)
class DiscoveredScope:
    """A store found on disk.

    ``path`` is the marker directory itself (``<dir>/.worklog``).
    """

    path: Path
    relative_path: str
    id: str
    is_root: bool

    @property
    def directory(self) -> Path:
        return self.path.parent

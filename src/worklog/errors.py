"""Error taxonomy shared by scope, resolution and reconciliation flows."""

from __future__ import annotations

NOT_IN_GIT_REPO = "not_in_git_repo"
NOT_INITIALIZED = "not_initialized"
SCOPE_NOT_FOUND = "scope_not_found"
SCOPE_AMBIGUOUS = "scope_ambiguous"
SCOPE_HAS_TASKS = "scope_has_tasks"
ALREADY_HAS_PARENT = "already_has_parent"
INVALID_STATE = "invalid_state"
TASK_NOT_FOUND = "task_not_found"
INVALID_ARGS = "invalid_args"
IMPORT_SOURCE_NOT_FOUND = "import_source_not_found"
WORKTREE_NOT_FOUND = "worktree_not_found"
IO_ERROR = "io_error"

ERROR_CODES: tuple[str, ...] = (
    NOT_IN_GIT_REPO,
    NOT_INITIALIZED,
    SCOPE_NOT_FOUND,
    SCOPE_AMBIGUOUS,
    SCOPE_HAS_TASKS,
    ALREADY_HAS_PARENT,
    INVALID_STATE,
    TASK_NOT_FOUND,
    INVALID_ARGS,
    IMPORT_SOURCE_NOT_FOUND,
    WORKTREE_NOT_FOUND,
    IO_ERROR,
)


class WorklogError(RuntimeError):
    """Domain error carrying a stable code plus a human-readable message."""

    code: str

    def __init__(self, code: str, message: str) -> None:
        if code not in ERROR_CODES:
            raise ValueError(f"unknown error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {
            "error": self.code,
            "code": self.code,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

"""Run ``git`` and wrap what it printed for :class:`~worklog.vcs.git.GitService`."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

GIT = "git"
# Exit status a shell reports for a command it cannot find.
GIT_MISSING = 127


@dataclass(frozen=True)
class ExecResult:
    """One finished git invocation."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def first_line(self) -> str:
        lines = self.stdout.strip().splitlines()
        return lines[0].strip() if lines else ""


class ExecError(RuntimeError):
    """git failed (or could not start) where the caller required success."""

    def __init__(self, result: ExecResult):
        subcommand = " ".join(result.argv[1:])
        detail = (result.stderr or result.stdout).strip() or "no output"
        super().__init__(f"git {subcommand} failed in {result.cwd} ({result.returncode}): {detail}")
        self.result = result


def run_git(
    args: list[str],
    *,
    cwd: Path,
    check: bool = True,
) -> ExecResult:
    """Run ``git <args>`` from ``cwd``.

    A missing git binary comes back as exit status 127 so callers handle it
    like any other git failure.
    """
    argv = (GIT, *args)
    try:
        completed = subprocess.run(argv, cwd=cwd, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        result = ExecResult(argv=argv, cwd=cwd, returncode=GIT_MISSING, stdout="", stderr=str(exc))
    else:
        result = ExecResult(
            argv=argv,
            cwd=cwd,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
    if check and not result.ok:
        raise ExecError(result)
    return result

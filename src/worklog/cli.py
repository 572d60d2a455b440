"""worklog CLI (``wl``): tasks, scopes and imports across per-directory stores."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
import typer
from rich.console import Console
from rich.table import Table

from worklog import __version__
from worklog.context import ScopeContext, build_context
from worklog.errors import IMPORT_SOURCE_NOT_FOUND, INVALID_ARGS, IO_ERROR, WORKTREE_NOT_FOUND, WorklogError
from worklog.log import setup_logging
from worklog.reconcile import ImportOutput, import_scope_to_tag, import_tasks
from worklog.scope.manage import add_parent, add_scope, delete_scope, list_scopes, rename_scope
from worklog.scope.relocate import assign_by_tag, assign_tasks, export_scope
from worklog.scope.resolve import resolve_scope_identifier, store_display_id
from worklog.scope.worktrees import sync_worktrees
from worklog.store.document import TASK_STATUSES
from worklog.store.tasks import (
    add_checkpoint,
    add_entry,
    create_task,
    entries_since_checkpoint,
    init_store,
    list_tasks,
    set_status,
)
from worklog.tasks.resolve import resolve_task, short_id
from worklog.vcs.exec import ExecError

cli = typer.Typer(
    name="wl",
    help="worklog - per-directory task stores with scope hierarchy",
    no_args_is_help=True,
)
scopes_app = typer.Typer(help="Manage the scope hierarchy.", no_args_is_help=True)
cli.add_typer(scopes_app, name="scopes")

console = Console()
err_console = Console(stderr=True)


@dataclass
class CliState:
    json_output: bool = False
    scope: str | None = None


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def _version_option_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON instead of rich text."),
    scope: str | None = typer.Option(None, "--scope", "-s", help="Act on this scope instead of the nearest one."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging on stderr."),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show worklog version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Global options shared by every command."""
    _ = version
    setup_logging(verbose=verbose, console=err_console)
    ctx.obj = CliState(json_output=json_output, scope=scope)


def _fail(state: CliState, exc: WorklogError) -> typer.Exit:
    if state.json_output:
        typer.echo(json.dumps(exc.to_dict(), indent=2), err=True)
    else:
        err_console.print(f"[bold red]Error ({exc.code}):[/bold red] {exc.message}", highlight=False)
    return typer.Exit(1)


def _context(state: CliState) -> ScopeContext:
    return build_context(Path.cwd(), scope=state.scope)


def _emit(state: CliState, payload: Any, text: str | None = None) -> None:
    if state.json_output:
        typer.echo(json.dumps(payload, indent=2))
    elif text is not None:
        console.print(text, highlight=False)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@cli.command("init")
def init_cmd(ctx: typer.Context) -> None:
    """Create a store in the current directory (or the --scope store)."""
    state = _state(ctx)
    try:
        context = _context(state)
        store = context.store if state.scope else context.cwd / context.settings.marker_dir
        created = init_store(store)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    status = "initialized" if created else "already_initialized"
    _emit(state, {"status": status, "path": str(store)}, f"[green]✓ {status.replace('_', ' ')}[/green] {store}")


@cli.command("add")
def add_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Short task name."),
    desc: str = typer.Option("", "--desc", "-d", help="Longer description."),
    tags: list[str] = typer.Option([], "--tag", "-t", help="Tag (repeatable)."),
) -> None:
    """Create a task in the active store."""
    state = _state(ctx)
    try:
        context = _context(state)
        record = create_task(context.tasks, name, desc, tags=tags or None)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, {"id": record.id, "uid": record.uid}, f"[green]✓ created[/green] {record.id}  {name}")


@cli.command("show")
def show_cmd(ctx: typer.Context, ref: str = typer.Argument(..., help="Task id, prefix or scope:prefix.")) -> None:
    """Show a task with its pending entries and checkpoints."""
    state = _state(ctx)
    try:
        resolved = resolve_task(ref, _context(state))
        record = resolved.context.tasks.load(resolved.task_id)
        scope_id = store_display_id(resolved.store, resolved.context)
    except WorklogError as exc:
        raise _fail(state, exc) from exc

    pending = entries_since_checkpoint(record)
    payload = {
        "scope": scope_id,
        "task": record.meta,
        "entries_since_checkpoint": [{"ts": e.ts, "msg": e.msg} for e in pending],
        "checkpoints": [
            {"ts": c.ts, "changes": c.changes, "learnings": c.learnings} for c in record.checkpoints
        ],
    }
    if state.json_output:
        _emit(state, payload)
        return
    console.print(f"[bold]{record.id}[/bold] ({scope_id})  {record.meta.get('name', '')}", highlight=False)
    console.print(f"status: {record.meta.get('status')}", highlight=False)
    if record.meta.get("desc"):
        console.print(str(record.meta["desc"]), highlight=False)
    if record.tags:
        console.print(f"tags: {', '.join(record.tags)}", highlight=False)
    if record.checkpoints:
        last = record.checkpoints[-1]
        console.print(f"\n[cyan]Last checkpoint {last.ts}[/cyan]\n{last.changes}", highlight=False)
    for entry in pending:
        console.print(f"\n[dim]{entry.ts}[/dim]  {entry.msg}", highlight=False)


@cli.command("trace")
def trace_cmd(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Task reference."),
    message: str = typer.Argument(..., help="Entry text."),
    timestamp: str | None = typer.Option(None, "--timestamp", "-T", help="Override the entry timestamp."),
) -> None:
    """Append an entry to a task."""
    state = _state(ctx)
    try:
        resolved = resolve_task(ref, _context(state))
        result = add_entry(resolved.context.tasks, resolved.task_id, message, timestamp)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    payload = {"status": result.status, "entries_since_checkpoint": result.entries_since_checkpoint}
    text = "[green]✓ traced[/green]"
    if result.status == "checkpoint_recommended":
        text += f"  [yellow]{result.entries_since_checkpoint} entries since last checkpoint[/yellow]"
    _emit(state, payload, text)


@cli.command("checkpoint")
def checkpoint_cmd(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Task reference."),
    changes: str = typer.Argument(..., help="What changed since the last checkpoint."),
    learnings: str = typer.Option("", "--learnings", "-l", help="What was learned."),
) -> None:
    """Record a checkpoint closing every entry so far."""
    state = _state(ctx)
    try:
        resolved = resolve_task(ref, _context(state))
        checkpoint = add_checkpoint(resolved.context.tasks, resolved.task_id, changes, learnings)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, {"status": "checkpoint_created", "ts": checkpoint.ts}, f"[green]✓ checkpoint[/green] {checkpoint.ts}")


@cli.command("status")
def status_cmd(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Task reference."),
    status: str = typer.Argument(..., help="New lifecycle status.", click_type=click.Choice(TASK_STATUSES)),
) -> None:
    """Move a task through its lifecycle."""
    state = _state(ctx)
    try:
        resolved = resolve_task(ref, _context(state))
        record = set_status(resolved.context.tasks, resolved.task_id, status)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, {"id": record.id, "status": status}, f"[green]✓ {record.id}[/green] -> {status}")


@cli.command("list")
def list_cmd(
    ctx: typer.Context,
    show_all: bool = typer.Option(False, "--all", "-a", help="Include done and cancelled tasks."),
) -> None:
    """List tasks of the active store."""
    state = _state(ctx)
    try:
        context = _context(state)
        context.tasks.require_initialized()
        rows = list_tasks(context.tasks, include_closed=show_all)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    if state.json_output:
        _emit(state, {"tasks": rows})
        return
    if not rows:
        console.print("[dim]No tasks.[/dim]")
        return
    ids = [row["id"] for row in rows]
    table = Table(show_header=True, header_style="bold")
    table.add_column("id")
    table.add_column("status")
    table.add_column("name")
    table.add_column("tags")
    for row in rows:
        table.add_row(short_id(row["id"], ids), row["status"], row["name"], ", ".join(row.get("tags") or []))
    console.print(table)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _import_source(context: ScopeContext, path: Path | None, branch: str | None) -> Path:
    marker = context.settings.marker_dir
    if (path is None) == (branch is None):
        raise WorklogError(INVALID_ARGS, "Specify exactly one of --path or --branch")
    if path is not None:
        source = path.expanduser().resolve()
        return source if source.name == marker else source / marker
    try:
        worktree = context.vcs.resolve_worktree_path(branch or "", context.cwd)
    except (ExecError, OSError) as exc:
        raise WorklogError(IMPORT_SOURCE_NOT_FOUND, f"Cannot list worktrees: {exc}") from exc
    if worktree is None:
        raise WorklogError(WORKTREE_NOT_FOUND, f"No worktree found for branch: {branch}")
    return worktree / marker


def _render_import(output: ImportOutput) -> str:
    lines = [
        f"[green]imported {output.imported}[/green], merged {output.merged}, "
        f"skipped {output.skipped}, failed {output.failed}"
    ]
    if output.tag:
        lines.append(f"tagged imported tasks with '{output.tag}'")
    for task in output.tasks:
        line = f"  {task.id}: {task.status}"
        if task.error:
            line += f" [red]({task.error})[/red]"
        lines.append(line)
        lines.extend(f"    [yellow]{warning}[/yellow]" for warning in task.warnings)
    return "\n".join(lines)


@cli.command("import")
def import_cmd(
    ctx: typer.Context,
    path: Path | None = typer.Option(None, "--path", "-p", help="Directory holding the source store."),
    branch: str | None = typer.Option(None, "--branch", "-b", help="Import from this branch's worktree."),
    remove_source: bool = typer.Option(False, "--rm", help="Delete reconciled tasks from the source."),
    scope_to_tag: bool = typer.Option(False, "--scope-to-tag", help="Tag imported tasks with the source scope id."),
    tag_name: str | None = typer.Option(None, "--tag-name", help="Custom tag for --scope-to-tag."),
) -> None:
    """Merge another store's tasks into the active store."""
    state = _state(ctx)
    try:
        context = _context(state)
        source = _import_source(context, path, branch)
        if scope_to_tag or tag_name:
            output = import_scope_to_tag(source, context, tag=tag_name, remove_source=remove_source)
        else:
            output = import_tasks(source, context.store, remove_source=remove_source)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, output.to_dict(), _render_import(output))


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


@scopes_app.command("list")
def scopes_list_cmd(
    ctx: typer.Context,
    scope_id: str | None = typer.Argument(None, help="Show one scope's details."),
    refresh: bool = typer.Option(False, "--refresh", help="Rescan and rewrite scope configuration first."),
) -> None:
    """List scopes, or show one scope."""
    state = _state(ctx)
    try:
        payload = list_scopes(_context(state), scope_id=scope_id, refresh=refresh)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    if state.json_output:
        _emit(state, payload)
        return
    if scope_id:
        console.print(f"{payload['id']}  {payload['path']}  ({payload['taskCount']} tasks)", highlight=False)
        return
    for row in payload["scopes"]:
        marker = "[green]*[/green]" if row["isActive"] else " "
        console.print(f"{marker} {row['id']}  [dim]{row['path']}[/dim]", highlight=False)


@scopes_app.command("add")
def scopes_add_cmd(
    ctx: typer.Context,
    scope_id: str = typer.Argument(..., help="Display id of the new scope."),
    path: str | None = typer.Option(None, "--path", help="Directory of the scope (defaults to the id)."),
    worktree: bool = typer.Option(False, "--worktree", help="Create the scope in a git worktree."),
    ref: str | None = typer.Option(None, "--ref", help="Branch of the worktree (defaults to the id)."),
) -> None:
    """Create or adopt a child scope."""
    state = _state(ctx)
    try:
        payload = add_scope(_context(state), scope_id, path=path, worktree=worktree, git_ref=ref)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    except (ExecError, OSError) as exc:
        raise _fail(state, WorklogError(IO_ERROR, str(exc))) from exc
    _emit(state, payload, f"[green]✓ scope created[/green] {payload['id']} ({payload['path']})")


@scopes_app.command("add-parent")
def scopes_add_parent_cmd(
    ctx: typer.Context,
    parent_path: str = typer.Argument(..., help="Directory of the parent store."),
    scope_id: str | None = typer.Option(None, "--id", help="Id of this scope in the parent's list."),
) -> None:
    """Link the nearest store to a parent store."""
    state = _state(ctx)
    try:
        payload = add_parent(_context(state), parent_path, scope_id)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, payload, f"[green]✓ parent configured[/green] {payload['parent']}")


@scopes_app.command("rename")
def scopes_rename_cmd(
    ctx: typer.Context,
    scope_id: str = typer.Argument(..., help="Current id or path."),
    new_id: str = typer.Argument(..., help="New display id."),
) -> None:
    """Rename a child scope."""
    state = _state(ctx)
    try:
        payload = rename_scope(_context(state), scope_id, new_id)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, payload, f"[green]✓ renamed[/green] {scope_id} -> {new_id}")


@scopes_app.command("delete")
def scopes_delete_cmd(
    ctx: typer.Context,
    scope_id: str = typer.Argument(..., help="Scope to delete."),
    move_to: str | None = typer.Option(None, "--move-to", help="Move its tasks into this scope first."),
    delete_tasks: bool = typer.Option(False, "--delete-tasks", help="Delete its tasks along with it."),
) -> None:
    """Delete a child scope."""
    state = _state(ctx)
    try:
        payload = delete_scope(_context(state), scope_id, move_to=move_to, delete_tasks=delete_tasks)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(state, payload, f"[green]✓ deleted[/green] {scope_id} (moved {payload['moved']} tasks)")


@scopes_app.command("assign")
def scopes_assign_cmd(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Scope receiving the tasks."),
    refs: list[str] | None = typer.Argument(None, help="Task references."),
    tag: str | None = typer.Option(None, "--tag", help="Move every task with this tag instead."),
) -> None:
    """Move tasks into a scope, by reference or by tag."""
    state = _state(ctx)
    try:
        if bool(refs) == bool(tag):
            raise WorklogError(INVALID_ARGS, "Give task references or --tag, not both")
        context = _context(state)
        target_store = resolve_scope_identifier(target, context)
        if tag:
            output = assign_by_tag(context, target_store, tag)
        else:
            output = assign_tasks(context, target_store, list(refs or []))
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    lines = [f"[green]moved {len(output.assigned)}[/green], updated {output.updated}"]
    lines.extend(f"  {row['id']} -> {row['to']} ({row['status']})" for row in output.assigned)
    lines.extend(f"  [yellow]{row['id']} kept in source: {'; '.join(row['warnings'])}[/yellow]" for row in output.kept)
    lines.extend(f"  [red]{err['id']}: {err['error']}[/red]" for err in output.errors)
    _emit(state, output.to_dict(), "\n".join(lines))
    if output.errors:
        raise typer.Exit(1)


@scopes_app.command("export")
def scopes_export_cmd(
    ctx: typer.Context,
    tag: str = typer.Argument(..., help="Tag (hierarchical) selecting the tasks."),
    target_path: str = typer.Argument(..., help="Directory of the new scope."),
    remove_tag: bool = typer.Option(False, "--remove-tag", help="Drop the tag from exported tasks."),
    scope_id: str | None = typer.Option(None, "--id", help="Id of the new scope (defaults to the tag)."),
) -> None:
    """Move tagged tasks into a new child scope."""
    state = _state(ctx)
    try:
        payload = export_scope(_context(state), tag, target_path, remove_tag=remove_tag, scope_id=scope_id)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    _emit(
        state,
        payload,
        f"[green]✓ exported {payload['exported']} tasks[/green] to {payload['scopeId']} ({payload['targetPath']})",
    )


@scopes_app.command("sync-worktrees")
def scopes_sync_worktrees_cmd(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without writing."),
) -> None:
    """Register a scope for every branch worktree; drop vanished ones."""
    state = _state(ctx)
    try:
        result = sync_worktrees(_context(state), dry_run=dry_run)
    except WorklogError as exc:
        raise _fail(state, exc) from exc
    except (ExecError, OSError) as exc:
        raise _fail(state, WorklogError(IO_ERROR, str(exc))) from exc
    lines = [f"added: {', '.join(result.added) or '-'}", f"removed: {', '.join(result.removed) or '-'}"]
    lines.extend(f"[yellow]{warning}[/yellow]" for warning in result.warnings)
    _emit(state, result.to_dict(), "\n".join(lines))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

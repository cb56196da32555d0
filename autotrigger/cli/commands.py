"""autotrigger CLI — Typer-based command-line interface."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from autotrigger import __version__
from autotrigger.core.schedule.types import RepeatMode

app = typer.Typer(
    name="autotrigger",
    help="autotrigger - recurring model trigger scheduler",
    no_args_is_help=True,
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"autotrigger v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=_version_callback, is_eager=True
    ),
) -> None:
    """autotrigger - recurring model trigger scheduler."""


def _build_controller():
    """Config → store → collaborators → controller (not started)."""
    from autotrigger.core.config.loader import load_config
    from autotrigger.engine.controller import TriggerController
    from autotrigger.engine.credentials import StoredCredentialService
    from autotrigger.engine.executor import HttpTriggerExecutor
    from autotrigger.memory.store import TriggerStore

    config = load_config()
    db = TriggerStore(config.database.path)
    credentials = StoredCredentialService(db)
    executor = HttpTriggerExecutor(config.trigger, credentials)
    return TriggerController(config, db, credentials, executor)


def _run(op: Callable[[Any], Awaitable[Any]]) -> Any:
    """Start a controller, run ``op`` against it, close the executor."""
    controller = _build_controller()

    async def _main() -> Any:
        await controller.start()
        try:
            return await op(controller)
        finally:
            close = getattr(controller.executor, "aclose", None)
            if close is not None:
                await close()

    return asyncio.run(_main())


def _fmt(dt) -> str:
    return dt.strftime("%a %Y-%m-%d %H:%M") if dt else "-"


# ════════════════════════════════════════════════════════════
# run — start API server
# ════════════════════════════════════════════════════════════


@app.command()
def run(
    port: int = typer.Option(8000, "--port", "-p", help="Port number"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host address"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
) -> None:
    """Start the API server and the automatic trigger timer (uvicorn)."""
    import uvicorn

    console.print(f"[green]Starting autotrigger API on {host}:{port}[/green]")
    uvicorn.run("autotrigger.api.app:app", host=host, port=port, reload=reload)


# ════════════════════════════════════════════════════════════
# status / preview / validate-cron
# ════════════════════════════════════════════════════════════


@app.command()
def status() -> None:
    """Show schedule, authorization and next fire time."""

    async def _op(controller):
        return controller.snapshot()

    snap = _run(_op)
    cfg = snap.config

    table = Table(title="autotrigger status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Version", __version__)
    table.add_row("State", snap.state.value)
    table.add_row("Account", snap.authorization.email or "-")
    table.add_row("Enabled", str(cfg.enabled))
    table.add_row("Mode", "crontab" if cfg.has_crontab else cfg.repeat_mode.value)
    table.add_row("Schedule", snap.description)
    table.add_row("Models", ", ".join(cfg.selected_models))
    table.add_row("Next Fire", _fmt(snap.next_fire_time))
    table.add_row("History", str(len(snap.history)))

    console.print(table)


@app.command()
def preview(
    count: int = typer.Option(5, "--count", "-n", min=1, help="How many fire times"),
) -> None:
    """Preview upcoming fire times of the saved schedule."""
    controller = _build_controller()
    runs = controller.preview(count=count)
    if not runs:
        console.print("[yellow]No upcoming fire times.[/yellow]")
        return
    for idx, run_at in enumerate(runs, 1):
        console.print(f"{idx}. {_fmt(run_at)}")


@app.command("validate-cron")
def validate_cron(
    expression: str = typer.Argument(help="Crontab expression, e.g. '0 */6 * * *'"),
) -> None:
    """Check a crontab expression and show its next fire times."""
    controller = _build_controller()
    result = controller.validate_crontab(expression)
    if not result.valid:
        console.print(f"[red]Invalid:[/red] {result.error}")
        raise typer.Exit(code=1)
    console.print(f"[green]Valid:[/green] {result.description}")
    if result.note:
        console.print(f"[dim]{result.note}[/dim]")
    for idx, run_at in enumerate(result.next_runs, 1):
        console.print(f"{idx}. {_fmt(run_at)}")


# ════════════════════════════════════════════════════════════
# test / history
# ════════════════════════════════════════════════════════════


@app.command("test")
def run_test(
    models: list[str] | None = typer.Option(
        None, "--model", "-m", help="Target model (repeatable); default: selected models"
    ),
) -> None:
    """Run one manual trigger now."""
    from autotrigger.engine.errors import AuthorizationRequiredError

    async def _op(controller):
        return await controller.request_test(models or None)

    try:
        record = _run(_op)
    except AuthorizationRequiredError:
        console.print("[red]Not authorized.[/red] Run 'autotrigger auth import' first.")
        raise typer.Exit(code=1)

    if record is None:
        console.print("[yellow]A test is already running.[/yellow]")
    elif record.success:
        console.print(f"[green]Trigger succeeded[/green] in {record.duration_ms}ms")
        console.print(record.message or "")
    else:
        console.print(f"[red]Trigger failed:[/red] {record.message}")
        raise typer.Exit(code=1)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-l", help="Max records to show"),
) -> None:
    """Show recent trigger attempts, newest first."""
    controller = _build_controller()
    records = controller.snapshot().history[:limit]

    if not records:
        console.print("[dim]No trigger history.[/dim]")
        return

    table = Table(title="Trigger History")
    table.add_column("Time", style="cyan")
    table.add_column("Type", style="blue")
    table.add_column("Result", style="white")
    table.add_column("Duration", style="yellow")
    table.add_column("Message", style="dim")

    for r in records:
        table.add_row(
            _fmt(r.timestamp),
            r.trigger_type.value,
            "[green]ok[/green]" if r.success else "[red]failed[/red]",
            f"{r.duration_ms}ms" if r.duration_ms is not None else "-",
            (r.message or "")[:60],
        )

    console.print(table)


@app.command("clear-history")
def clear_history() -> None:
    """Delete all trigger history."""

    async def _op(controller):
        await controller.clear_history()

    _run(_op)
    console.print("[green]History cleared.[/green]")


# ════════════════════════════════════════════════════════════
# enable / disable
# ════════════════════════════════════════════════════════════


def _set_enabled(enabled: bool) -> None:
    from autotrigger.engine.errors import AuthorizationRequiredError

    async def _op(controller):
        if controller.schedule.enabled != enabled:
            await controller.toggle_enabled()
        return controller.snapshot()

    try:
        snap = _run(_op)
    except AuthorizationRequiredError:
        console.print("[red]Not authorized.[/red] Run 'autotrigger auth import' first.")
        raise typer.Exit(code=1)
    word = "enabled" if enabled else "disabled"
    console.print(f"[green]Schedule {word}.[/green] Next fire: {_fmt(snap.next_fire_time)}")


@app.command()
def enable() -> None:
    """Turn the automatic schedule on."""
    _set_enabled(True)


@app.command()
def disable() -> None:
    """Turn the automatic schedule off."""
    _set_enabled(False)


# ════════════════════════════════════════════════════════════
# schedule — schedule config (sub-command group)
# ════════════════════════════════════════════════════════════

schedule_app = typer.Typer(help="Show or change the schedule")
app.add_typer(schedule_app, name="schedule")


def _save(changes: dict[str, Any]) -> None:
    from autotrigger.engine.errors import AutoTriggerError

    async def _op(controller):
        data = controller.schedule.model_dump()
        data.update(changes)
        await controller.save_schedule(data)
        return controller.snapshot()

    try:
        snap = _run(_op)
    except AutoTriggerError as e:
        console.print(f"[red]Schedule not saved:[/red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]Schedule saved:[/green] {snap.description}")


@schedule_app.command("show")
def schedule_show() -> None:
    """Print the saved schedule config."""
    controller = _build_controller()
    cfg = controller.schedule

    table = Table(title="Schedule")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in cfg.model_dump(mode="json").items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


@schedule_app.command("set")
def schedule_set(
    mode: RepeatMode | None = typer.Option(None, "--mode", help="daily, weekly or interval"),
    times: list[str] | None = typer.Option(None, "--time", "-t", help="HH:MM (repeatable)"),
    days: list[int] | None = typer.Option(None, "--day", "-d", help="0=Sun..6=Sat (repeatable)"),
    every: int | None = typer.Option(None, "--every", help="Interval hours"),
    start: str | None = typer.Option(None, "--start", help="Interval start HH:MM"),
    end: str | None = typer.Option(None, "--end", help="Interval end HH:MM"),
    cron: str | None = typer.Option(None, "--cron", help="Crontab override"),
    clear_cron: bool = typer.Option(False, "--clear-cron", help="Remove the crontab override"),
    models: list[str] | None = typer.Option(None, "--model", "-m", help="Target model (repeatable)"),
) -> None:
    """Change schedule fields; unspecified fields keep their value."""
    from autotrigger.core.schedule.types import ScheduleConfig

    current: ScheduleConfig = _build_controller().schedule
    effective_mode = mode or current.repeat_mode

    changes: dict[str, Any] = {}
    if mode is not None:
        changes["repeat_mode"] = mode
    if times:
        key = "weekly_times" if effective_mode == RepeatMode.WEEKLY else "daily_times"
        changes[key] = list(times)
    if days:
        changes["weekly_days"] = list(days)
    if every is not None:
        changes["interval_hours"] = every
    if start is not None:
        changes["interval_start_time"] = start
    if end is not None:
        changes["interval_end_time"] = end
    if cron is not None:
        changes["crontab"] = cron
    if clear_cron:
        changes["crontab"] = None
    if models:
        changes["selected_models"] = list(models)

    if not changes:
        console.print("[dim]Nothing to change.[/dim]")
        return
    _save(changes)


@schedule_app.command("preset")
def schedule_preset(
    preset_id: str = typer.Argument(help="Preset id (morning, workday, every4h)"),
) -> None:
    """Apply a built-in schedule preset."""
    from autotrigger.core.schedule.presets import apply_preset

    try:
        config = apply_preset(_build_controller().schedule, preset_id)
    except KeyError:
        console.print(f"[red]Unknown preset:[/red] {preset_id}")
        raise typer.Exit(code=1)
    _save(config.model_dump())


# ════════════════════════════════════════════════════════════
# auth — credential management (sub-command group)
# ════════════════════════════════════════════════════════════

auth_app = typer.Typer(help="Manage the trigger backend credential")
app.add_typer(auth_app, name="auth")


@auth_app.command("status")
def auth_status() -> None:
    """Show whether a usable credential is stored."""

    async def _op(controller):
        return controller.authorization

    auth = _run(_op)
    if auth.is_authorized:
        console.print(f"[green]Authorized[/green] {auth.email or ''}")
        if auth.expires_at:
            console.print(f"  [dim]access token expires {auth.expires_at}[/dim]")
    else:
        console.print("[yellow]Not authorized[/yellow]")


@auth_app.command("import")
def auth_import(
    refresh_token: str = typer.Option(..., "--refresh-token", help="OAuth refresh token"),
    access_token: str = typer.Option("", "--access-token", help="OAuth access token"),
    email: str | None = typer.Option(None, "--email", help="Account email"),
    expires_at: str | None = typer.Option(None, "--expires-at", help="ISO 8601 expiry"),
    project_id: str | None = typer.Option(None, "--project-id", help="Backend project id"),
) -> None:
    """Store a credential obtained elsewhere and authorize with it."""
    from autotrigger.engine.credentials import OAuthCredential

    async def _op(controller):
        controller.credentials.import_credential(
            OAuthCredential(
                access_token=access_token,
                refresh_token=refresh_token,
                email=email,
                expires_at=expires_at,
                project_id=project_id,
            )
        )
        return await controller.authorize()

    if _run(_op):
        console.print(f"[green]Authorized[/green] {email or ''}")
    else:
        console.print("[red]Authorization failed.[/red]")
        raise typer.Exit(code=1)


@auth_app.command("revoke")
def auth_revoke(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Revoke the credential and disable the schedule."""

    async def _op(controller):
        if not await controller.revoke():
            return None
        confirmed = yes or typer.confirm("Revoke authorization and disable the schedule?")
        if confirmed:
            return await controller.confirm_revoke()
        await controller.cancel_revoke()
        return False

    result = _run(_op)
    if result is None:
        console.print("[yellow]Not authorized, nothing to revoke.[/yellow]")
    elif result:
        console.print("[green]Authorization revoked.[/green]")
    else:
        console.print("[dim]Cancelled.[/dim]")

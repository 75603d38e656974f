"""Main CLI entry point for relaxed-planner."""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, TypeVar

import typer
from dotenv import load_dotenv
from rich.markup import escape
from rich.table import Table

from relaxed_planner import __version__
from relaxed_planner.app import PlannerApp
from relaxed_planner.calendar_sync.models import GoogleCalendarCredentials
from relaxed_planner.config.messages import (
    ERROR_MESSAGES,
    INFO_MESSAGES,
    SUCCESS_MESSAGES,
    WARNING_MESSAGES,
)
from relaxed_planner.config.paths import default_data_dir, log_path
from relaxed_planner.config.planner import PlannerConfig, load_planner_config
from relaxed_planner.config.settings import PlannerSettings
from relaxed_planner.constants import APP_DISPLAY_NAME, APP_NAME
from relaxed_planner.exceptions import (
    CalendarNotConnectedError,
    CredentialPersistenceError,
    PlannerError,
    ValidationError,
)
from relaxed_planner.models import Activity, AppData, Preset, day_string
from relaxed_planner.utils import (
    configure_logging,
    get_console,
    print_error,
    print_info,
    print_success,
    print_warning,
)

T = TypeVar("T")

# Load .env file from current directory if it exists
load_dotenv(Path.cwd() / ".env", verbose=False)

app = typer.Typer(
    name=APP_NAME,
    help=f"{APP_DISPLAY_NAME}: local-first schedule data and calendar sync",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)
presets_app = typer.Typer(
    name="presets", help="Inspect and manage saved presets", no_args_is_help=True
)
calendar_app = typer.Typer(name="calendar", help="Google Calendar sync", no_args_is_help=True)
app.add_typer(presets_app, name="presets")
app.add_typer(calendar_app, name="calendar")


@dataclass
class CliContext:
    """Per-invocation state resolved by the root callback."""

    data_dir: Path
    config: PlannerConfig


def _run(
    ctx: typer.Context,
    operation: Callable[[PlannerApp], Awaitable[T]],
    validate_calendar: bool = False,
) -> T:
    """Start the app, run one async operation, and close the app."""
    state: CliContext = ctx.obj

    async def runner() -> T:
        planner = PlannerApp.from_data_dir(state.data_dir, state.config)
        await planner.start(validate_calendar=validate_calendar)
        try:
            return await operation(planner)
        finally:
            await planner.close()

    return asyncio.run(runner())


def _parse_date(value: str | None) -> date:
    if value is None:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        print_error(_render(ERROR_MESSAGES["invalid_date"], value=value))
        raise typer.Exit(code=1) from None


def _day_key(day: date) -> str:
    return day_string(datetime.combine(day, time()))


def _render(template: str, **kwargs: Any) -> str:
    # Values may contain square brackets that rich would read as markup
    return template.format(**{k: escape(str(v)) for k, v in kwargs.items()})


def _fail(key: str, **kwargs: Any) -> typer.Exit:
    print_error(_render(ERROR_MESSAGES[key], **kwargs))
    return typer.Exit(code=1)


async def _find_activity(
    planner: PlannerApp, preset_id: str, activity_id: str
) -> tuple[Preset, Activity]:
    preset = await planner.persistence.get_preset_by_id(preset_id)
    if preset is None:
        raise _fail("preset_not_found", preset_id=preset_id)
    activity = next((a for a in preset.activities if a.id == activity_id), None)
    if activity is None:
        raise _fail("activity_not_found", activity_id=activity_id, preset_id=preset_id)
    return preset, activity


def _presets_table(presets: list[Preset], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Mood")
    table.add_column("Activities", justify="right")
    table.add_column("Created", style="dim")
    for preset in presets:
        table.add_row(
            preset.id,
            preset.name,
            preset.mood or "",
            str(len(preset.activities)),
            preset.created_at,
        )
    return table


# =============================================================================
# Root commands
# =============================================================================


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show where planner data lives and whether the calendar is connected."""

    async def gather(planner: PlannerApp) -> dict[str, Any]:
        return {
            "storage": planner.persistence.get_storage_status(),
            "stats": await planner.persistence.get_preset_stats(),
            "total_points": await planner.persistence.load_total_points(),
            "connected": planner.calendar.is_connected(),
            "sync": await planner.calendar.get_sync_status(),
        }

    info = _run(ctx, gather)
    storage = info["storage"]
    console = get_console()

    if storage.structured_enabled and not storage.structured_ok:
        print_warning(WARNING_MESSAGES["fallback_mode"])
    for kind in storage.diverged_kinds:
        print_warning(WARNING_MESSAGES["diverged"].format(entity=kind.value))

    table = Table(title="Storage")
    table.add_column("Entity", style="cyan")
    table.add_column("Source")
    table.add_column("Diverged")
    for kind, entity in storage.entities.items():
        table.add_row(kind.value, entity.source.value, "yes" if entity.diverged else "")
    console.print(table)

    console.print(f"Data directory: {ctx.obj.data_dir}")
    console.print(
        f"Presets: {info['stats']['total_presets']} "
        f"({info['stats']['total_activities']} activities)"
    )
    console.print(f"Total points: {info['total_points']}")
    connected = "[green]connected[/green]" if info["connected"] else "[dim]not connected[/dim]"
    console.print(f"Google Calendar: {connected}")
    if info["sync"].last_sync_date:
        console.print(f"Last sync: {info['sync'].last_sync_date}")


@app.command("export")
def export_data(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="File to write the JSON backup to"),
) -> None:
    """Export all planner data as a JSON backup."""

    async def export(planner: PlannerApp) -> AppData:
        return await planner.persistence.export_all_data()

    data = _run(ctx, export)
    try:
        path.write_text(json.dumps(data.to_dict(), indent=2), encoding="utf-8")
    except OSError as e:
        raise _fail("export_failed", error=e) from e
    print_success(SUCCESS_MESSAGES["exported"].format(path=path))


@app.command("import")
def import_data(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="JSON backup to restore"),
) -> None:
    """Restore planner data from a JSON backup.

    Every entity kind in the backup replaces the stored one.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise _fail("import_failed", error=e) from e
    try:
        data = AppData.from_dict(json.loads(raw))
    except (ValueError, TypeError, ValidationError) as e:
        raise _fail("import_invalid", error=e) from e

    async def restore(planner: PlannerApp) -> None:
        await planner.persistence.import_all_data(data)

    try:
        _run(ctx, restore)
    except PlannerError as e:
        raise _fail("save_failed", error=e) from e
    print_success(SUCCESS_MESSAGES["imported"].format(path=path))


@app.command("clear")
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete all schedule data, presets, points and completions.

    Calendar credentials are kept; use 'calendar disconnect' for those.
    """
    if not yes and not typer.confirm("Delete all planner data?"):
        print_info(INFO_MESSAGES["clear_aborted"])
        raise typer.Exit()

    async def wipe(planner: PlannerApp) -> None:
        await planner.persistence.clear_all_data()

    try:
        _run(ctx, wipe)
    except PlannerError as e:
        raise _fail("clear_failed", error=e) from e
    print_success(SUCCESS_MESSAGES["cleared"])


@app.command("points")
def points(
    ctx: typer.Context,
    recalculate: bool = typer.Option(
        False, "--recalculate", help="Recompute today's points from today's completions"
    ),
) -> None:
    """Show point totals."""

    async def read(planner: PlannerApp) -> tuple[int, int, str | None]:
        if recalculate:
            await planner.persistence.recalculate_daily_points(_day_key(date.today()))
        return (
            await planner.persistence.load_total_points(),
            await planner.persistence.load_daily_points(),
            await planner.persistence.load_last_activity_date(),
        )

    total, daily, last_day = _run(ctx, read)
    console = get_console()
    console.print(f"Total points: [bold]{total}[/bold]")
    console.print(f"Today: [bold]{daily}[/bold]")
    if last_day:
        console.print(f"Last activity: {last_day}")


@app.command("complete")
def complete(
    ctx: typer.Context,
    activity_id: str = typer.Argument(..., help="Activity to mark done"),
    preset_id: str = typer.Option(..., "--preset", "-p", help="Preset holding the activity"),
    on_date: str | None = typer.Option(None, "--date", help="Day (YYYY-MM-DD), default today"),
) -> None:
    """Mark a preset activity done and award its points."""
    day = _day_key(_parse_date(on_date))

    async def mark(planner: PlannerApp) -> tuple[Activity, bool]:
        _, activity = await _find_activity(planner, preset_id, activity_id)
        return activity, await planner.persistence.complete_activity(activity, day)

    try:
        activity, recorded = _run(ctx, mark)
    except PlannerError as e:
        raise _fail("save_failed", error=e) from e
    if recorded:
        print_success(
            SUCCESS_MESSAGES["completed"].format(title=activity.title, points=activity.points)
        )
    else:
        print_info(INFO_MESSAGES["already_completed"].format(title=activity.title, day=day))


@app.command("uncomplete")
def uncomplete(
    ctx: typer.Context,
    activity_id: str = typer.Argument(..., help="Activity to mark not done"),
    preset_id: str = typer.Option(..., "--preset", "-p", help="Preset holding the activity"),
    on_date: str | None = typer.Option(None, "--date", help="Day (YYYY-MM-DD), default today"),
) -> None:
    """Undo a completion and take back its points."""
    day = _day_key(_parse_date(on_date))

    async def unmark(planner: PlannerApp) -> tuple[Activity, bool]:
        _, activity = await _find_activity(planner, preset_id, activity_id)
        return activity, await planner.persistence.uncomplete_activity(activity.id, day)

    try:
        activity, removed = _run(ctx, unmark)
    except PlannerError as e:
        raise _fail("save_failed", error=e) from e
    if removed:
        print_success(
            SUCCESS_MESSAGES["uncompleted"].format(title=activity.title, points=activity.points)
        )
    else:
        print_info(INFO_MESSAGES["not_completed"].format(title=activity.title, day=day))


# =============================================================================
# Presets
# =============================================================================


@presets_app.command("list")
def presets_list(ctx: typer.Context) -> None:
    """List saved presets, newest first."""

    async def load(planner: PlannerApp) -> list[Preset]:
        return await planner.persistence.load_presets()

    presets = _run(ctx, load)
    if not presets:
        print_info(INFO_MESSAGES["no_presets"])
        return
    get_console().print(_presets_table(presets, "Presets"))


@presets_app.command("show")
def presets_show(
    ctx: typer.Context,
    preset_id: str = typer.Argument(..., help="Preset id"),
) -> None:
    """Show one preset with its activities in order."""

    async def load(planner: PlannerApp) -> Preset | None:
        return await planner.persistence.get_preset_by_id(preset_id)

    preset = _run(ctx, load)
    if preset is None:
        raise _fail("preset_not_found", preset_id=preset_id)

    table = Table(title=f"{preset.name}" + (f" ({preset.mood})" if preset.mood else ""))
    table.add_column("ID", style="cyan")
    table.add_column("Time")
    table.add_column("Title", style="bold")
    table.add_column("Category")
    table.add_column("Points", justify="right")
    for activity in preset.activities:
        table.add_row(
            activity.id,
            f"{activity.start_time}-{activity.end_time}",
            activity.title,
            activity.category.value,
            str(activity.points),
        )
    get_console().print(table)


@presets_app.command("search")
def presets_search(
    ctx: typer.Context,
    term: str = typer.Argument(..., help="Text to look for in names, moods and activity titles"),
) -> None:
    """Search presets (case-insensitive)."""

    async def search(planner: PlannerApp) -> list[Preset]:
        return await planner.persistence.search_presets(term)

    presets = _run(ctx, search)
    if not presets:
        print_info(INFO_MESSAGES["no_matches"].format(term=term))
        return
    get_console().print(_presets_table(presets, f"Presets matching '{term}'"))


@presets_app.command("delete")
def presets_delete(
    ctx: typer.Context,
    preset_id: str = typer.Argument(..., help="Preset id"),
) -> None:
    """Delete a preset and its activities."""

    async def delete(planner: PlannerApp) -> bool:
        if await planner.persistence.get_preset_by_id(preset_id) is None:
            return False
        await planner.persistence.delete_preset(preset_id)
        return True

    try:
        deleted = _run(ctx, delete)
    except PlannerError as e:
        raise _fail("save_failed", error=e) from e
    if not deleted:
        raise _fail("preset_not_found", preset_id=preset_id)
    print_success(SUCCESS_MESSAGES["preset_deleted"].format(preset_id=preset_id))


# =============================================================================
# Calendar
# =============================================================================


@calendar_app.command("connect")
def calendar_connect(
    ctx: typer.Context,
    token_file: Path = typer.Argument(..., help="JSON token response from the OAuth flow"),
) -> None:
    """Store calendar credentials obtained from the OAuth consent flow."""
    try:
        credentials = GoogleCalendarCredentials.model_validate_json(
            token_file.read_text(encoding="utf-8")
        )
    except OSError as e:
        raise _fail("import_failed", error=e) from e
    except ValueError as e:
        raise _fail("token_invalid", error=e) from e

    async def connect(planner: PlannerApp) -> bool:
        try:
            await planner.calendar.set_credentials(credentials)
        except CredentialPersistenceError:
            print_warning(ERROR_MESSAGES["credentials_not_saved"])
        result = await planner.calendar.test_connection()
        if not result.is_valid:
            print_error(_render(ERROR_MESSAGES["calendar_test_failed"], error=result.error))
            return False
        print_success(
            SUCCESS_MESSAGES["calendar_connected"].format(
                count=result.details.get("calendarsCount", 0)
            )
        )
        return True

    if not _run(ctx, connect):
        raise typer.Exit(code=1)


@calendar_app.command("test")
def calendar_test(ctx: typer.Context) -> None:
    """Check the stored credentials against the calendar API."""

    async def check(planner: PlannerApp) -> Any:
        return await planner.calendar.test_connection()

    result = _run(ctx, check)
    if not result.is_valid:
        raise _fail("calendar_test_failed", error=result.error)
    print_success(
        SUCCESS_MESSAGES["calendar_connected"].format(count=result.details.get("calendarsCount", 0))
    )
    primary = result.details.get("primaryCalendar")
    if primary:
        print_info(f"Primary calendar: {escape(primary)}")


@calendar_app.command("sync")
def calendar_sync(
    ctx: typer.Context,
    preset_id: str = typer.Option(..., "--preset", "-p", help="Preset whose activities to sync"),
    on_date: str | None = typer.Option(None, "--date", help="Day (YYYY-MM-DD), default today"),
) -> None:
    """Create calendar events for a preset's activities on one day."""
    day = _parse_date(on_date)

    async def sync(planner: PlannerApp) -> Any:
        preset = await planner.persistence.get_preset_by_id(preset_id)
        if preset is None:
            raise _fail("preset_not_found", preset_id=preset_id)
        await planner.calendar.sync_activities_to_calendar(preset.activities, day)
        await planner.persistence.save_calendar_sync_data(await planner.calendar.get_sync_status())
        return planner.calendar.last_result

    try:
        result = _run(ctx, sync)
    except CalendarNotConnectedError as e:
        raise _fail("calendar_not_connected") from e
    except PlannerError as e:
        raise _fail("save_failed", error=e) from e

    if result.errors:
        print_warning(
            _render(
                WARNING_MESSAGES["sync_partial"],
                failed=len(result.errors),
                errors="; ".join(result.errors),
            )
        )
    if not result.success:
        raise _fail("calendar_sync_failed")
    print_success(
        SUCCESS_MESSAGES["calendar_synced"].format(
            succeeded=len(result.succeeded), attempted=result.attempted
        )
    )


@calendar_app.command("disconnect")
def calendar_disconnect(ctx: typer.Context) -> None:
    """Forget calendar credentials and sync status."""

    async def disconnect(planner: PlannerApp) -> None:
        await planner.calendar.disconnect()

    _run(ctx, disconnect)
    print_success(SUCCESS_MESSAGES["calendar_disconnected"])


# =============================================================================
# Root callback and entry point
# =============================================================================


def _version_callback(value: bool) -> None:
    if value:
        get_console().print(
            f"[bold cyan]{APP_NAME}[/bold cyan] version [green]{__version__}[/green]"
        )
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    data_dir: Path | None = typer.Option(
        None,
        "--data-dir",
        help="Planner data directory (default: ~/.relaxed-planner or PLANNER_DATA_DIR)",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="DEBUG, INFO, WARNING or ERROR (overrides config.yaml)",
    ),
    version_flag: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version information",
        is_eager=True,
        callback=_version_callback,
    ),
) -> None:
    """Relaxed Point Planner: schedule data, points and calendar sync."""
    settings = PlannerSettings()
    resolved_dir = data_dir or settings.data_dir or default_data_dir()
    config = load_planner_config(resolved_dir)
    level = log_level or settings.log_level or config.logging.level
    configure_logging(
        level,
        log_file=log_path(resolved_dir) if config.logging.file_enabled else None,
        log_rotation=config.logging.rotation,
    )
    ctx.obj = CliContext(data_dir=resolved_dir, config=config)


def cli_main() -> None:
    """Main entry point for the CLI.

    This is the function that gets called when running 'relaxed-planner'.
    It handles exceptions and provides user-friendly error messages.
    """
    try:
        app()
    except KeyboardInterrupt:
        get_console().print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        if isinstance(e, typer.Exit):
            sys.exit(e.exit_code)
        print_error(_render(ERROR_MESSAGES["generic_error"], error=e))
        sys.exit(1)


if __name__ == "__main__":
    cli_main()

"""
Main CLI application using Typer.
"""

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Annotated, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..adapters.memory_store import InMemoryAppointmentStore, InMemoryCalendarRepository
from ..config import AppConfig, get_default_config_path
from ..domain.availability import resolve_day
from ..domain.exceptions import BookingError
from ..domain.models import day_name, weekday_of
from ..services.booking_service import BookingService

app = typer.Typer(
    name="bookingcore",
    help="Check bookings and list open appointment slots for a tenant calendar",
    add_completion=False,
)

console = Console(highlight=False)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Booking engine command line.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


def _load(config_file: Optional[Path], tenant: Optional[str]) -> Tuple[BookingService, str]:
    """Build the service from the YAML config for one tenant."""
    config = AppConfig.load_from_yaml(config_file or get_default_config_path())
    tenant_config = config.find_tenant(tenant)

    repository = InMemoryCalendarRepository.from_config(tenant_config.to_calendar_config())
    store = InMemoryAppointmentStore(tenant_config.to_appointments())
    return BookingService(calendar_repository=repository, appointment_store=store), tenant_config.tenant_id


def _parse_date(value: str) -> date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def _parse_datetime(value: str) -> datetime:
    try:
        parsed = pendulum.parse(value, tz=None)
    except ValueError as exc:
        raise ValueError(f"Invalid datetime '{value}', expected YYYY-MM-DDTHH:MM") from exc
    if not isinstance(parsed, datetime):
        raise ValueError(f"Invalid datetime '{value}', expected YYYY-MM-DDTHH:MM")
    if parsed.tzinfo is not None:
        raise ValueError(f"Datetime '{value}' must be local time without a UTC offset")
    return parsed


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    raise typer.Exit(1)


@app.command()
def slots(
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Tenant id. Defaults to default_tenant.")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Slot duration in minutes")] = None,
    config_file: ConfigOption = None,
):
    """
    List candidate slots for a date, marking occupied ones.
    """
    try:
        service, tenant_id = _load(config_file, tenant)
        requested = _parse_date(day)
        day_slots = service.list_slots(tenant_id=tenant_id, day=requested, duration_minutes=duration)
    except (BookingError, FileNotFoundError, ValueError) as exc:
        _fail(exc)

    header = f"{day_name(weekday_of(requested))}, {requested.isoformat()}"
    if not day_slots:
        console.print(f"[yellow]No slots on {header}.[/yellow]")
        return

    table = Table(title=f"Slots for {tenant_id} - {header}", show_header=True, header_style="bold cyan")
    table.add_column("Time", style="bold")
    table.add_column("Available")
    table.add_column("Reason", style="dim")
    for slot in day_slots:
        table.add_row(slot.time, "yes" if slot.available else "no", slot.reason or "")

    console.print()
    console.print(table)
    console.print()


@app.command()
def check(
    start: Annotated[str, typer.Argument(help="Proposed start (YYYY-MM-DDTHH:MM)")],
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Tenant id. Defaults to default_tenant.")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Duration in minutes")] = None,
    now: Annotated[Optional[str], typer.Option("--now", help="Override the current time (YYYY-MM-DDTHH:MM)")] = None,
    config_file: ConfigOption = None,
):
    """
    Validate a proposed booking. Exits with code 1 when it is rejected.
    """
    try:
        service, tenant_id = _load(config_file, tenant)
        proposed = _parse_datetime(start)
        current = _parse_datetime(now) if now else pendulum.now().naive()
        result = service.check_booking(
            tenant_id=tenant_id, start=proposed, now=current, duration_minutes=duration
        )
    except (BookingError, FileNotFoundError, ValueError) as exc:
        _fail(exc)

    if result.ok:
        console.print(f"[green]✓ Bookable:[/green] {proposed:%Y-%m-%d %H:%M} for {tenant_id}")
        return

    console.print(f"[bold red]✗ {result.reason.value}[/bold red] {result.message}")
    raise typer.Exit(1)


@app.command()
def week(
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Tenant id. Defaults to default_tenant.")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="First day (YYYY-MM-DD). Defaults to this week's Monday.")] = None,
    config_file: ConfigOption = None,
):
    """
    Show free slot counts for seven consecutive days.
    """
    try:
        service, tenant_id = _load(config_file, tenant)
        first_day = _parse_date(start) if start else pendulum.today().start_of("week").date()
        summary = service.weekly_availability(tenant_id=tenant_id, start_day=first_day)
    except (BookingError, FileNotFoundError, ValueError) as exc:
        _fail(exc)

    table = Table(title=f"Availability for {tenant_id}", show_header=True, header_style="bold cyan")
    table.add_column("Day", style="bold yellow")
    table.add_column("Date")
    table.add_column("Free")
    table.add_column("First free", style="dim")
    for entry in summary:
        free = [slot for slot in entry.slots if slot.available]
        if not entry.slots:
            table.add_row(entry.day_name, entry.date.isoformat(), "closed", "")
            continue
        table.add_row(
            entry.day_name,
            entry.date.isoformat(),
            f"{len(free)}/{len(entry.slots)}",
            free[0].time if free else "",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def hours(
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Tenant id. Defaults to default_tenant.")] = None,
    config_file: ConfigOption = None,
):
    """
    Show weekly opening hours and date exceptions.
    """
    try:
        config = AppConfig.load_from_yaml(config_file or get_default_config_path())
        calendar = config.find_tenant(tenant).to_calendar_config()
    except (BookingError, FileNotFoundError, ValueError) as exc:
        _fail(exc)

    table = Table(title=f"Weekly hours for {calendar.tenant_id}", show_header=True, header_style="bold cyan")
    table.add_column("Day", style="bold yellow")
    table.add_column("Hours")
    for weekday in range(7):
        entry = calendar.weekly_hours.get(weekday)
        if entry is None or not entry.is_open:
            table.add_row(day_name(weekday), "closed")
        else:
            table.add_row(day_name(weekday), f"{entry.open_time:%H:%M} - {entry.close_time:%H:%M}")

    console.print()
    console.print(table)

    if calendar.exceptions:
        exceptions = Table(title="Date exceptions", show_header=True, header_style="bold cyan")
        exceptions.add_column("Date", style="bold yellow")
        exceptions.add_column("Hours")
        exceptions.add_column("Reason", style="dim")
        for day in sorted(calendar.exceptions):
            resolved = resolve_day(calendar, day)
            window = (
                f"{resolved.open_time:%H:%M} - {resolved.close_time:%H:%M}" if resolved.is_open else "closed"
            )
            exceptions.add_row(day.isoformat(), window, resolved.reason or "")
        console.print()
        console.print(exceptions)

    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bookingcore[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()

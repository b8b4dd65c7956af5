"""
Main CLI application using Typer.

Every command works against the JSON demo clinic loaded into the in-memory
adapters, so nothing written here outlives the process.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.cache import InMemoryProjectionCache
from ..adapters.clock import SystemClock
from ..adapters.demo_data import DemoClinic, load_demo_clinic
from ..adapters.event_sinks import LoggingEventSink
from ..adapters.memory_ledger import InMemoryAppointmentLedger, InMemoryScheduleLedger
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import ConflictError, ScheduleValidationError, SchedulingError
from ..domain.models import BookingRequest, Weekday
from ..domain.timerange import parse_date
from ..services.engine import SchedulingEngine, build_engine

app = typer.Typer(
    name="clinicscheduler",
    help="Browse doctor availability and book appointments against demo clinic data",
    add_completion=False,
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml when present"),
]


def _load_config(config_file: Optional[Path]) -> Tuple[AppConfig, Optional[Path]]:
    """An explicit --config must exist; otherwise fall back to built-in defaults."""
    config_path = config_file or get_default_config_path()
    if config_file is None and not config_path.exists():
        return AppConfig(), None
    return AppConfig.load_from_yaml(config_path), config_path


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=False, show_path=False)],
        force=True,
    )


async def _open_clinic(config: AppConfig, config_path: Optional[Path]) -> Tuple[SchedulingEngine, DemoClinic]:
    appointments = InMemoryAppointmentLedger()
    schedules = InMemoryScheduleLedger()
    engine = build_engine(
        config,
        appointment_ledger=appointments,
        schedule_ledger=schedules,
        event_sink=LoggingEventSink(),
        clock=SystemClock(config.timezone),
        cache=InMemoryProjectionCache(),
    )
    data_file = config.resolve_data_file(config_path) if config_path else None
    clinic = await load_demo_clinic(
        schedules,
        appointments,
        today=engine.today(),
        data_file=data_file,
        default_tenant_id=config.tenant_id,
    )
    return engine, clinic


def _require_doctor(clinic: DemoClinic, doctor_id: str) -> None:
    if doctor_id not in clinic.doctors:
        known = ", ".join(sorted(clinic.doctors)) or "none"
        console.print(f"[bold red]Error:[/bold red] Unknown doctor '{doctor_id}' (known: {known})")
        raise typer.Exit(1)


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {exc}")
    if isinstance(exc, ScheduleValidationError):
        for violation in exc.violations:
            console.print(f"  [red]- {violation}[/red]")
    raise typer.Exit(1)


@app.command()
def slots(
    doctor_id: Annotated[str, typer.Argument(help="Doctor id, e.g. dr-okafor")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Slot length in minutes")] = None,
    config_file: ConfigOption = None,
):
    """
    List the free slots of a doctor on one date.

    Examples:

        clinicscheduler slots dr-okafor 2026-03-03
        clinicscheduler slots dr-okafor 2026-03-03 --duration 45
    """
    try:
        config, config_path = _load_config(config_file)
        _setup_logging(config.log_level)
        minutes = duration if duration is not None else config.search.duration_minutes

        async def run():
            engine, clinic = await _open_clinic(config, config_path)
            _require_doctor(clinic, doctor_id)
            target = parse_date(day)
            windows = await engine.slots.free_slots_for_date(doctor_id, clinic.tenant_id, target, minutes)
            return clinic, target, windows

        clinic, target, windows = asyncio.run(run())
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    label = Weekday.of(target).label
    if not windows:
        console.print(
            f"[yellow]No free {minutes}-minute slots for {clinic.doctor_name(doctor_id)} "
            f"on {label}, {target.to_date_string()}.[/yellow]"
        )
        return

    table = Table(
        title=f"{clinic.doctor_name(doctor_id)} - {label}, {target.to_date_string()}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("Start", style="bold yellow")
    table.add_column("End")
    table.add_column("Minutes", justify="right")

    for index, window in enumerate(windows, 1):
        table.add_row(str(index), window.start, window.end, str(window.duration_minutes()))

    console.print()
    console.print(table)
    console.print()


@app.command("next-slot")
def next_slot(
    doctor_id: Annotated[str, typer.Argument(help="Doctor id, e.g. dr-okafor")],
    from_date: Annotated[Optional[str], typer.Option("--from", help="First date to search (YYYY-MM-DD). Defaults to today")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Slot length in minutes")] = None,
    max_days: Annotated[Optional[int], typer.Option("--max-days", help="Number of days to scan")] = None,
    config_file: ConfigOption = None,
):
    """
    Find the earliest free slot of a doctor.
    """
    try:
        config, config_path = _load_config(config_file)
        _setup_logging(config.log_level)
        minutes = duration if duration is not None else config.search.duration_minutes

        async def run():
            engine, clinic = await _open_clinic(config, config_path)
            _require_doctor(clinic, doctor_id)
            start = parse_date(from_date) if from_date else engine.today()
            found = await engine.slots.next_available_slot(
                doctor_id, clinic.tenant_id, start, minutes, max_days_to_scan=max_days
            )
            return clinic, start, found

        clinic, start, found = asyncio.run(run())
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    if found is None:
        console.print(
            f"[yellow]No free {minutes}-minute slot for {clinic.doctor_name(doctor_id)} "
            f"from {start.to_date_string()}.[/yellow]\n"
            "Try a shorter duration or a longer search window."
        )
        return

    console.print(
        Panel.fit(
            f"[bold green]{found.format_display()}[/bold green]",
            title=f"Next slot - {clinic.doctor_name(doctor_id)}",
        )
    )


@app.command()
def schedule(
    doctor_id: Annotated[str, typer.Argument(help="Doctor id, e.g. dr-okafor")],
    horizon: Annotated[int, typer.Option("--horizon", help="Days ahead to list overrides for")] = 30,
    config_file: ConfigOption = None,
):
    """
    Show a doctor's weekly schedule and upcoming overrides.
    """
    try:
        config, config_path = _load_config(config_file)
        _setup_logging(config.log_level)

        async def run():
            engine, clinic = await _open_clinic(config, config_path)
            _require_doctor(clinic, doctor_id)
            today = engine.today()
            weekly = await engine.weekly.get_weekly_schedule(doctor_id, clinic.tenant_id)
            overrides = await engine.overrides.list_overrides(
                doctor_id, clinic.tenant_id, today, today.add(days=horizon)
            )
            summary = await engine.slots.summarize(doctor_id, clinic.tenant_id, today, horizon_days=horizon)
            return clinic, weekly, overrides, summary

        clinic, weekly, overrides, summary = asyncio.run(run())
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    table = Table(
        title=f"Weekly schedule - {clinic.doctor_name(doctor_id)}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Day", style="bold yellow")
    table.add_column("Start")
    table.add_column("End")
    for slot in weekly:
        table.add_row(slot.day_of_week.label, slot.start, slot.end)

    console.print()
    console.print(table)

    if overrides:
        override_table = Table(title="Upcoming overrides", show_header=True, header_style="bold cyan")
        override_table.add_column("Date", style="bold yellow")
        override_table.add_column("Hours")
        override_table.add_column("Reason", style="dim")
        for override in overrides:
            hours = str(override.window) if override.window else "[red]unavailable[/red]"
            override_table.add_row(override.date.to_date_string(), hours, override.reason or "")
        console.print(override_table)

    console.print(
        f"\n{summary.total_slots} slot(s) on {summary.active_days} day(s), "
        f"{summary.weekly_hours:g} hours per week, "
        f"{summary.upcoming_overrides} override(s) in the next {horizon} days\n"
    )


@app.command()
def book(
    doctor_id: Annotated[str, typer.Argument(help="Doctor id")],
    patient_id: Annotated[str, typer.Argument(help="Patient id")],
    day: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    end: Annotated[str, typer.Argument(help="End time (HH:MM)")],
    reason: Annotated[Optional[str], typer.Option("--reason", "-r", help="Reason for visit")] = None,
    config_file: ConfigOption = None,
):
    """
    Book an appointment against the demo clinic (not persisted).
    """
    try:
        config, config_path = _load_config(config_file)
        _setup_logging(config.log_level)

        async def run():
            engine, clinic = await _open_clinic(config, config_path)
            _require_doctor(clinic, doctor_id)
            appointment = await engine.bookings.book(
                BookingRequest(
                    tenant_id=clinic.tenant_id,
                    doctor_id=doctor_id,
                    patient_id=patient_id,
                    date=parse_date(day),
                    start=start,
                    end=end,
                    reason_for_visit=reason,
                )
            )
            return clinic, appointment

        clinic, appointment = asyncio.run(run())
    except ConflictError as e:
        console.print(f"[bold red]Conflict ({e.report.type.value}):[/bold red] {e}")
        raise typer.Exit(1)
    except (FileNotFoundError, ValueError, SchedulingError) as e:
        _fail(e)

    console.print(
        Panel.fit(
            f"[bold green]Appointment booked[/bold green]\n\n"
            f"[bold]Id:[/bold] {appointment.id}\n"
            f"[bold]Doctor:[/bold] {clinic.doctor_name(doctor_id)}\n"
            f"[bold]Patient:[/bold] {clinic.patients.get(patient_id, patient_id)}\n"
            f"[bold]When:[/bold] {appointment.date.to_date_string()} {appointment.start}-{appointment.end}\n"
            f"[bold]Status:[/bold] {appointment.status.value}",
            title="Booking",
        )
    )


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]clinicscheduler[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()

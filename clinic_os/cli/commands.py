"""CLI commands for Clinic OS."""

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clinic_os.config import get_settings
from clinic_os.scheduling.assignment import assign_first_available
from clinic_os.scheduling.conflicts import detect_conflicts, sort_conflicts_by_severity
from clinic_os.scheduling.errors import SchedulingValidationError
from clinic_os.scheduling.models import Severity, WorkPeriod
from clinic_os.scheduling.slots import format_slot_label, generate_slots
from clinic_os.scheduling.timeutils import normalize_time

app = typer.Typer(
    name="clinic-os",
    help="Appointment slot generation and staff schedule checks",
    add_completion=False,
)
console = Console()

_periods_adapter = TypeAdapter(list[WorkPeriod])
_booked_adapter = TypeAdapter(dict[str, list[str]])


def load_periods(path: Path) -> list[WorkPeriod]:
    """Read work periods from a JSON file (a list, or {"periods": [...]})."""
    if not path.exists():
        console.print(f"[red]Periods file not found: {path}[/red]")
        raise typer.Exit(1)

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1)

    if isinstance(data, dict):
        data = data.get("periods", [])

    try:
        return _periods_adapter.validate_python(data)
    except (ValidationError, SchedulingValidationError) as e:
        console.print(f"[red]Invalid work periods: {e}[/red]")
        raise typer.Exit(1)


def load_booked(path: Path) -> dict[str, set[str]]:
    """Read a staff id -> booked "HH:MM" times mapping from a JSON file."""
    if not path.exists():
        console.print(f"[red]Booked file not found: {path}[/red]")
        raise typer.Exit(1)

    try:
        raw = _booked_adapter.validate_json(path.read_text())
        return {staff: {normalize_time(t) for t in times} for staff, times in raw.items()}
    except (ValidationError, SchedulingValidationError) as e:
        console.print(f"[red]Invalid booked times in {path}: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def slots(
    periods_file: Path = typer.Argument(..., help="JSON file with work periods"),
    booked: Optional[list[str]] = typer.Option(
        None, "--booked", "-b", help="Booked start time (HH:mm), repeatable"
    ),
    slot_minutes: Optional[int] = typer.Option(
        None, "--duration", "-d", help="Override slot length in minutes"
    ),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Generate the bookable slots for a set of work periods."""
    settings = get_settings()
    periods = load_periods(periods_file)

    try:
        result = generate_slots(
            periods,
            {normalize_time(t) for t in booked or []},
            peak_hours=settings.peak_hours,
            slot_minutes=slot_minutes,
        )
    except SchedulingValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if output_json:
        console.print_json(json.dumps([s.model_dump() for s in result]))
        return

    if not result:
        console.print("[yellow]No slots in the given periods.[/yellow]")
        return

    table = Table(title=f"Slots ({len(result)})")
    table.add_column("Time")
    table.add_column("Label")
    table.add_column("Staff")
    table.add_column("Status")
    for slot in result:
        status = "[green]open[/green]" if slot.available else "[red]booked[/red]"
        table.add_row(slot.time, format_slot_label(slot), slot.staff_id or "-", status)
    console.print(table)


@app.command()
def conflicts(
    periods_file: Path = typer.Argument(..., help="JSON file with work periods"),
    strategy: str = typer.Option(
        "sweep", "--strategy", "-s", help="Detection strategy: sweep or adjacent"
    ),
    min_break: Optional[int] = typer.Option(
        None, "--min-break", help="Minimum break between shifts in minutes"
    ),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Review staff work periods for overlaps and short breaks."""
    if strategy not in ("sweep", "adjacent"):
        console.print(f"[red]Invalid strategy: {strategy}. Use sweep or adjacent[/red]")
        raise typer.Exit(1)

    settings = get_settings()
    periods = load_periods(periods_file)
    found = sort_conflicts_by_severity(
        detect_conflicts(
            periods,
            min_break_minutes=min_break if min_break is not None else settings.min_break_minutes,
            strategy=strategy,
        )
    )

    if output_json:
        console.print_json(json.dumps([c.model_dump(mode="json") for c in found]))
        return

    if not found:
        console.print("[green]No scheduling conflicts found.[/green]")
        return

    table = Table(title=f"Scheduling Conflicts ({len(found)})")
    table.add_column("Severity")
    table.add_column("Staff")
    table.add_column("Day")
    table.add_column("Description")
    for conflict in found:
        colour = "red" if conflict.severity == Severity.HIGH else "yellow"
        day = conflict.date.isoformat() if conflict.date else f"weekday {conflict.day_of_week}"
        table.add_row(
            f"[{colour}]{conflict.severity.value}[/{colour}]",
            conflict.staff_name or conflict.staff_id,
            day,
            conflict.description,
        )
    console.print(table)


@app.command("first-available")
def first_available(
    periods_file: Path = typer.Argument(..., help="JSON file with work periods"),
    booked_file: Optional[Path] = typer.Option(
        None, "--booked-file", help='JSON file mapping staff id to booked times, {"s1": ["09:00"]}'
    ),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Pick the earliest open slot across all staff."""
    settings = get_settings()
    periods = load_periods(periods_file)

    booked_by_staff = load_booked(booked_file) if booked_file else {}

    assignment = assign_first_available(
        periods, booked_by_staff, peak_hours=settings.peak_hours
    )

    if output_json:
        console.print_json(json.dumps(assignment.model_dump() if assignment else None))
        return

    if assignment is None:
        console.print("[yellow]No availability for the selected date.[/yellow]")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[bold]Staff:[/bold] {assignment.staff_id}\n"
            f"[bold]Time:[/bold] {format_slot_label(assignment.slot)}",
            title="First Available",
        )
    )


@app.command()
def stats():
    """Show availability fetch and conflict scan statistics."""
    from clinic_os.observability import get_observability_logger

    obs = get_observability_logger()
    table = Table(title="Scheduling Telemetry")
    table.add_column("Log")
    table.add_column("Events", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Short-circuited", justify="right")
    table.add_column("Avg Duration", justify="right")
    for log_type in ("fetch", "conflicts"):
        data = obs.get_stats(log_type)
        table.add_row(
            log_type,
            str(data["total"]),
            str(data.get("errors", 0)),
            str(data.get("short_circuited", 0)),
            f"{data.get('avg_duration_ms', 0):.0f}ms",
        )
    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting Clinic OS API server on {host}:{port}")
    uvicorn.run(
        "clinic_os.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from clinic_os import __version__

    console.print(f"Clinic OS v{__version__}")

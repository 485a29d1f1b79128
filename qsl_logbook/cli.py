"""Command-line interface for QSL Logbook.

Commands cover serving the lookup site, and inspecting an ADIF log from the
terminal: stats, fuzzy search, per-call history, latest QSOs, the paper QSL
hall of fame, and rendering a QSO map.
"""

from __future__ import annotations

import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Optional

# Allow running this file directly by ensuring the project root is on sys.path
if __package__ is None or __package__ == "":
    sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import typer
from rich.console import Console
from rich.table import Table

from qsl_logbook.config import ADIF_ENV_VAR, APP_NAME, configure_logging, load_settings
from qsl_logbook.logbook import Logbook, compute_summary
from qsl_logbook.maps import MapConfig, render_map_with_distance
from qsl_logbook.models import QSO

app = typer.Typer(add_completion=False, help=f"{APP_NAME} - ADIF log lookup site")
console = Console()

ADIF_OPTION = typer.Option(
    None,
    "--adif",
    envvar=ADIF_ENV_VAR,
    dir_okay=False,
    help="ADIF file containing the QSO log",
)


# Utilities

def _parse_when(when: str) -> datetime:
    """Parse a UTC time such as "2024-01-15 14:30" or ISO 8601.

    Returns an aware UTC datetime. Raises typer.BadParameter for invalid formats.
    """
    s = when.strip().replace("T", " ").replace("Z", "")
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(s, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    try:
        dt = datetime.fromisoformat(when)
    except ValueError as e:
        raise typer.BadParameter(f"Unrecognized datetime format: {when}") from e
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def _load(adif: Optional[Path]) -> Logbook:
    """Load the logbook or exit with an error message."""
    if adif is None:
        console.print(f"[red]No ADIF file given (use --adif or {ADIF_ENV_VAR})[/red]")
        raise typer.Exit(1)
    try:
        return Logbook.from_file(adif)
    except Exception as e:
        console.print(f"[red]Error loading ADIF: {e}[/red]")
        raise typer.Exit(1) from e


def _qso_table(title: str, rows: List[QSO]) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("UTC")
    table.add_column("Call")
    table.add_column("Band")
    table.add_column("Mode")
    table.add_column("Grid")
    table.add_column("Country")
    table.add_column("QSL")
    for q in rows:
        table.add_row(
            f"{q.format_date()} {q.format_time()}",
            q.call,
            q.band,
            q.mode,
            q.gridsquare,
            q.country,
            q.qsl_rcvd.value,
        )
    return table


@app.command()
def serve(
    adif: Optional[Path] = ADIF_OPTION,
    host: Optional[str] = typer.Option(None, help="Address to bind"),
    port: Optional[int] = typer.Option(None, min=1, max=65535, help="Web server port"),
    reload_interval: Optional[float] = typer.Option(
        None, min=1, help="Seconds between ADIF reloads"
    ),
    maps_dir: Optional[Path] = typer.Option(None, file_okay=False, help="Map image cache"),
    log_level: Optional[str] = typer.Option(None, help="Logging level, e.g. INFO or DEBUG"),
) -> None:
    """Start the web server, reloading the ADIF file periodically."""
    import uvicorn

    from qsl_logbook.reloader import ReloadingLogbook
    from qsl_logbook.web import create_app

    settings = load_settings()
    if adif is not None:
        settings.adif_path = adif
    if host:
        settings.host = host
    if port:
        settings.port = port
    if reload_interval:
        settings.reload_interval = reload_interval
    if maps_dir:
        settings.maps_dir = maps_dir
    if log_level:
        settings.log_level = log_level.upper()

    configure_logging(settings.log_level)
    if settings.adif_path is None:
        console.print(f"[red]No ADIF file given (use --adif or {ADIF_ENV_VAR})[/red]")
        raise typer.Exit(1)

    try:
        reloader = ReloadingLogbook(settings.adif_path)
    except Exception as e:
        console.print(f"[red]Error loading ADIF: {e}[/red]")
        raise typer.Exit(1) from e

    web_app = create_app(reloader, settings)
    console.print(f"Starting web server on [bold]{settings.host}:{settings.port}[/bold]")
    uvicorn.run(web_app, host=settings.host, port=settings.port, log_config=None)


@app.command()
def stats(
    adif: Optional[Path] = ADIF_OPTION,
    json_out: bool = typer.Option(False, help="Output JSON"),
) -> None:
    """Show totals, unique countries, and the most recent contact."""
    logbook = _load(adif)
    summary = compute_summary(logbook)
    if json_out:
        latest_at = summary["latest_qso_at"]
        console.print_json(
            data={
                "total_qsos": summary["total_qsos"],
                "unique_countries": summary["unique_countries"],
                "paper_qsls": len(summary["paper_qsl_hall_of_fame"]),
                "latest_qso_date": summary["latest_qso_date"],
                "latest_qso_at": latest_at.isoformat() if latest_at else None,
            }
        )
        return
    table = Table(title=f"Logbook ({logbook.source})")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total QSOs", str(summary["total_qsos"]))
    table.add_row("Unique countries", str(summary["unique_countries"]))
    table.add_row("Paper QSLs received", str(len(summary["paper_qsl_hall_of_fame"])))
    table.add_row("Latest QSO", summary["latest_qso_date"] or "n/a")
    console.print(table)


@app.command()
def search(
    call: str = typer.Argument(..., help="Callsign worked, e.g. W1AW"),
    when: str = typer.Argument(..., help="UTC time, e.g. '2024-01-15 14:30'"),
    adif: Optional[Path] = ADIF_OPTION,
    tolerance: int = typer.Option(10, min=0, help="Minutes either side to accept"),
    json_out: bool = typer.Option(False, help="Output as JSON"),
) -> None:
    """Find the QSO with CALL closest to WHEN, within the tolerance."""
    dt = _parse_when(when)
    logbook = _load(adif)
    qso = logbook.search(call, dt, tolerance)
    if qso is None:
        console.print(f"No QSO found for {call.upper()} around {dt:%Y-%m-%d %H:%M} UTC")
        raise typer.Exit(1)
    if json_out:
        console.print_json(data=qso.model_dump(mode="json"))
        return
    console.print(_qso_table("Match", [qso]))


@app.command()
def calls(
    call: str = typer.Argument(..., help="Callsign to list"),
    adif: Optional[Path] = ADIF_OPTION,
) -> None:
    """List every QSO with a station, in log order."""
    logbook = _load(adif)
    rows = logbook.by_callsign(call)
    if not rows:
        console.print(f"No QSOs with {call.upper()}.")
        return
    console.print(_qso_table(f"QSOs with {call.upper()} ({len(rows)})", rows))


@app.command()
def latest(
    adif: Optional[Path] = ADIF_OPTION,
    limit: int = typer.Option(30, min=1, max=1000, help="Max QSOs to show"),
) -> None:
    """Display the most recent QSOs, newest first."""
    logbook = _load(adif)
    rows = logbook.latest(limit)
    if not rows:
        console.print("No QSOs found.")
        return
    console.print(_qso_table(f"Latest QSOs ({len(rows)})", rows))


@app.command("hall-of-fame")
def hall_of_fame(adif: Optional[Path] = ADIF_OPTION) -> None:
    """List stations whose paper QSL card was received, one per callsign."""
    logbook = _load(adif)
    rows = logbook.paper_qsl_hall_of_fame()
    if not rows:
        console.print("No paper QSLs received yet.")
        return
    table = Table(title=f"Paper QSL hall of fame ({len(rows)})")
    table.add_column("Call")
    table.add_column("Name")
    table.add_column("Country")
    table.add_column("Date")
    for q in rows:
        table.add_row(q.call, q.name, q.country, q.format_date())
    console.print(table)


@app.command("map")
def map_cmd(
    my_grid: str = typer.Argument(..., help="Your Maidenhead locator"),
    their_grid: str = typer.Argument(..., help="Their Maidenhead locator"),
    output: Path = typer.Option(Path("qso_map.png"), dir_okay=False, help="PNG file to write"),
    width: int = typer.Option(600, min=64, help="Image width in pixels"),
    height: int = typer.Option(400, min=64, help="Image height in pixels"),
    zoom: int = typer.Option(0, min=0, max=18, help="Zoom level; 0 fits both stations"),
) -> None:
    """Render a map of the path between two grid locators."""
    try:
        distance = render_map_with_distance(
            my_grid, their_grid, output, MapConfig(width=width, height=height, zoom=zoom)
        )
    except Exception as e:
        console.print(f"[red]Error rendering map: {e}[/red]")
        raise typer.Exit(1) from e
    console.print(f"Wrote {output} ({my_grid} <-> {their_grid}, {distance:.0f} km)")


def main() -> None:  # pragma: no cover - exercised via CLI
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

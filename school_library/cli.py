"""Command line for library staff: store setup, the attendance station and reports."""

import os
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from .attendance import AttendanceToggle
from .config import configure_logging, settings
from .database import initialize_database, resolve_db_file
from .errors import LibraryError
from .ledger import InventoryLedger
from .reports import library_stats
from .seed import STUDENT_PASSWORD, TEACHER_PASSWORD, seed_demo_data

console = Console()

app = typer.Typer(help="School library command line")


@app.callback()
def _global_options(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(None, "--db", help="SQLite file (default: LIBRARY_DB_FILE)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    """Options shared by every command."""
    configure_logging(log_level)
    ctx.obj = resolve_db_file(db)


@app.command("init-db")
def cli_init_db(ctx: typer.Context):
    """Create the database schema."""
    initialize_database(ctx.obj)
    console.print(f"Database ready at {ctx.obj}")


@app.command("seed")
def cli_seed(ctx: typer.Context):
    """Load demo accounts and books into an empty store."""
    if seed_demo_data(ctx.obj):
        console.print("Demo data loaded")
        console.print(f"  Admins: admin_primary, admin_secondary (password: {settings.default_admin_password})")
        console.print(f"  Students: STU_P1, STU_S1 (password: {STUDENT_PASSWORD})")
        console.print(f"  Teachers: TCH_P1, TCH_S1 (password: {TEACHER_PASSWORD})")
    else:
        console.print("[yellow]Store already has accounts; nothing loaded.[/]")


@app.command("scan")
def cli_scan(ctx: typer.Context, barcode: str = typer.Argument(..., help="Card barcode")):
    """Attendance station: toggle a person in or out."""
    try:
        result = AttendanceToggle(ctx.obj).scan(barcode)
    except LibraryError as e:
        console.print(f"[bold red]{e.message}[/]")
        raise typer.Exit(code=1)
    verb = "in" if result.record.type.value == "In" else "out"
    console.print(f"{result.person.name} checked {verb} at {result.record.timestamp:%H:%M:%S}")


@app.command("overdue")
def cli_overdue(ctx: typer.Context):
    """List open loans past their due date."""
    loans = InventoryLedger(ctx.obj).list_overdue()
    if not loans:
        console.print("No overdue loans.")
        return

    table = Table(title="Overdue loans", show_lines=True, header_style="bold cyan")
    table.add_column("Loan", style="magenta", no_wrap=True)
    table.add_column("Book")
    table.add_column("Borrower")
    table.add_column("Due", no_wrap=True)
    table.add_column("Days overdue", justify="right")
    for loan in loans:
        table.add_row(
            str(loan.record.id),
            loan.book_name or f"#{loan.record.book_id}",
            f"{loan.user_name or '?'} ({loan.record.person_type.value})",
            loan.record.due_date.strftime("%Y-%m-%d"),
            str(loan.days_overdue),
        )
    console.print(table)


@app.command("stats")
def cli_stats(ctx: typer.Context):
    """Show library counters."""
    stats = library_stats(ctx.obj)
    table = Table(title="Library statistics", header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command("serve")
def cli_serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    settings.db_file = ctx.obj
    os.environ["LIBRARY_DB_FILE"] = ctx.obj
    console.print(f"[green]Serving API on http://{host}:{port}/api (store: {ctx.obj})[/]")
    uvicorn.run("school_library.api:app", host=host, port=port, reload=reload,
                log_level=settings.log_level.lower())


if __name__ == "__main__":
    app()

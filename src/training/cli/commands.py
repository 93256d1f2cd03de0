"""CLI commands for the training system.

Commands:
- init-db: Create the SQLite schema
- add-user: Register a student or trainer
- criteria: Show promotion criteria and level order
- pending: List promotions waiting for a trainer
- approve / reject: Decide a pending promotion
- history: Show a student's promotions
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from training.config.app_config import load_app_config
from training.config.criteria import load_criteria_table
from training.core.errors import TrainingError
from training.core.promotion_service import PromotionRecord, PromotionService
from training.db.adaptive_repository import SqliteAdaptiveProfileStore
from training.db.database import init_db as do_init_db
from training.db.promotion_repository import SqlitePromotionStore
from training.db.session_repository import SqliteSessionStore
from training.db.users_repository import SqliteUserDirectory, insert_user

app = typer.Typer(
    name="train",
    help="Mental-math training sessions and level promotions.",
    no_args_is_help=True,
)

console = Console()

DB_OPTION_HELP = "SQLite database path (default from app config)"


def _open_db(db: Path | None) -> None:
    do_init_db(db or load_app_config().db_path)


def _promotion_service() -> PromotionService:
    return PromotionService(
        sessions=SqliteSessionStore(),
        promotions=SqlitePromotionStore(),
        directory=SqliteUserDirectory(),
        adaptive=SqliteAdaptiveProfileStore(),
        config=load_app_config().promotion,
    )


def _print_promotions(records: list[PromotionRecord], title: str) -> None:
    if not records:
        console.print(f"[dim]{title}: none[/dim]")
        return
    table = Table(title=title)
    table.add_column("ID")
    table.add_column("Student")
    table.add_column("Curriculum")
    table.add_column("From → To")
    table.add_column("Confidence", justify="right")
    table.add_column("Status")
    for r in records:
        table.add_row(
            r.promotion_id,
            r.student_id,
            r.curriculum,
            f"{r.from_level} → {r.to_level}",
            str(r.confidence),
            r.status.value,
        )
    console.print(table)


@app.command(name="init-db")
def init_db(db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP)) -> None:
    """Create the database schema (idempotent)."""
    _open_db(db)
    console.print("[green]✓ Database ready[/green]")


@app.command(name="add-user")
def add_user(
    role: str = typer.Argument(..., help="student or trainer"),
    code: str = typer.Argument(..., help="Unique user code"),
    name: str = typer.Argument(..., help="Display name"),
    level: list[str] = typer.Option(
        [], "--level", "-l", help="Starting level as curriculum=level (repeatable)"
    ),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Register a student or trainer."""
    levels = {}
    for item in level:
        curriculum, sep, value = item.partition("=")
        if not sep or not curriculum or not value:
            console.print(f"[red]✗ Invalid --level '{item}', expected curriculum=level[/red]")
            raise typer.Exit(code=1)
        levels[curriculum] = value

    _open_db(db)
    try:
        user = insert_user(role=role, code=code, name=name, current_levels=levels)
    except TrainingError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ {user.role.capitalize()} created[/green]")
    console.print(f"  [dim]user_id:[/dim] {user.user_id}")
    if user.current_levels:
        console.print(f"  [dim]levels:[/dim]  {json.dumps(user.current_levels)}")


@app.command()
def criteria(
    curriculum: str | None = typer.Argument(None, help="Curriculum to show (default: all)"),
) -> None:
    """Show promotion criteria per level."""
    table_data = load_criteria_table()
    curricula = [curriculum] if curriculum else table_data.curricula
    if curriculum and curriculum not in table_data.curricula:
        console.print(f"[red]✗ Unknown curriculum: {curriculum}[/red]")
        console.print(f"  [dim]available:[/dim] {', '.join(table_data.curricula)}")
        raise typer.Exit(code=1)

    for name in curricula:
        table = Table(title=f"{name} promotion criteria")
        table.add_column("Level")
        table.add_column("Min accuracy", justify="right")
        table.add_column("Max avg time", justify="right")
        table.add_column("Streak", justify="right")
        table.add_column("Min sessions", justify="right")
        table.add_column("Consistency", justify="right")
        levels = table_data.levels(name)
        for level in table_data.progression(name):
            c = levels.get(level)
            if c is None:
                table.add_row(level, "-", "-", "-", "-", "-")
                continue
            table.add_row(
                level,
                f"{c.minimum_accuracy:g}%",
                f"{c.maximum_average_time:g}s",
                str(c.required_successful_sessions),
                str(c.minimum_sessions_at_level),
                f"{c.consistency_threshold:g}%",
            )
        console.print(table)


@app.command()
def pending(
    curriculum: str | None = typer.Option(None, "--curriculum", "-c", help="Filter by curriculum"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """List promotions waiting for a trainer decision."""
    _open_db(db)
    records = asyncio.run(_promotion_service().pending(curriculum))
    _print_promotions(records, "Pending promotions")


@app.command()
def approve(
    promotion_id: str = typer.Argument(..., help="Promotion ID"),
    trainer: str = typer.Option(..., "--trainer", "-t", help="Approving trainer ID"),
    notes: str | None = typer.Option(None, "--notes", "-n", help="Trainer notes"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Approve a pending promotion and apply the level change."""
    _open_db(db)
    try:
        record = asyncio.run(_promotion_service().approve(promotion_id, trainer, notes))
    except TrainingError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓ {record.student_id} promoted in {record.curriculum}: "
        f"{record.from_level} → {record.to_level}[/green]"
    )


@app.command()
def reject(
    promotion_id: str = typer.Argument(..., help="Promotion ID"),
    trainer: str = typer.Option(..., "--trainer", "-t", help="Rejecting trainer ID"),
    reason: str | None = typer.Option(None, "--reason", "-r", help="Rejection reason"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Reject a pending promotion."""
    _open_db(db)
    try:
        record = asyncio.run(_promotion_service().reject(promotion_id, trainer, reason))
    except TrainingError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[yellow]Promotion {record.promotion_id} rejected[/yellow]")


@app.command()
def history(
    student_id: str = typer.Argument(..., help="Student ID"),
    curriculum: str | None = typer.Option(None, "--curriculum", "-c", help="Filter by curriculum"),
    db: Path | None = typer.Option(None, "--db", help=DB_OPTION_HELP),
) -> None:
    """Show a student's recorded promotions."""
    _open_db(db)
    records = asyncio.run(_promotion_service().history(student_id, curriculum))
    _print_promotions(records, f"Promotions of {student_id}")


if __name__ == "__main__":
    app()

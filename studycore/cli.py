"""
studycore: operator CLI for the adaptive learning core.

Commands run as the named user against the configured database:
- studycore init-db           - Create tables
- studycore due USER          - Cards due for review
- studycore gaps USER         - Active learning gaps
- studycore stats USER        - Retention and session statistics
- studycore sessions USER     - Recent session history
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from studycore.analytics.reader import AnalyticsReader
from studycore.db.database import init_db
from studycore.domain import utcnow
from studycore.errors import StudyCoreError
from studycore.logs import configure_logging
from studycore.results import ReadResult
from studycore.scheduling.service import SchedulingService
from studycore.store.sql import SqlRepository


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="studycore",
    help="Adaptive learning core: scheduling, gaps and session analytics",
    no_args_is_help=True,
)
console = Console()

SEVERITY_STYLES = {
    "high": "bold red",  # 8-10
    "medium": "yellow",  # 4-7
    "low": "green",  # 1-3
}


def style_severity(severity: int) -> str:
    if severity >= 8:
        style = SEVERITY_STYLES["high"]
    elif severity >= 4:
        style = SEVERITY_STYLES["medium"]
    else:
        style = SEVERITY_STYLES["low"]
    return f"[{style}]{severity}[/{style}]"


def warn_if_degraded(result: ReadResult, what: str) -> None:
    if not result.ok:
        console.print(f"[yellow]Warning: {what} unavailable ({result.cause})[/yellow]")


# =============================================================================
# Commands
# =============================================================================


@app.command("init-db")
def init_db_command() -> None:
    """Create the learning tables if they do not exist."""
    init_db()
    console.print("[green]Database initialized[/green]")


@app.command()
def due(
    user: str = typer.Argument(..., help="User id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum cards to show"),
) -> None:
    """Show cuecards due for review now."""
    service = SchedulingService(SqlRepository())
    cards = service.get_due_cards(user, user)

    if not cards:
        console.print("[dim]Nothing due.[/dim]")
        return

    now = utcnow()
    table = Table(title=f"Due cards ({len(cards)})")
    table.add_column("Card", style="cyan")
    table.add_column("Interval", justify="right")
    table.add_column("Ease", justify="right")
    table.add_column("Streak", justify="right")
    table.add_column("Overdue", justify="right")
    for state in cards[:limit]:
        table.add_row(
            state.card_id,
            f"{state.interval_days}d",
            f"{state.ease_factor / 100:.2f}",
            str(state.consecutive_correct),
            f"{state.days_overdue(now)}d",
        )
    console.print(table)


@app.command()
def gaps(user: str = typer.Argument(..., help="User id")) -> None:
    """Show active learning gaps, worst first."""
    result = AnalyticsReader(SqlRepository()).active_gaps(user)
    warn_if_degraded(result, "learning gaps")

    if not result.value:
        console.print("[dim]No active gaps.[/dim]")
        return

    table = Table(title="Active learning gaps")
    table.add_column("Type")
    table.add_column("Content", style="cyan")
    table.add_column("Severity", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Last failure", style="dim")
    for gap in result.value:
        table.add_row(
            gap.content_type.value,
            gap.content_id,
            style_severity(gap.severity),
            str(gap.failure_count),
            gap.last_failure_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@app.command()
def stats(user: str = typer.Argument(..., help="User id")) -> None:
    """Show retention and session statistics."""
    repository = SqlRepository()
    retention = SchedulingService(repository).get_retention_stats(user, user)
    sessions = AnalyticsReader(repository).session_count(user)
    warn_if_degraded(sessions, "session count")

    console.print("\n[bold cyan]Learning Statistics[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Scheduled cards", str(retention.total_cards))
    table.add_row("Due now", str(retention.due_cards))
    table.add_row("Mastered", f"{retention.mastered_cards} ({retention.mastery_rate:.1f}%)")
    table.add_row("Struggling", str(retention.struggling_cards))
    table.add_row("Average ease", f"{retention.average_ease / 100:.2f}")
    table.add_row("Sessions recorded", str(sessions.value))
    console.print(table)


@app.command()
def sessions(
    user: str = typer.Argument(..., help="User id"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of sessions"),
) -> None:
    """Show recent session history."""
    result = AnalyticsReader(SqlRepository()).session_history(user, limit=limit)
    warn_if_degraded(result, "session history")

    if not result.value:
        console.print("[dim]No sessions recorded.[/dim]")
        return

    table = Table(title="Session history")
    table.add_column("Started", style="dim")
    table.add_column("Type")
    table.add_column("Items", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Duration", justify="right")
    for summary in result.value:
        table.add_row(
            summary.started_at.strftime("%Y-%m-%d %H:%M"),
            summary.content_type.value,
            str(summary.items_completed),
            f"{summary.accuracy}%",
            f"{summary.total_time // 60000}m {summary.total_time // 1000 % 60}s",
        )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    configure_logging(level="WARNING")
    try:
        app()
    except StudyCoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()

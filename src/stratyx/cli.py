"""
Stratyx CLI - Command Line Interface for coaching analytics

Provides commands for:
- Replaying a recorded event log through a pipeline
- Estimating win-probability uncertainty
- Writing a configuration template
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stratyx import __version__
from stratyx.analysis.win_probability import WinProbabilityModel
from stratyx.core.config import configure_logging, generate_default_config, load_config
from stratyx.core.constants import Phase
from stratyx.core.events import parse_timestamp
from stratyx.core.schemas import GameStateSnapshot
from stratyx.pipeline import CoachingPipeline

app = typer.Typer(
    name="stratyx",
    help="Real-time causal coaching analytics - validated insights from match event streams",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

PRIORITY_STYLES = {"high": "red", "medium": "yellow", "low": "green"}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Stratyx[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output"
    )
) -> None:
    """Stratyx - Real-time causal coaching analytics"""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _read_events(path: Path) -> list[dict]:
    events = []
    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError as e:
                console.print(f"[yellow]Warning:[/yellow] skipping line {line_no}: {e}")
    return events


@app.command()
def replay(
    events_file: Path = typer.Argument(..., help="JSON Lines file with one event per line", exists=True),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    rebase_timestamps: bool = typer.Option(
        False,
        "--rebase-timestamps",
        help="Judge freshness against the log's own timeline instead of the wall clock",
    ),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of insights to show"),
    as_json: bool = typer.Option(False, "--json", help="Print the final snapshot as JSON"),
) -> None:
    """Replay a recorded event log and report insights, debt and patterns."""
    config = load_config(config_file)
    configure_logging(config.logging)

    events = _read_events(events_file)
    if not events:
        console.print("[red]Error:[/red] no events found")
        raise typer.Exit(1)

    log_time: dict[str, datetime | None] = {"now": None}

    def clock() -> datetime:
        return log_time["now"] or datetime.now(UTC)

    pipeline = CoachingPipeline(config=config, clock=clock if rebase_timestamps else None)
    for raw in events:
        if rebase_timestamps:
            log_time["now"] = parse_timestamp(raw.get("timestamp")) or log_time["now"]
        pipeline.ingest(raw)

    if as_json:
        console.print_json(data={**pipeline.snapshot(), "patterns": [p.to_dict() for p in pipeline.scan_patterns()]})
        return

    console.print(f"\n[bold blue]Stratyx[/bold blue] - Replayed {len(events)} events from {events_file}\n")
    _display_summary(pipeline)
    _display_insights(pipeline, limit)
    _display_debt(pipeline)
    _display_patterns(pipeline)


def _display_summary(pipeline: CoachingPipeline) -> None:
    metrics = pipeline.engine.performance_metrics()
    table = Table(title="Processing", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Events processed", str(metrics.events_processed))
    table.add_row("Dropped (quality)", str(metrics.drops.malformed))
    table.add_row("Dropped (stale)", str(metrics.drops.stale))
    table.add_row("Insights", str(metrics.insights_generated))
    table.add_row("Avg processing", f"{metrics.avg_processing_ms:.2f}ms")
    table.add_row("Data quality", f"{metrics.data_quality_score:.2f}")
    table.add_row("Win probability", f"{pipeline.engine.win_probability:.1%}")
    console.print(table)
    console.print()


def _display_insights(pipeline: CoachingPipeline, limit: int) -> None:
    insights = pipeline.latest_insights(limit)
    if not insights:
        console.print("[yellow]No validated insights[/yellow]\n")
        return

    table = Table(title="Validated Insights")
    table.add_column("Priority")
    table.add_column("Action", style="cyan")
    table.add_column("Outcome")
    table.add_column("p", justify="right")
    table.add_column("n", justify="right")
    for insight in insights:
        style = PRIORITY_STYLES.get(insight.priority.value, "white")
        table.add_row(
            f"[{style}]{insight.priority.value}[/{style}]",
            insight.micro_action,
            insight.macro_outcome,
            f"{insight.p_value:.4f}",
            str(insight.sample_size),
        )
    console.print(table)
    console.print(Panel(insights[0].recommendation, title="Latest recommendation"))
    console.print()


def _display_debt(pipeline: CoachingPipeline) -> None:
    debt = pipeline.engine.debt
    table = Table(title=f"Strategy Debt: {debt.total:.1f} ({debt.level})")
    table.add_column("Category", style="cyan")
    table.add_column("Source")
    table.add_column("Debt", justify="right")
    table.add_column("Recommendation")
    for item in debt.items(limit=10):
        table.add_row(item.category.value, item.source, f"{item.contribution:.1f}", item.recommendation)
    console.print(table)
    console.print()


def _display_patterns(pipeline: CoachingPipeline) -> None:
    patterns = pipeline.scan_patterns()
    if not patterns:
        console.print("[yellow]No recurring patterns[/yellow]")
        return

    table = Table(title="Patterns")
    table.add_column("Type", style="cyan")
    table.add_column("Description")
    table.add_column("Count", justify="right")
    table.add_column("Confidence", justify="right")
    for pattern in patterns:
        table.add_row(
            pattern.pattern_type.value,
            pattern.description,
            str(pattern.occurrences),
            f"{pattern.confidence:.2f}",
        )
    console.print(table)


@app.command()
def simulate(
    score_home: int = typer.Option(0, "--home", help="Rounds won by the focus team"),
    score_away: int = typer.Option(0, "--away", help="Rounds won by the opponent"),
    economy_diff: float = typer.Option(0.0, "--economy", help="Economy difference"),
    man_advantage: float = typer.Option(0.0, "--man-advantage", help="Players alive difference"),
    objectives: float = typer.Option(0.5, "--objectives", min=0.0, max=1.0, help="Objective control share"),
    debt: float = typer.Option(0.0, "--debt", min=0.0, help="Strategy debt"),
    iterations: int = typer.Option(1000, "--iterations", "-i", min=1, help="Monte Carlo iterations"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed"),
) -> None:
    """Estimate win probability and its Monte Carlo uncertainty for a game state."""
    state = GameStateSnapshot(
        score_home=score_home,
        score_away=score_away,
        economy_diff=economy_diff,
        man_advantage=man_advantage,
        objectives_controlled=objectives,
        phase=Phase.MID,
        strategy_debt=debt,
    )
    model = WinProbabilityModel()
    result = model.calculate(state)
    summary = model.monte_carlo(state, iterations=iterations, seed=seed)

    table = Table(title=f"Win Probability: {result.probability:.1%} (confidence {result.confidence:.2f})")
    table.add_column("Factor", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Contribution", justify="right")
    for factor in result.factors:
        table.add_row(factor.name, f"{factor.value:+.3f}", f"{factor.contribution:+.3f}")
    console.print(table)
    console.print(
        f"Monte Carlo ({summary.iterations}): mean {summary.mean:.3f}, std {summary.std_dev:.3f}, "
        f"p10-p90 [{summary.p10:.3f}, {summary.p90:.3f}]"
    )


@app.command("init-config")
def init_config(
    path: Path = typer.Argument(Path("stratyx.yaml"), help="Where to write the template"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a default configuration file."""
    if path.exists() and not force:
        console.print(f"[red]Error:[/red] {path} already exists (use --force to overwrite)")
        raise typer.Exit(1)

    try:
        generate_default_config(path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Config written to:[/green] {path}")


if __name__ == "__main__":
    app()

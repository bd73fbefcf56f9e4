"""Developer CLI for the consultation pipeline."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .analyzer import ComplexityAnalyzer
from .config import TierThresholds, settings
from .errors import ConsultError
from .models import Outcome, Task, Tier
from .orchestrator import Orchestrator
from .registry import SpecialistRegistry
from .router import TaskRouter

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_task(
    description: str | None,
    task_file: Path | None,
    domain: str | None,
    technologies: tuple[str, ...],
    complexity: float | None,
) -> Task:
    payload: dict[str, Any] = {}
    if task_file is not None:
        try:
            payload = json.loads(task_file.read_text())
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"{task_file} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise click.BadParameter(f"{task_file} must contain a JSON object")
    if description:
        payload["description"] = description
    if domain:
        payload["domain"] = domain
    if technologies:
        payload["technologies"] = list(technologies)
    if complexity is not None:
        payload["complexity"] = complexity
    if not payload:
        raise click.UsageError("Provide a DESCRIPTION or --task-file")
    return Task.from_dict(payload)


def task_options(func):
    """Options shared by every command that takes a task."""
    func = click.option("--complexity", type=float, default=None, help="Declared complexity hint (1-10)")(func)
    func = click.option("--tech", "technologies", multiple=True, help="Technology involved (repeatable)")(func)
    func = click.option("--domain", default=None, help="Explicit task domain")(func)
    func = click.option(
        "--task-file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="JSON file describing the task",
    )(func)
    func = click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables")(func)
    func = click.argument("description", required=False)(func)
    return func


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Override CONSULT_LOG_LEVEL")
def main(log_level: str | None) -> None:
    """Tiered specialist consultation CLI.

    Analyze task complexity, route tasks to specialists and run the full
    consultation pipeline locally.
    """
    configure_logging(log_level or settings.log_level)


@main.command()
@task_options
def analyze(
    description: str | None,
    as_json: bool,
    task_file: Path | None,
    domain: str | None,
    technologies: tuple[str, ...],
    complexity: float | None,
) -> None:
    """Score a task's complexity and show the tier it selects."""
    task = _load_task(description, task_file, domain, technologies, complexity)
    analysis = ComplexityAnalyzer(TierThresholds.from_settings(settings)).analyze(task)
    if as_json:
        click.echo(json.dumps(analysis.to_dict(), indent=2))
        return

    table = Table(title="Complexity Breakdown")
    table.add_column("Dimension", style="cyan")
    table.add_column("Score", justify="right")
    for name, score in analysis.breakdown.items():
        table.add_row(name, str(score))
    table.add_row("[bold]overall[/bold]", f"[bold]{analysis.overall_score:.2f}[/bold]")
    console.print(table)
    console.print(
        f"Tier: [bold]{analysis.tier.value}[/bold]  Confidence: {analysis.confidence:.2f}"
    )
    for note in analysis.recommendations:
        console.print(f"  • {note}")


@main.command()
@task_options
def route(
    description: str | None,
    as_json: bool,
    task_file: Path | None,
    domain: str | None,
    technologies: tuple[str, ...],
    complexity: float | None,
) -> None:
    """Show where a task would be routed without consulting anyone."""
    task = _load_task(description, task_file, domain, technologies, complexity)
    registry = SpecialistRegistry()
    router = TaskRouter(registry, ComplexityAnalyzer(TierThresholds.from_settings(settings)))
    decision = router.route(task)
    if as_json:
        click.echo(json.dumps(decision.to_dict(), indent=2))
        return

    console.print(
        Panel(
            f"Tier: [bold]{decision.tier.value}[/bold]\n"
            f"Domain: {decision.domain}\n"
            f"Specialist: [cyan]{decision.specialist or 'direct'}[/cyan]\n"
            f"Protocol: {decision.protocol}\n"
            f"Estimated: {decision.estimated_minutes} min\n"
            f"Checks: {', '.join(decision.quality_checks)}",
            title="Routing Decision",
        )
    )
    if decision.candidates:
        table = Table(title="Candidates")
        table.add_column("Specialist", style="cyan")
        table.add_column("Score", justify="right")
        for specialist_id, score in decision.candidates:
            table.add_row(specialist_id, f"{score:.1f}")
        console.print(table)


@main.command()
@task_options
@click.option("--no-cache", is_flag=True, help="Bypass the consultation cache")
@click.option(
    "--tier",
    type=click.Choice([t.value for t in Tier if t != Tier.EXTERNAL], case_sensitive=False),
    default=None,
    help="Force a consultation tier",
)
def run(
    description: str | None,
    as_json: bool,
    task_file: Path | None,
    domain: str | None,
    technologies: tuple[str, ...],
    complexity: float | None,
    no_cache: bool,
    tier: str | None,
) -> None:
    """Process a task through the full consultation pipeline."""
    task = _load_task(description, task_file, domain, technologies, complexity)

    async def _run() -> Outcome:
        orchestrator = Orchestrator(settings)
        await orchestrator.initialize()
        return await orchestrator.process_task(
            task, {"use_cache": not no_cache, "tier": tier.upper() if tier else None}
        )

    try:
        outcome = asyncio.run(_run())
    except ConsultError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2, default=str))
    else:
        _render_outcome(outcome)
    if not outcome.success:
        raise SystemExit(1)


def _render_outcome(outcome: Outcome) -> None:
    metadata = outcome.metadata
    routing = metadata.get("routing") or {}
    quality = metadata.get("quality") or {}
    status = "[green]success[/green]" if outcome.success else "[red]failed[/red]"
    console.print(
        Panel(
            f"Status: {status}\n"
            f"Tier: [bold]{routing.get('tier', '-')}[/bold]\n"
            f"Specialist: [cyan]{routing.get('specialist') or 'direct'}[/cyan]\n"
            f"Quality: {quality.get('score', '-')} ({quality.get('grade', '-')})\n"
            f"Cached: {metadata.get('cached', False)}\n"
            f"Escalations: {len(metadata.get('escalations') or [])}",
            title=f"Task {outcome.task_id}",
        )
    )
    if outcome.success and outcome.result:
        plan = outcome.result.get("plan") or {}
        steps = plan.get("steps") or []
        if steps:
            table = Table(title=outcome.result.get("approach", "Recommendation"))
            table.add_column("#", style="cyan", justify="right")
            table.add_column("Step")
            for index, step in enumerate(steps, start=1):
                table.add_row(str(index), step)
            console.print(table)
        else:
            console.print(outcome.result.get("implementation", ""))
    if not outcome.success:
        console.print(f"[red]{outcome.error_type}: {outcome.error}[/red]")
        for issue in outcome.quality_issues:
            console.print(f"  • {issue.get('suggestion', issue)}")


@main.command()
@click.option("--tier", type=click.IntRange(1, 3), default=None, help="Only show one tier")
@click.option("--domain", default=None, help="Only show specialists covering a domain")
def specialists(tier: int | None, domain: str | None) -> None:
    """List the specialist catalog."""
    registry = SpecialistRegistry()
    profiles = registry.all()
    if tier is not None:
        profiles = [p for p in profiles if p.tier == tier]
    if domain:
        covering = {p.id for p in registry.by_domain(domain)}
        profiles = [p for p in profiles if p.id in covering]

    if not profiles:
        console.print("[yellow]No specialists match[/yellow]")
        return

    table = Table(title="Specialists")
    table.add_column("ID", style="cyan")
    table.add_column("Tier", justify="right")
    table.add_column("Domains")
    table.add_column("Complexity")
    table.add_column("Time")
    for profile in profiles:
        table.add_row(
            profile.id,
            str(profile.tier),
            ", ".join(profile.domains),
            f"{profile.min_complexity:g}-{profile.max_complexity:g}",
            profile.estimated_time,
        )
    console.print(table)


if __name__ == "__main__":
    main()

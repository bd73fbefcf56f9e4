"""
Basic Task Example

Demonstrates how to run a few tasks through the consultation pipeline
programmatically and send feedback on one of them.

Usage:
    python examples/basic_task.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from consult import Orchestrator, Outcome

console = Console()

TASKS = [
    {"description": "Fix typo in README", "complexity": 2},
    {
        "description": "Add rate limiting to the public REST API",
        "domain": "api",
        "technologies": ["express", "redis"],
        "complexity": 5,
    },
    {
        "description": "Design the enterprise integration layer for billing and CRM",
        "scope": "enterprise",
        "technologies": ["kafka", "graphql", "postgres"],
        "integrations": ["salesforce", "stripe"],
        "complexity": 9,
    },
]


def show_outcome(outcome: Outcome) -> None:
    routing = outcome.metadata.get("routing") or {}
    quality = outcome.metadata.get("quality") or {}
    console.print(
        Panel(
            f"Success: {outcome.success}\n"
            f"Tier: [bold]{routing.get('tier', '-')}[/bold]\n"
            f"Specialist: [cyan]{routing.get('specialist') or 'direct'}[/cyan]\n"
            f"Quality: {quality.get('score', '-')} ({quality.get('grade', '-')})\n"
            f"Cached: {outcome.metadata.get('cached', False)}",
            title=outcome.task_id,
        )
    )


async def main() -> None:
    orchestrator = Orchestrator()
    await orchestrator.initialize(constraints=["No new infrastructure this quarter"])

    outcomes = []
    for task in TASKS:
        console.print(f"\n[bold blue]Processing:[/bold blue] {task['description']}")
        outcome = await orchestrator.process_task(task)
        show_outcome(outcome)
        outcomes.append(outcome)

    # The same task again should come from the cache
    repeat = await orchestrator.process_task(TASKS[1])
    console.print(f"\nRepeat of task 2 cached: [green]{repeat.metadata.get('cached')}[/green]")

    result = await orchestrator.process_feedback(
        outcomes[1].task_id, {"satisfaction": 0.4, "issues": ["missing burst handling"]}
    )
    console.print(f"Feedback processed: {result}")

    status = await orchestrator.get_system_status()
    table = Table(title="Tier Distribution")
    table.add_column("Tier", style="cyan")
    table.add_column("Tasks", justify="right")
    table.add_column("Target", justify="right")
    distribution = status["performance"]["tier_distribution"]
    for tier, target in status["distribution_targets"].items():
        table.add_row(tier, str(distribution.get(tier, 0)), f"{target:.0%}")
    console.print(table)


if __name__ == "__main__":
    asyncio.run(main())

"""
CLI: ``reconverge demo``: run the driver over synthetic flaky records.
"""

from __future__ import annotations

import json
import random
import threading
from dataclasses import dataclass, replace

import typer
from rich.console import Console
from rich.table import Table

from reconverge.core.errors import ConfigError
from reconverge.core.logging import configure_logging
from reconverge.core.result import Err, Ok, Result
from reconverge.execution import ConvergenceDriver, Executor, LocalCollectionEngine, RetryEligibility

console = Console()
err_console = Console(stderr=True)


@dataclass(frozen=True)
class Person:
    name: str
    age: int


class FlakyScorer:
    """Deterministic stand-in for a remote call that fails at a given rate."""

    def __init__(self, failure_rate: float, seed: int) -> None:
        self.failure_rate = failure_rate
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def __call__(self, person: Person) -> Result[tuple[int, int]]:
        with self._lock:
            roll = self._random.random()
        if roll < self.failure_rate:
            return Err(ConnectionError(f"scoring service unavailable for {person.name}"))
        return Ok((1, 2))


def integrate(person: Person, outcome: Result[tuple[int, int]]) -> tuple[Person, bool]:
    if isinstance(outcome, Ok):
        factor, offset = outcome.value
        return replace(person, age=person.age * factor + offset), True
    return person, False


def demo(
    items: int = typer.Option(100, "--items", "-n", help="Number of synthetic records."),
    failure_rate: float = typer.Option(0.3, "--failure-rate", "-f", help="Probability an invocation fails."),
    attempt: int = typer.Option(1, "--attempt", "-a", help="Attempts per executor call."),
    max_passes: int = typer.Option(3, "--max-passes", "-p", help="Passes after the first one."),
    break_after: int | None = typer.Option(None, "--break-after", help="Exhausted calls before a worker trips."),
    backoff: float | None = typer.Option(None, "--backoff", help="Seconds between retries."),
    rate: float | None = typer.Option(None, "--rate", help="Max calls per second per worker."),
    partitions: int | None = typer.Option(None, "--partitions", help="Partitions (default from settings)."),
    parallelism: int | None = typer.Option(None, "--parallelism", help="Worker threads (default from settings)."),
    failed_only: bool = typer.Option(False, "--failed-only", help="Do not re-run skipped records."),
    seed: int = typer.Option(7, "--seed", help="Random seed."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run the convergence driver over synthetic records and report each pass."""
    if not 0.0 <= failure_rate <= 1.0:
        err_console.print("[bold red]Error[/bold red]: --failure-rate must be between 0 and 1")
        raise typer.Exit(code=2)

    builder = Executor.build().name("demo").attempt(attempt)
    if break_after is not None:
        builder = builder.break_after(break_after)
    if backoff is not None:
        builder = builder.backoff(backoff)
    if rate is not None:
        builder = builder.limit_rate(rate)

    try:
        configure_logging()
        executor = builder.get_or_create()
        driver = ConvergenceDriver(
            FlakyScorer(failure_rate, seed),
            integrate,
            max_passes,
            executor=executor,
            engine=LocalCollectionEngine(parallelism=parallelism, num_partitions=partitions),
            eligibility=RetryEligibility.FAILED_ONLY if failed_only else RetryEligibility.UNRESOLVED,
        )
    except ConfigError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=2) from e

    people = [Person(name=f"person-{i}", age=20 + i % 50) for i in range(items)]
    outputs = driver.run(people)
    resolved = sum(1 for _, ok in outputs if ok)

    if json_out:
        payload = {
            "items": len(outputs),
            "resolved": resolved,
            "passes": [report.to_dict() for report in driver.reports],
        }
        console.print_json(json.dumps(payload))
        return

    table = Table(title="Convergence passes")
    for column in ("pass", "executed", "success", "skipped", "failed", "attempts"):
        table.add_column(column, justify="right")
    for report in driver.reports:
        m = report.metrics
        table.add_row(
            str(report.pass_index),
            str(report.executed),
            str(m.success),
            str(m.skipped),
            str(m.failed),
            str(m.total_attempts),
        )
    console.print(table)
    console.print(f"Resolved [bold]{resolved}[/bold] of {len(outputs)} records")

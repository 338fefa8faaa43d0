"""Multi-pass convergence driver.

Applies a fallible per-item operation across a partitioned collection and
keeps re-running only the items that have no value yet, pass after pass,
until everything succeeds or the pass budget runs out.

WHY
───
Enrichment jobs (geocoding, API lookups, scraping) over large datasets hit
transient failures on a small fraction of items. Re-running the whole job is
wasteful; dropping the failures loses data. The driver keeps one working
record per item and only recomputes unresolved ones, so every input always
produces exactly one output.

ARCHITECTURE
────────────
::

    pass 0:  items ──map_partitions──▶ WorkRecord(item, result, output)
                                             │ persist
                                             ▼
             ┌──── aggregate ExecMetrics ◀───┘
             │
             ├── remaining == 0 or settled ──▶ collect outputs
             │
             └── map_partitions(retry unresolved, carry successes)
                    persist new, unpersist previous, remaining -= 1

    Each partition index owns one ExecutorWorker for the driver's lifetime,
    so a worker's circuit stays open across passes once tripped.

Example::

    outputs = run_convergence(
        records,
        operation=lambda r: try_result(lambda: geocode(r.address)),
        integrate=lambda r, res: (r, res.unwrap_or(None)),
        max_passes=3,
    )
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

from reconverge.core.errors import InvalidConfigError
from reconverge.core.logging import LogContext, get_logger
from reconverge.core.result import Result
from reconverge.core.settings import get_settings
from reconverge.execution.engine import CollectionEngine, LocalCollectionEngine, PartitionedCollection
from reconverge.execution.executor import Executor, ExecutorWorker
from reconverge.execution.models import ExecMetrics, ExecutionResult

A = TypeVar("A")
B = TypeVar("B")
C = TypeVar("C")

logger = get_logger(__name__)


class RetryEligibility(str, Enum):
    """Which records a later pass re-executes."""

    UNRESOLVED = "unresolved"    # every record without a value, skipped included
    FAILED_ONLY = "failed_only"  # exhausted failures only; skipped records stay put

    def is_eligible(self, result: ExecutionResult[Any]) -> bool:
        if result.is_success:
            return False
        if self is RetryEligibility.FAILED_ONLY:
            return not result.is_skipped
        return True

    def is_settled(self, metrics: ExecMetrics) -> bool:
        """True when another pass would re-execute nothing."""
        if self is RetryEligibility.FAILED_ONLY:
            return metrics.failed == 0
        return metrics.is_pure_success


@dataclass(frozen=True, slots=True)
class WorkRecord(Generic[A, C, B]):
    """Per-item state carried between passes."""

    item: A
    result: ExecutionResult[C]
    output: B


@dataclass(frozen=True)
class PassReport:
    """Metrics observed after one pass."""

    pass_index: int
    executed: int
    metrics: ExecMetrics

    def to_dict(self) -> dict[str, Any]:
        return {"pass_index": self.pass_index, "executed": self.executed, **self.metrics.to_dict()}


def default_executor() -> Executor:
    """Executor used when the caller supplies none: random name, breaker on."""
    settings = get_settings()
    return (
        Executor.build()
        .name()
        .attempt(settings.default_attempt)
        .break_after(settings.default_break_after)
        .get_or_create()
    )


class ConvergenceDriver(Generic[A, C, B]):
    """Re-run unresolved items until they converge or passes run out.

    Args:
        operation: Fallible per-item operation returning Ok/Err
        integrate: Folds an item and its outcome into the output type;
            must handle the Err case
        max_passes: Additional passes allowed after pass 0 (>= 0)
        executor: Executor to use (default: :func:`default_executor`)
        recover: Fallback value factory for items that never resolve.
            Stored but not applied.
        engine: Collection engine (default: :class:`LocalCollectionEngine`)
        eligibility: Which unresolved records later passes re-execute
    """

    def __init__(
        self,
        operation: Callable[[A], Result[C]],
        integrate: Callable[[A, Result[C]], B],
        max_passes: int,
        executor: Executor | None = None,
        recover: Callable[[A], C | None] | None = None,
        engine: CollectionEngine | None = None,
        eligibility: RetryEligibility = RetryEligibility.UNRESOLVED,
    ) -> None:
        if max_passes < 0:
            raise InvalidConfigError("max_passes", max_passes)
        self.operation = operation
        self.integrate = integrate
        self.max_passes = max_passes
        self.executor = executor if executor is not None else default_executor()
        self.recover = recover
        self.engine: CollectionEngine = engine if engine is not None else LocalCollectionEngine()
        self.eligibility = eligibility

        self._workers: dict[int, ExecutorWorker] = {}
        self._workers_lock = threading.Lock()
        self._reports: list[PassReport] = []

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def reports(self) -> list[PassReport]:
        """Per-pass metrics of the most recent run."""
        return list(self._reports)

    @property
    def final_metrics(self) -> ExecMetrics | None:
        return self._reports[-1].metrics if self._reports else None

    @property
    def workers(self) -> dict[int, ExecutorWorker]:
        with self._workers_lock:
            return dict(self._workers)

    # ── Execution ────────────────────────────────────────────────────

    def _worker_for(self, partition_index: int) -> ExecutorWorker:
        with self._workers_lock:
            worker = self._workers.get(partition_index)
            if worker is None:
                worker = self.executor.worker()
                self._workers[partition_index] = worker
            return worker

    def _execute(self, worker: ExecutorWorker, item: A) -> WorkRecord[A, C, B]:
        result = worker.run(lambda: self.operation(item))
        return WorkRecord(item, result, self.integrate(item, result.to_outcome()))

    def _first_pass(self, partition_index: int, items: Sequence[A]) -> list[WorkRecord[A, C, B]]:
        worker = self._worker_for(partition_index)
        return [self._execute(worker, item) for item in items]

    def _retry_pass(
        self, partition_index: int, records: Sequence[WorkRecord[A, C, B]]
    ) -> list[WorkRecord[A, C, B]]:
        worker = self._worker_for(partition_index)
        return [
            self._execute(worker, record.item) if self.eligibility.is_eligible(record.result) else record
            for record in records
        ]

    def _metrics(self, collection: PartitionedCollection[WorkRecord[A, C, B]]) -> ExecMetrics:
        return self.engine.aggregate(
            collection,
            lambda record: ExecMetrics.from_result(record.result),
            ExecMetrics.add,
            ExecMetrics(),
        )

    def run(self, items: Iterable[A]) -> list[B]:
        """Drive ``items`` to convergence and return one output per item."""
        self._reports = []
        convergence_id = uuid.uuid4().hex[:12]

        with LogContext(convergence_id=convergence_id, executor=self.executor.name):
            source = self.engine.parallelize(items)
            logger.info(
                "convergence.started",
                items=len(source),
                partitions=source.num_partitions,
                max_passes=self.max_passes,
                eligibility=self.eligibility.value,
            )

            previous: PartitionedCollection[WorkRecord[A, C, B]] | None = None
            current: PartitionedCollection[WorkRecord[A, C, B]] | None = None
            executed = len(source)
            remaining = self.max_passes
            pass_index = 0

            try:
                current = self.engine.persist(self.engine.map_partitions(source, self._first_pass))
                while True:
                    metrics = self._metrics(current)
                    self._reports.append(PassReport(pass_index, executed, metrics))
                    logger.info(
                        "convergence.pass_complete", pass_index=pass_index, executed=executed, **metrics.to_dict()
                    )

                    if previous is not None:
                        self.engine.unpersist(previous)
                        previous = None

                    settled = self.eligibility.is_settled(metrics)
                    if remaining == 0 or settled:
                        logger.info(
                            "convergence.converged" if metrics.is_pure_success else "convergence.exhausted",
                            passes=pass_index + 1,
                            settled=settled,
                            **metrics.to_dict(),
                        )
                        return [record.output for record in self.engine.collect(current)]

                    executed = sum(1 for record in current if self.eligibility.is_eligible(record.result))
                    previous = current
                    current = self.engine.persist(self.engine.map_partitions(current, self._retry_pass))
                    remaining -= 1
                    pass_index += 1
            finally:
                # release live checkpoints on every exit path
                for collection in (previous, current):
                    if collection is not None:
                        self.engine.unpersist(collection)


def run_convergence(
    items: Iterable[A],
    operation: Callable[[A], Result[C]],
    integrate: Callable[[A, Result[C]], B],
    max_passes: int,
    executor: Executor | None = None,
    recover: Callable[[A], C | None] | None = None,
    *,
    engine: CollectionEngine | None = None,
    eligibility: RetryEligibility = RetryEligibility.UNRESOLVED,
) -> list[B]:
    """Functional entry point: build a :class:`ConvergenceDriver` and run it."""
    driver: ConvergenceDriver[A, C, B] = ConvergenceDriver(
        operation,
        integrate,
        max_passes,
        executor=executor,
        recover=recover,
        engine=engine,
        eligibility=eligibility,
    )
    return driver.run(items)

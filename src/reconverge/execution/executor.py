"""Bounded retry executor with a per-worker circuit breaker and throttle.

An :class:`Executor` is a shared, immutable handle around an
:class:`ExecutorConfig`. All mutable state (circuit flag, exhausted-call
counter, rate-limit timing) lives in :class:`ExecutorWorker` handles created
with :meth:`Executor.worker`. Each concurrency unit (thread, partition task)
owns one worker, so the breaker needs no locking and trips independently per
worker. ``Executor.run`` keeps one worker per calling thread.

States (per worker):
    CLOSED: calls run, with up to ``attempt`` tries each
    OPEN:   calls return the skipped result without running; never recovers

Example:
    >>> from reconverge.core.result import Ok, Err
    >>> from reconverge.execution import Executor
    >>>
    >>> executor = Executor.build().name("lookup").attempt(3).break_after(5).get_or_create()
    >>> worker = executor.worker()
    >>> result = worker.run(lambda: Ok(21 * 2))
    >>> result.is_success, result.value
    (True, 42)
"""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from reconverge.core.errors import WorkerOwnershipError, error_message
from reconverge.core.logging import get_logger
from reconverge.core.result import Err, Ok, Result
from reconverge.execution.config import ExecutorBuilder, ExecutorConfig
from reconverge.execution.models import ExecutionResult

T = TypeVar("T")

Operation = Callable[[], Result[T]]

logger = get_logger(__name__)


@dataclass
class ExecutorState:
    """Mutable breaker and throttle state of one worker."""

    circuit_open: bool = False
    consecutive_exhausted_failures: int = 0
    last_call_started_at: float | None = None


class ExecutorWorker:
    """Single-owner execution handle carrying its own :class:`ExecutorState`.

    A worker must not be entered by two threads at once; doing so raises
    :class:`WorkerOwnershipError` instead of corrupting the breaker state.
    Sequential use from different threads (e.g. successive pool tasks that
    process the same partition) is allowed.
    """

    def __init__(self, config: ExecutorConfig, worker_id: int = 0):
        self.config = config
        self.worker_id = worker_id
        self.state = ExecutorState()
        self._busy = threading.Lock()

    @property
    def circuit_open(self) -> bool:
        return self.state.circuit_open

    def run(self, operation: Operation[T]) -> ExecutionResult[T]:
        """Execute ``operation`` with retries, honoring the circuit and throttle.

        The operation returns Ok/Err; a raised exception counts as an Err and
        a plain return value counts as Ok. Nothing raised by the operation
        escapes this method.
        """
        if not self._busy.acquire(blocking=False):
            raise WorkerOwnershipError(
                f"Worker {self.worker_id} of executor '{self.config.name}' is already running"
            )
        try:
            return self._run(operation)
        finally:
            self._busy.release()

    def _run(self, operation: Operation[T]) -> ExecutionResult[T]:
        state = self.state
        if state.circuit_open:
            return ExecutionResult.skipped()

        tried = 0
        while True:
            tried += 1
            outcome = self._invoke(operation)

            if isinstance(outcome, Ok):
                return ExecutionResult.success(outcome.value)

            if tried < self.config.attempt:
                logger.debug(
                    "executor.attempt_failed",
                    executor=self.config.name,
                    worker=self.worker_id,
                    attempt=tried,
                    error=error_message(outcome.error),
                )
                if self.config.backoff:
                    time.sleep(self.config.backoff)
                continue

            return self._exhausted(tried, outcome.error)

    def _invoke(self, operation: Operation[T]) -> Result[T]:
        min_interval = self.config.min_interval
        if min_interval is not None:
            self.state.last_call_started_at = time.monotonic()

        try:
            outcome: Any = operation()
        except Exception as e:
            outcome = Err(e)
        else:
            # plain return values count as success
            if not isinstance(outcome, (Ok, Err)):
                outcome = Ok(outcome)

        if min_interval is not None:
            remaining = min_interval - (time.monotonic() - self.state.last_call_started_at)
            if remaining > 0:
                time.sleep(remaining)

        return outcome

    def _exhausted(self, tried: int, error: Exception) -> ExecutionResult[Any]:
        state = self.state
        state.consecutive_exhausted_failures += 1
        message = error_message(error)

        logger.debug(
            "executor.call_exhausted",
            executor=self.config.name,
            worker=self.worker_id,
            attempts=tried,
            exhausted_calls=state.consecutive_exhausted_failures,
            error=message,
        )

        threshold = self.config.break_after_n_failure
        if threshold is not None and state.consecutive_exhausted_failures >= threshold and not state.circuit_open:
            state.circuit_open = True
            logger.warning(
                "executor.circuit_opened",
                executor=self.config.name,
                worker=self.worker_id,
                exhausted_calls=state.consecutive_exhausted_failures,
            )

        return ExecutionResult.failure(tried, message)

    def __repr__(self) -> str:
        return (
            f"ExecutorWorker(executor={self.config.name!r}, worker_id={self.worker_id}, "
            f"circuit_open={self.state.circuit_open})"
        )


class Executor:
    """Shared executor handle; hands out independent workers.

    ``Executor.run`` executes on the calling thread's own worker, created on
    first use and kept for the life of the thread, so threads never share a
    circuit. Partition tasks that hop between pool threads take an explicit
    worker via :meth:`worker` instead.
    """

    def __init__(self, config: ExecutorConfig):
        self.config = config
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._local = threading.local()

    @staticmethod
    def build() -> ExecutorBuilder:
        """Start a fluent :class:`ExecutorBuilder`."""
        return ExecutorBuilder()

    @property
    def name(self) -> str:
        return self.config.name

    def worker(self) -> ExecutorWorker:
        """Create a fresh worker with a closed circuit."""
        with self._lock:
            worker_id = next(self._ids)
        return ExecutorWorker(self.config, worker_id)

    @property
    def thread_worker(self) -> ExecutorWorker:
        """The calling thread's worker, created on first access."""
        worker = getattr(self._local, "worker", None)
        if worker is None:
            worker = self.worker()
            self._local.worker = worker
        return worker

    def run(self, operation: Operation[T]) -> ExecutionResult[T]:
        """Run ``operation`` on the calling thread's worker."""
        return self.thread_worker.run(operation)

    def __repr__(self) -> str:
        return f"Executor({self.config!r})"

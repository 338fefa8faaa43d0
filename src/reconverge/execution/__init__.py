"""Resilient execution: retrying executor and multi-pass convergence driver.

Related modules:
    config.py      : ExecutorConfig + fluent ExecutorBuilder
    models.py      : ExecutionResult, ExecutionInfo, ExecMetrics
    executor.py    : Executor, ExecutorWorker, ExecutorState
    engine.py      : CollectionEngine protocol + LocalCollectionEngine
    convergence.py : ConvergenceDriver, run_convergence
"""

from reconverge.execution.config import ExecutorBuilder, ExecutorConfig
from reconverge.execution.convergence import (
    ConvergenceDriver,
    PassReport,
    RetryEligibility,
    WorkRecord,
    default_executor,
    run_convergence,
)
from reconverge.execution.engine import CollectionEngine, LocalCollectionEngine, PartitionedCollection
from reconverge.execution.executor import Executor, ExecutorState, ExecutorWorker
from reconverge.execution.models import ExecMetrics, ExecutionInfo, ExecutionResult

__all__ = [
    "ExecutorBuilder",
    "ExecutorConfig",
    "ConvergenceDriver",
    "PassReport",
    "RetryEligibility",
    "WorkRecord",
    "default_executor",
    "run_convergence",
    "CollectionEngine",
    "LocalCollectionEngine",
    "PartitionedCollection",
    "Executor",
    "ExecutorState",
    "ExecutorWorker",
    "ExecMetrics",
    "ExecutionInfo",
    "ExecutionResult",
]

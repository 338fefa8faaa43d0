"""
reconverge - bounded retries, per-worker circuit breaking, and multi-pass
convergence over partitioned collections.
"""

__version__ = "0.1.0"

from reconverge.core.result import Err, Ok, Result, try_result  # noqa: E402
from reconverge.execution import (  # noqa: E402
    ConvergenceDriver,
    ExecMetrics,
    ExecutionInfo,
    ExecutionResult,
    Executor,
    ExecutorConfig,
    RetryEligibility,
    run_convergence,
)

__all__ = [
    "__version__",
    "Err",
    "Ok",
    "Result",
    "try_result",
    "ConvergenceDriver",
    "ExecMetrics",
    "ExecutionInfo",
    "ExecutionResult",
    "Executor",
    "ExecutorConfig",
    "RetryEligibility",
    "run_convergence",
]

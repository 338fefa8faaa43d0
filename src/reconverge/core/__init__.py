"""Core primitives: errors, Result envelope, logging, settings."""

from reconverge.core.errors import (
    CircuitOpenError,
    ConfigError,
    ErrorCategory,
    ExecutionError,
    ExecutionFailedError,
    InvalidConfigError,
    MissingConfigError,
    ReconvergeError,
    WorkerOwnershipError,
)
from reconverge.core.result import Err, Ok, Result, partition_results, try_result

__all__ = [
    "CircuitOpenError",
    "ConfigError",
    "ErrorCategory",
    "ExecutionError",
    "ExecutionFailedError",
    "InvalidConfigError",
    "MissingConfigError",
    "ReconvergeError",
    "WorkerOwnershipError",
    "Err",
    "Ok",
    "Result",
    "partition_results",
    "try_result",
]

"""Outcome records for single executions and their aggregate metrics.

Every call to :meth:`Executor.run` yields an :class:`ExecutionResult`: either
a value, or an :class:`ExecutionInfo` explaining why there is none. The
convergence driver folds results into :class:`ExecMetrics` to decide whether
another pass is needed.

Example:
    >>> r = ExecutionResult.success(42)
    >>> r.is_success, r.to_outcome().unwrap()
    (True, 42)
    >>> ExecMetrics.from_result(ExecutionResult.skipped()).skipped
    1
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Any, Generic, Iterable, TypeVar

from reconverge.core.errors import CircuitOpenError, ExecutionFailedError
from reconverge.core.result import Err, Ok, Result

T = TypeVar("T")

_MISSING: Any = object()


@dataclass(frozen=True, slots=True)
class ExecutionInfo:
    """Why an execution produced no value.

    Attributes:
        nb_attempt: Attempts actually made (0 when skipped)
        skipped: True when the circuit was open and nothing ran
        last_error: Message of the final failure (None when skipped)
    """

    nb_attempt: int
    skipped: bool = False
    last_error: str | None = None

    def __post_init__(self) -> None:
        if self.nb_attempt < 0:
            raise ValueError(f"nb_attempt must be >= 0, got {self.nb_attempt}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "nb_attempt": self.nb_attempt,
            "skipped": self.skipped,
            "last_error": self.last_error,
        }


@dataclass(frozen=True, slots=True)
class ExecutionResult(Generic[T]):
    """Outcome of one executor call: a value or an ExecutionInfo, never both.

    ``None`` is a legitimate success value, so presence is tracked
    separately from the value itself. Build instances with
    :meth:`success`, :meth:`failure` or :meth:`skipped`.
    """

    _value: Any = _MISSING
    info: ExecutionInfo | None = None

    def __post_init__(self) -> None:
        has_value = self._value is not _MISSING
        if has_value == (self.info is not None):
            raise ValueError("ExecutionResult needs exactly one of a value or an ExecutionInfo")

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def success(cls, value: T) -> ExecutionResult[T]:
        return cls(value, None)

    @classmethod
    def failure(cls, nb_attempt: int, last_error: str) -> ExecutionResult[T]:
        return cls(_MISSING, ExecutionInfo(nb_attempt=nb_attempt, skipped=False, last_error=last_error))

    @classmethod
    def skipped(cls) -> ExecutionResult[T]:
        return SKIPPED

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def is_success(self) -> bool:
        return self._value is not _MISSING

    @property
    def is_skipped(self) -> bool:
        return self.info is not None and self.info.skipped

    @property
    def value(self) -> T:
        """The success value; raises ValueError when there is none."""
        if self._value is _MISSING:
            raise ValueError("ExecutionResult has no value")
        return self._value

    def to_outcome(self) -> Result[T]:
        """Convert to a plain Ok/Err, dropping the attempt metadata."""
        info = self.info
        if info is None:
            return Ok(self._value)
        if info.skipped:
            return Err(CircuitOpenError())
        return Err(ExecutionFailedError(info.last_error or "unknown error", info.nb_attempt))

    def to_dict(self) -> dict[str, Any]:
        if self.info is None:
            return {"success": True, "value": self._value}
        return {"success": False, "info": self.info.to_dict()}

    def __repr__(self) -> str:
        if self.is_success:
            return f"ExecutionResult.success({self._value!r})"
        return f"ExecutionResult({self.info!r})"


SKIPPED: ExecutionResult[Any] = ExecutionResult(_MISSING, ExecutionInfo(nb_attempt=0, skipped=True, last_error=None))


@dataclass(frozen=True, slots=True)
class ExecMetrics:
    """Counters summarizing a collection of execution results.

    ``add`` is field-wise addition, so metrics can be reduced in any order
    and grouping; ``ExecMetrics()`` is the identity.
    """

    success: int = 0
    skipped: int = 0
    failed: int = 0
    total_attempts: int = 0

    def __post_init__(self) -> None:
        for name in ("success", "skipped", "failed", "total_attempts"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @classmethod
    def from_result(cls, result: ExecutionResult[Any]) -> ExecMetrics:
        """Contribution of a single result."""
        info = result.info
        if info is None:
            return cls(success=1)
        if info.skipped:
            return cls(skipped=1)
        return cls(failed=1, total_attempts=info.nb_attempt)

    @classmethod
    def combine(cls, metrics: Iterable[ExecMetrics]) -> ExecMetrics:
        return reduce(ExecMetrics.add, metrics, cls())

    @property
    def is_pure_success(self) -> bool:
        return self.skipped == 0 and self.failed == 0

    @property
    def total(self) -> int:
        return self.success + self.skipped + self.failed

    def add(self, other: ExecMetrics) -> ExecMetrics:
        return ExecMetrics(
            success=self.success + other.success,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
            total_attempts=self.total_attempts + other.total_attempts,
        )

    __add__ = add

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "skipped": self.skipped,
            "failed": self.failed,
            "total_attempts": self.total_attempts,
        }

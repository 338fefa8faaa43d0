"""Executor configuration and its fluent builder.

Example:
    >>> from reconverge.execution import Executor
    >>>
    >>> executor = (
    ...     Executor.build()
    ...     .name("geocoder")
    ...     .attempt(3)
    ...     .backoff(0.5)
    ...     .break_after(20)
    ...     .limit_rate(10)
    ...     .get_or_create()
    ... )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from reconverge.core.errors import InvalidConfigError, MissingConfigError
from reconverge.core.logging import get_logger

if TYPE_CHECKING:
    from reconverge.execution.executor import Executor

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutorConfig:
    """Validated, immutable executor settings.

    Attributes:
        name: Label identifying the executor in logs
        attempt: Total attempts per call (first try plus retries)
        backoff: Fixed delay in seconds before each retry
        exponential_backoff: Recorded but not applied by the executor
        break_after_n_failure: Exhausted calls per worker before the circuit opens
        rate_limit_per_seconds: Max invocations per second per worker
    """

    name: str
    attempt: int = 1
    backoff: float | None = None
    exponential_backoff: bool = False
    break_after_n_failure: int | None = None
    rate_limit_per_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise MissingConfigError("name", "Executor configuration requires a non-empty name")
        if self.attempt < 1:
            raise InvalidConfigError("attempt", self.attempt)
        if self.backoff is not None and self.backoff < 0:
            raise InvalidConfigError("backoff", self.backoff)
        if self.break_after_n_failure is not None and self.break_after_n_failure < 1:
            raise InvalidConfigError("break_after_n_failure", self.break_after_n_failure)
        if self.rate_limit_per_seconds is not None and self.rate_limit_per_seconds <= 0:
            raise InvalidConfigError("rate_limit_per_seconds", self.rate_limit_per_seconds)

    @property
    def min_interval(self) -> float | None:
        """Minimum seconds between invocations, when rate limited."""
        if self.rate_limit_per_seconds is None:
            return None
        return 1.0 / self.rate_limit_per_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "attempt": self.attempt,
            "backoff": self.backoff,
            "exponential_backoff": self.exponential_backoff,
            "break_after_n_failure": self.break_after_n_failure,
            "rate_limit_per_seconds": self.rate_limit_per_seconds,
        }


_UNSET: Any = object()


@dataclass(frozen=True)
class ExecutorBuilder:
    """Immutable fluent builder; every setter returns a new builder.

    Nothing is validated until :meth:`get_or_create`, which refuses a
    builder without a name and coerces ``attempt`` values below 1 to 1.
    """

    _name: str | None = None
    _attempt: int | None = None
    _backoff: float | None = None
    _exponential_backoff: bool = False
    _break_after: int | None = None
    _rate_limit: float | None = None

    def name(self, name: str = _UNSET) -> ExecutorBuilder:
        """Set the executor name; a random UUID when called without one."""
        if name is _UNSET:
            name = str(uuid.uuid4())
        return replace(self, _name=name)

    def attempt(self, n: int) -> ExecutorBuilder:
        return replace(self, _attempt=n)

    def backoff(self, seconds: float) -> ExecutorBuilder:
        return replace(self, _backoff=seconds)

    def with_exponential_backoff(self) -> ExecutorBuilder:
        return replace(self, _exponential_backoff=True)

    def break_after(self, nb_failure: int) -> ExecutorBuilder:
        return replace(self, _break_after=nb_failure)

    def limit_rate(self, nb_call_per_seconds: float) -> ExecutorBuilder:
        return replace(self, _rate_limit=nb_call_per_seconds)

    @property
    def is_valid(self) -> bool:
        return self._name is not None

    def to_config(self) -> ExecutorConfig:
        """Validate and freeze the builder into an ExecutorConfig.

        Raises:
            MissingConfigError: No name was set
            InvalidConfigError: A set value is out of range
        """
        if not self.is_valid:
            raise MissingConfigError("name", "Invalid executor configuration: a name is required")

        attempt = self._attempt if self._attempt is not None and self._attempt > 1 else 1

        if self._exponential_backoff:
            logger.warning(
                "executor.exponential_backoff_ignored",
                executor=self._name,
                backoff=self._backoff,
            )

        return ExecutorConfig(
            name=self._name,
            attempt=attempt,
            backoff=self._backoff,
            exponential_backoff=self._exponential_backoff,
            break_after_n_failure=self._break_after,
            rate_limit_per_seconds=self._rate_limit,
        )

    def get_or_create(self) -> Executor:
        from reconverge.execution.executor import Executor

        return Executor(self.to_config())

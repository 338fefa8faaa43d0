"""
Ok/Err values returned by operations handed to the executor.

An operation reports failure as a value rather than by raising, so one bad
item never aborts a batch and the executor alone decides whether to retry.
``ExecutionResult.to_outcome()`` converts the executor's richer record back
into one of these, which is what ``integrate`` functions receive.

    >>> Ok(10).map(lambda x: x * 2).unwrap()
    20
    >>> Err(ConnectionError("reset")).unwrap_or(0)
    0
    >>> try_result(lambda: int("x")).is_err()
    True

Tags:
    result-pattern, error-handling, reconverge
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

from reconverge.core.errors import ReconvergeError, error_message

T = TypeVar("T")
U = TypeVar("U")


def _error_dict(error: Exception) -> dict[str, Any]:
    if isinstance(error, ReconvergeError):
        return error.to_dict()
    return {"error_type": type(error).__name__, "message": str(error)}


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success carrying ``value`` (``None`` included)."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return self.value

    def unwrap_err(self) -> Exception:
        raise ValueError(f"unwrap_err() called on {self!r}")

    def expect(self, message: str) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return f(self.value)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return self

    def or_else(self, f: Callable[[Exception], Result[T]]) -> Result[T]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failure carrying the exception; it is only raised by ``unwrap``."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return f(self.error)

    def unwrap_err(self) -> Exception:
        return self.error

    def expect(self, message: str) -> T:
        """Raise ValueError(``message: <error>``) chained to the error."""
        raise ValueError(f"{message}: {error_message(self.error)}") from self.error

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return Err(f(self.error))

    def or_else(self, f: Callable[[Exception], Result[T]]) -> Result[T]:
        return f(self.error)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "error": _error_dict(self.error)}

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def is_result(value: Any) -> bool:
    """True when value is an Ok or an Err."""
    return isinstance(value, (Ok, Err))


def try_result(f: Callable[[], T]) -> Result[T]:
    """Call ``f`` and capture its return value or raised exception.

    Adapts exception-raising code into an executor operation:

        executor.run(lambda: try_result(lambda: geocode(address)))
    """
    try:
        value = f()
    except Exception as e:
        return Err(e)
    return Ok(value)


def partition_results(results: Iterable[Result[T]]) -> tuple[list[T], list[Exception]]:
    """Split results into (values, errors), each in input order.

        >>> partition_results([Ok(1), Err(ValueError("x")), Ok(3)])
        ([1, 3], [ValueError('x')])
    """
    values: list[T] = []
    errors: list[Exception] = []
    for result in results:
        if result.is_ok():
            values.append(result.unwrap())
        else:
            errors.append(result.unwrap_err())
    return values, errors


__all__ = [
    "Ok",
    "Err",
    "Result",
    "is_result",
    "try_result",
    "partition_results",
]

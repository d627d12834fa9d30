"""
Result envelope for best-effort operations.

Provides a typed ``Result[T]`` (``Ok`` / ``Err``) used where a failure must
be *recorded* rather than *raised*: dedup marker writes, for example, are
allowed to fail one id at a time without failing the cycle.

Manifesto:
    - **Explicit partial success:** a batch of writes returns one Result per
      item, the caller decides whether failures matter
    - **Batch-friendly:** ``partition_results()`` splits values from errors
    - **Bridge:** ``try_result()`` turns exception-throwing calls into Results

Examples:
    >>> from logsync.core.result import Ok, Err, partition_results
    >>> values, errors = partition_results([Ok(1), Err(ValueError("x")), Ok(2)])
    >>> values
    [1, 2]
    >>> len(errors)
    1
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result holding ``value``."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result holding the ``error`` that was raised."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """
    Execute a zero-argument callable and wrap the outcome.

    Examples:
        >>> import json
        >>> try_result(lambda: json.loads('{"a": 1}')).value
        {'a': 1}
        >>> try_result(lambda: json.loads('invalid')).is_err()
        True
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


def partition_results(
    results: list[Result[T]],
) -> tuple[list[T], list[Exception]]:
    """
    Partition results into successes and failures.

    Args:
        results: List of Result[T] to partition

    Returns:
        Tuple of (list of successful values, list of errors)
    """
    values = []
    errors = []
    for result in results:
        match result:
            case Ok(value):
                values.append(value)
            case Err(error):
                errors.append(error)
    return values, errors


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result",
    "partition_results",
]

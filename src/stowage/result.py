"""
Result envelope for provider outcomes.

Every provider operation resolves to ``Ok(value)`` or ``Err(error)``. Backend
failures are values, not exceptions: a caller awaiting ``provider.save(doc)``
never has a backend error raised at it, it receives an ``Err`` carrying the
normalized domain error (the same error its callback and the ``save`` event
receive).

Manifesto:
    - **Explicit over Implicit:** No hidden backend exceptions
    - **Batch-friendly:** ``collect_results()`` turns N per-item outcomes into
      one aggregated outcome
    - **Callback parity:** ``as_args()`` yields the ``(error, value)`` pair
      delivered to callbacks and event listeners

Architecture:
    ::

        ┌─────────────────┬─────────────────┬─────────────────────────┐
        │     Ok[T]       │     Err[T]      │     Utilities           │
        ├─────────────────┼─────────────────┼─────────────────────────┤
        │ • value: T      │ • error: Exc    │ • collect_results()     │
        │ • map()         │ • map_err()     │ • partition_results()   │
        │ • unwrap()      │ • unwrap_or()   │                         │
        └─────────────────┴─────────────────┴─────────────────────────┘

Examples:
    >>> result = await provider.find_by_key("alice")
    >>> match result:
    ...     case Ok(doc):
    ...         print(doc["name"])
    ...     case Err(error):
    ...         print(error.message)

Tags:
    result-pattern, error-handling, batch-processing, stowage

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from stowage.errors import StorageError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Successful outcome containing a value.

    Examples:
        >>> Ok(10).map(lambda x: x * 2).unwrap()
        20
        >>> Ok(1).as_args()
        (None, 1)
    """

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    @property
    def error(self) -> None:
        return None

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return self

    def as_args(self) -> tuple[None, T]:
        """Return the ``(error, value)`` pair delivered to callbacks."""
        return None, self.value

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed outcome containing the normalized error.

    Examples:
        >>> Err(ValueError("boom")).unwrap_or(0)
        0
    """

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    @property
    def value(self) -> None:
        return None

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform the error."""
        return Err(f(self.error))

    def as_args(self) -> tuple[Exception, None]:
        return self.error, None

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, StorageError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def from_outcome(error: Exception | None, value: Any = None) -> Result[Any]:
    """Build a Result from a callback-style ``(error, value)`` pair."""
    if error is not None:
        return Err(error)
    return Ok(value)


def collect_results(results: list[Result[T]]) -> Result[list[T]]:
    """
    Collect a list of Results into a Result of list (fail-fast).

    Values keep input order. The first Err in input order wins.

    Examples:
        >>> collect_results([Ok(1), Ok(2)]).unwrap()
        [1, 2]
        >>> str(collect_results([Ok(1), Err(ValueError("a")), Err(ValueError("b"))]).error)
        'a'
    """
    values = []
    for result in results:
        match result:
            case Ok(value):
                values.append(value)
            case Err(error):
                return Err(error)
    return Ok(values)


def partition_results(
    results: list[Result[T]],
) -> tuple[list[T], list[Exception]]:
    """Partition results into successes and failures."""
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
    "Result",
    "Ok",
    "Err",
    "from_outcome",
    "collect_results",
    "partition_results",
]

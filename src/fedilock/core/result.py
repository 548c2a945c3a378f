"""
Result envelope for explicit success/failure handling.

``Ok[T]`` / ``Err[T]`` make a fallible step visible in the type instead of in
exception unwinding.  The driver selector uses it for backend construction:
``build_driver()`` returns ``Ok(driver)`` or ``Err(BackendConstructionError)``
and the selection loop branches on it.

Manifesto:
    - **Explicit over Implicit:** the fallback decision is a visible branch
    - **Exceptions at the edge:** ``try_result_with`` bridges client libraries
      that raise into the Result world
    - **Pattern matching:** ``match result: case Ok(driver): ... case Err(e): ...``

Usage:
    from fedilock.core.result import Ok, Err, Result

    def build() -> Result[LockDriver]:
        ...

    match build():
        case Ok(driver):
            use(driver)
        case Err(error):
            log_error(error)

Tags:
    result-pattern, error-handling, functional, fedilock

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Successful result containing a value.

    Examples:
        >>> Ok(42).unwrap()
        42
    """

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing an exception.

    Examples:
        >>> result = Err(ValueError("bad"))
        >>> result.is_err()
        True
        >>> result.unwrap_or(0)
        0
    """

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result_with(
    f: Callable[[], T],
    error_mapper: Callable[[Exception], Exception] | None = None,
) -> Result[T]:
    """
    Execute a zero-argument callable and wrap the outcome.

    Any exception becomes ``Err``; ``error_mapper`` converts it first
    (e.g. into a ``BackendConstructionError`` chaining the original).

    Examples:
        >>> try_result_with(lambda: int("7")).unwrap()
        7
        >>> try_result_with(lambda: int("x"), lambda e: RuntimeError(str(e))).is_err()
        True
    """
    try:
        return Ok(f())
    except Exception as e:
        if error_mapper is not None:
            return Err(error_mapper(e))
        return Err(e)


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result_with",
]

"""
Tagged success/error values returned by every public session operation.

Failures have to cross the boundary between the native engine and the caller
faithfully, so public operations never raise: they return either
:class:`Success` or :class:`Error` and callers branch on the tag.

Example:
    >>> result = session.generate_response(conversation)
    >>> if result.is_success:
    ...     print(result.value)
    ... else:
    ...     print(f"{result.code.name}: {result.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from .exceptions import ErrorCode, LlamaSessionError, map_error_code

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome carrying ``value`` (``None`` for void operations)."""

    value: T = None  # type: ignore[assignment]

    @property
    def is_success(self) -> bool:
        return True

    @property
    def is_error(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Success[U]:
        return Success(fn(self.value))


@dataclass(frozen=True)
class Error:
    """
    Failed outcome.

    Attributes:
        code: One of the closed :class:`ErrorCode` values
        message: Message intended to be shown or logged verbatim
    """

    code: ErrorCode
    message: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", self.code.description)

    @property
    def is_success(self) -> bool:
        return False

    @property
    def is_error(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raise the exception matching :attr:`code`."""
        raise map_error_code(self.code, self.message)

    def unwrap_or(self, default: Any) -> Any:
        return default

    def map(self, fn: Callable[[Any], Any]) -> Error:
        return self

    @classmethod
    def from_exception(cls, exc: LlamaSessionError) -> Error:
        return cls(exc.code, exc.message)

    def __str__(self) -> str:
        return f"{self.code.name}: {self.message}"


Result = Union[Success[T], Error]

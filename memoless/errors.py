"""Error taxonomy and the result type returned by network-facing calls."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from .encoding.decimal_codec import to_decimal

T = TypeVar("T")


class ErrorKind(str, Enum):
    INPUT = "input"
    ENCODING_MISMATCH = "encoding_mismatch"
    NETWORK_TRANSIENT = "network_transient"
    BROADCAST_FAILURE = "broadcast_failure"
    EXPIRED = "expired"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class EngineError:
    """An expected failure, carried as data rather than raised."""

    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def recoverable(self) -> bool:
        return self.kind in (ErrorKind.INPUT, ErrorKind.ENCODING_MISMATCH)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, **details: Any
    ) -> "Result[T]":
        return cls(error=EngineError(kind=kind, message=message, details=details))


class InvalidTransition(RuntimeError):
    """Raised when a workflow step is invoked from the wrong state."""


class ResponseFormatError(ValueError):
    """Raised by the response parser on malformed node JSON."""


def check_transfer_amount(amount: str, deposit: bool) -> None:
    """Enforce the deposit/transfer amount asymmetry.

    Deposit-type messages may carry a zero amount (memo registration relies
    on it). Value-transfer messages must not.

    Raises:
        ValueError: for a zero or negative transfer, or a negative deposit.
    """
    value = to_decimal(amount)
    if value < 0:
        raise ValueError(f"Amount must not be negative: {amount}")
    if value == 0 and not deposit:
        raise ValueError("Value-transfer amount must be greater than zero")

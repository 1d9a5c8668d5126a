from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence


class RejectCode(str, Enum):
    """Typed rejection classifications for a single row."""
    invalid_timestamp = "invalid_timestamp"
    empty_point = "empty_point"
    malformed_row = "malformed_row"


class XInfluxError(Exception):
    """Base exception for every error raised by this package."""


@dataclass(frozen=True, slots=True)
class ColumnNotFound:
    """One unresolved (or invalid) column reference."""
    role: str           # measure, tag, time, series...
    reference: str      # what the user asked for
    reason: str = "not found"

    def __str__(self) -> str:
        return f"{self.role} column {self.reference!r}: {self.reason}"


class ConfigurationError(XInfluxError):
    """
    Fatal: the user configuration cannot be applied to the input.

    Carries every problem found, not just the first one.
    """

    def __init__(self, problems: Sequence[ColumnNotFound | str]) -> None:
        self.problems = tuple(problems)
        super().__init__("; ".join(str(p) for p in self.problems) or "invalid configuration")


class RowError(XInfluxError):
    """A single row could not become a point. Recovered by skipping the row."""
    code: RejectCode = RejectCode.malformed_row

    def __init__(self, detail: str, *, source_row: int | None = None) -> None:
        self.detail = detail
        self.source_row = source_row
        super().__init__(detail)


class TimestampParseError(RowError):
    """Raised when text does not match the timestamp pattern."""
    code = RejectCode.invalid_timestamp

    def __init__(self, text: str, fmt: str, *, source_row: int | None = None) -> None:
        self.text = text
        self.fmt = fmt
        super().__init__(f"timestamp {text!r} does not match format {fmt!r}", source_row=source_row)


class EmptyPointError(RowError):
    """Raised when a row has no non-empty field value."""
    code = RejectCode.empty_point


class RowShapeError(RowError):
    """Raised when a row has more values than the header has columns."""
    code = RejectCode.malformed_row


class TransportError(XInfluxError):
    """Raised for connection failures, timeouts and non-2xx write responses."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class BatchFailedError(XInfluxError):
    """Raised when a batch exhausted its attempts and failures are terminal."""

    def __init__(self, attempts: int, last_error: TransportError) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"batch failed after {attempts} attempt(s): {last_error}")

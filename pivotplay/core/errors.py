"""PivotPlay error types.

Construction errors (bad coordinates, degenerate corners) are raised.
Transport errors are raised by channels and caught by the transfer engine,
where they drive the retry policy. Storage errors are carried inside
``StoreResult`` values rather than raised past the store boundary.
"""

from __future__ import annotations

import enum


class ErrorSeverity(enum.IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def label(self) -> str:
        return self.name.lower()


class PivotPlayError(Exception):
    """Base class for all PivotPlay errors."""

    severity: ErrorSeverity = ErrorSeverity.ERROR
    should_retry: bool = False

    def __init__(self, message: str, *, code: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.code = code or type(self).__name__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PivotPlayError):
            return NotImplemented
        return type(self) is type(other) and self.code == other.code and self.message == other.message

    def __hash__(self) -> int:
        return hash((type(self), self.code, self.message))


class InvalidCoordinatesError(PivotPlayError, ValueError):
    severity = ErrorSeverity.INFO


class DegenerateCornersError(PivotPlayError, ValueError):
    """Four corners that cannot define a pitch coordinate system."""

    severity = ErrorSeverity.INFO


class TransportError(PivotPlayError):
    """A single delivery attempt failed. Recoverable."""

    severity = ErrorSeverity.WARNING
    should_retry = True

    @classmethod
    def unreachable(cls) -> TransportError:
        return cls("Counterpart device is not reachable", code="unreachable")

    @classmethod
    def ack_timeout(cls, seconds: float) -> TransportError:
        return cls(f"No acknowledgement within {seconds:g}s", code="ack_timeout")

    @classmethod
    def channel(cls, detail: str) -> TransportError:
        return cls(f"Data transfer failed: {detail}", code="channel")


class StorageError(PivotPlayError):
    severity = ErrorSeverity.ERROR

    @classmethod
    def save_failed(cls, detail: str) -> StorageError:
        return cls(f"Failed to save workout: {detail}", code="save_failed")

    @classmethod
    def fetch_failed(cls, detail: str) -> StorageError:
        return cls(f"Failed to load workouts: {detail}", code="fetch_failed")

    @classmethod
    def delete_failed(cls, detail: str) -> StorageError:
        return cls(f"Failed to delete workouts: {detail}", code="delete_failed")

    @classmethod
    def corrupt_data(cls, detail: str) -> StorageError:
        err = cls(f"Workout data is corrupted: {detail}", code="corrupt_data")
        err.severity = ErrorSeverity.WARNING
        return err

    @classmethod
    def validation_failed(cls, detail: str) -> StorageError:
        err = cls(f"Data validation failed: {detail}", code="validation_failed")
        err.severity = ErrorSeverity.WARNING
        return err

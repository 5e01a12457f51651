"""Storage interface (port) for persisting received workouts."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Iterable, Protocol, TypeVar

if TYPE_CHECKING:
    from pivotplay.core.errors import StorageError
    from pivotplay.core.models import WorkoutPayload

T = TypeVar("T")


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of a store operation. Stores report failures, never raise."""

    ok: bool
    value: T | None = None
    error: StorageError | None = None

    @classmethod
    def success(cls, value: Any = None) -> StoreResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: StorageError) -> StoreResult:
        return cls(ok=False, error=error)


class WorkoutStore(Protocol):
    """Port: durable workout sessions keyed by workout id."""

    def save(self, workout: WorkoutPayload) -> StoreResult[WorkoutPayload]: ...

    def fetch(self, workout_id: uuid.UUID) -> StoreResult[WorkoutPayload]: ...

    def fetch_all(self) -> StoreResult[list[WorkoutPayload]]:
        """Newest first."""
        ...

    def delete(self, workout_ids: Iterable[uuid.UUID]) -> StoreResult[int]: ...

    def exists(self, workout_id: uuid.UUID) -> bool: ...

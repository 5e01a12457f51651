"""PivotPlay core data models.

These are plain dataclasses with no framework dependencies.
JSON is converted to/from these at the boundary (see ``core.codec``).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from pivotplay.core.errors import DegenerateCornersError, InvalidCoordinatesError


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidCoordinatesError(f"latitude {self.latitude} out of range")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidCoordinatesError(f"longitude {self.longitude} out of range")

    @property
    def has_fix(self) -> bool:
        """(0, 0) is what the location recorder reports when it has no fix."""
        return not (self.latitude == 0.0 and self.longitude == 0.0)


@dataclass(frozen=True)
class TrackSample:
    position: GeoPoint
    timestamp: datetime
    horizontal_accuracy: float = 0.0


@dataclass(frozen=True)
class HeartRateSample:
    value: float  # beats per minute
    timestamp: datetime

    @property
    def is_plausible(self) -> bool:
        return 0.0 < self.value < 300.0


@dataclass(frozen=True)
class FieldCorners:
    """Pitch corners ordered [bottom-left, bottom-right, top-right, top-left]."""

    points: tuple[GeoPoint, ...]

    def __post_init__(self) -> None:
        if len(self.points) != 4:
            raise DegenerateCornersError(
                f"exactly 4 corners required, got {len(self.points)}",
                code="corner_count",
            )
        if len(set(self.points)) != 4:
            raise DegenerateCornersError("two or more corners coincide", code="coincident")

    @classmethod
    def from_pairs(cls, pairs) -> FieldCorners:
        """Build from (latitude, longitude) pairs."""
        return cls(tuple(GeoPoint(lat, lon) for lat, lon in pairs))

    @property
    def bottom_left(self) -> GeoPoint:
        return self.points[0]

    @property
    def bottom_right(self) -> GeoPoint:
        return self.points[1]

    @property
    def top_right(self) -> GeoPoint:
        return self.points[2]

    @property
    def top_left(self) -> GeoPoint:
        return self.points[3]

    def __iter__(self):
        return iter(self.points)

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class PitchCoordinate:
    x: float  # metres along the bottom sideline
    y: float  # metres toward the top sideline


@dataclass(frozen=True)
class WorkoutPayload:
    """A finished session as assembled by the recorder.

    Field ranges are not enforced here; the codec and the store reject
    out-of-range values with a specific reason.
    """

    workout_id: uuid.UUID
    start_date: datetime
    duration: float  # seconds
    total_distance: float  # metres
    heart_rate: tuple[HeartRateSample, ...] = ()
    corners: tuple[GeoPoint, ...] = ()  # empty for legacy sessions, else 4
    track: tuple[TrackSample, ...] = ()

    @property
    def has_pitch(self) -> bool:
        return len(self.corners) > 0

    @property
    def field_corners(self) -> FieldCorners | None:
        """The pitch, or None for legacy sessions. Raises DegenerateCornersError."""
        if not self.corners:
            return None
        return FieldCorners(tuple(self.corners))

    @property
    def average_heart_rate(self) -> float:
        if not self.heart_rate:
            return 0.0
        return sum(s.value for s in self.heart_rate) / len(self.heart_rate)


@dataclass(frozen=True)
class ValidatedPayload:
    payload: WorkoutPayload
    schema_version: int
    checksum: str
    transfer_id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def workout_id(self) -> uuid.UUID:
        return self.payload.workout_id


@dataclass(frozen=True)
class TransferConfirmation:
    """Acknowledgement sent back by the receiver once a payload is stored."""

    transfer_id: uuid.UUID
    success: bool
    error: str | None = None

"""Watch-side session recorder.

Collects corner captures, location and heart-rate samples during a session
and packages them into a WorkoutPayload when the session ends. Samples the
sensors should not have produced (no fix, poor accuracy, impossible heart
rates) are dropped here so they never reach the wire.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable

import structlog

from pivotplay.core.errors import InvalidCoordinatesError
from pivotplay.core.models import (
    FieldCorners,
    GeoPoint,
    HeartRateSample,
    TrackSample,
    WorkoutPayload,
)

log = structlog.get_logger()

# Samples less accurate than this (metres) are discarded.
MAX_ACCURACY_M = 15.0


class SessionRecorder:
    """Accumulates one session. Not reusable after ``finish``."""

    def __init__(self, max_accuracy_m: float = MAX_ACCURACY_M) -> None:
        self._max_accuracy_m = max_accuracy_m
        self._started_at: datetime | None = None
        self._corners: FieldCorners | None = None
        self._track: list[TrackSample] = []
        self._heart_rate: list[HeartRateSample] = []
        self._finished = False

        self.discarded_locations = 0
        self.discarded_heart_rates = 0

    @property
    def corners(self) -> FieldCorners | None:
        return self._corners

    @property
    def sample_count(self) -> int:
        return len(self._track)

    def set_corners(self, points: Iterable[GeoPoint]) -> FieldCorners:
        """Capture the pitch. Must happen before recording starts."""
        if self._started_at is not None:
            raise RuntimeError("corners must be captured before recording starts")
        points = tuple(points)
        for p in points:
            if not p.has_fix:
                raise InvalidCoordinatesError("corner captured without a GPS fix")
        self._corners = FieldCorners(points)
        log.info("corners_captured", corners=[(p.latitude, p.longitude) for p in points])
        return self._corners

    def start(self, at: datetime | None = None) -> None:
        if self._started_at is not None:
            raise RuntimeError("session already started")
        self._started_at = at or datetime.now(timezone.utc)

    def add_location(self, sample: TrackSample) -> bool:
        """Returns False when the sample is discarded."""
        self._check_recording()
        if not sample.position.has_fix or sample.horizontal_accuracy > self._max_accuracy_m:
            self.discarded_locations += 1
            return False
        if self._track and sample.timestamp < self._track[-1].timestamp:
            self.discarded_locations += 1
            return False
        self._track.append(sample)
        return True

    def add_heart_rate(self, sample: HeartRateSample) -> bool:
        self._check_recording()
        if not sample.is_plausible:
            self.discarded_heart_rates += 1
            return False
        self._heart_rate.append(sample)
        return True

    def finish(
        self,
        duration: float,
        total_distance: float,
        workout_id: uuid.UUID | None = None,
    ) -> WorkoutPayload:
        self._check_recording()
        if duration < 0:
            raise ValueError("duration must be >= 0")
        if total_distance < 0:
            raise ValueError("total_distance must be >= 0")
        self._finished = True

        payload = WorkoutPayload(
            workout_id=workout_id or uuid.uuid4(),
            start_date=self._started_at,
            duration=duration,
            total_distance=total_distance,
            heart_rate=tuple(self._heart_rate),
            corners=self._corners.points if self._corners else (),
            track=tuple(self._track),
        )
        log.info("session_packaged",
                 workout_id=str(payload.workout_id),
                 duration=duration,
                 distance=total_distance,
                 samples=len(self._track),
                 discarded=self.discarded_locations,
                 has_pitch=payload.has_pitch)
        return payload

    def _check_recording(self) -> None:
        if self._started_at is None:
            raise RuntimeError("session not started")
        if self._finished:
            raise RuntimeError("session already finished")

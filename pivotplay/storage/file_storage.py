"""File-based workout storage.

One JSON document per workout, written atomically (temp file + rename):

    base_dir/YYYY/MM/DD/<workout_id>.json

The document is the workout's wire encoding (see ``core.codec``) plus the
checksum it was stored with, so a file damaged on disk is detected on read.
"""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import structlog

from pivotplay.core.codec import compute_checksum, payload_from_dict, payload_to_dict
from pivotplay.core.errors import StorageError
from pivotplay.core.models import WorkoutPayload
from pivotplay.storage.base import StoreResult

log = structlog.get_logger()


def validate_workout_data(workout: WorkoutPayload) -> str | None:
    """Record-level sanity check. Returns a reason, or None when valid."""
    if workout.duration < 0:
        return "negative duration"
    if workout.total_distance < 0:
        return "negative distance"
    for sample in workout.heart_rate:
        if not sample.is_plausible:
            return f"implausible heart rate {sample.value}"
    for sample in workout.track:
        if not sample.position.has_fix:
            return "track sample without GPS fix"
    if len(workout.corners) not in (0, 4):
        return f"corner count {len(workout.corners)}"
    return None


class FileWorkoutStore:
    """WorkoutStore backed by date partitioned JSON files on disk."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _day_dir(self, start_date: datetime) -> Path:
        dt = start_date if start_date.tzinfo else start_date.replace(tzinfo=timezone.utc)
        dt = dt.astimezone(timezone.utc)
        return self._base_dir / f"{dt.year:04d}" / f"{dt.month:02d}" / f"{dt.day:02d}"

    def _find(self, workout_id: uuid.UUID) -> Path | None:
        for path in self._base_dir.rglob(f"{workout_id}.json"):
            return path
        return None

    def _serialize(self, workout: WorkoutPayload) -> bytes:
        doc = payload_to_dict(workout)
        doc["checksum"] = compute_checksum(workout)
        doc["stored_at"] = datetime.now(timezone.utc).isoformat()
        return json.dumps(doc, separators=(",", ":")).encode("utf-8")

    def _read(self, path: Path) -> WorkoutPayload:
        """Raises StorageError.corrupt_data."""
        try:
            doc = json.loads(path.read_bytes())
            workout = payload_from_dict(doc)
        except (OSError, KeyError, ValueError, TypeError, AttributeError) as exc:
            raise StorageError.corrupt_data(f"{path.name}: {exc}") from exc
        if doc.get("checksum") != compute_checksum(workout):
            raise StorageError.corrupt_data(f"{path.name}: checksum mismatch")
        return workout

    def exists(self, workout_id: uuid.UUID) -> bool:
        return self._find(workout_id) is not None

    def save(self, workout: WorkoutPayload) -> StoreResult[WorkoutPayload]:
        reason = validate_workout_data(workout)
        if reason is not None:
            log.warning("workout_validation_failed",
                        workout_id=str(workout.workout_id), reason=reason)
            return StoreResult.failure(StorageError.validation_failed(reason))

        try:
            day_dir = self._day_dir(workout.start_date)
            day_dir.mkdir(parents=True, exist_ok=True)
            data = self._serialize(workout)
            fd, tmp_name = tempfile.mkstemp(dir=day_dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, day_dir / f"{workout.workout_id}.json")
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            log.error("workout_save_failed", workout_id=str(workout.workout_id), exc_info=True)
            return StoreResult.failure(StorageError.save_failed(str(exc)))

        log.debug("workout_written", workout_id=str(workout.workout_id), path=str(day_dir))
        return StoreResult.success(workout)

    def fetch(self, workout_id: uuid.UUID) -> StoreResult[WorkoutPayload]:
        path = self._find(workout_id)
        if path is None:
            return StoreResult.failure(StorageError.fetch_failed(f"workout {workout_id} not found"))
        try:
            return StoreResult.success(self._read(path))
        except StorageError as exc:
            log.warning("workout_corrupt", path=str(path), error=exc.message)
            return StoreResult.failure(exc)

    def fetch_all(self) -> StoreResult[list[WorkoutPayload]]:
        """All readable workouts, newest first. Corrupt files are skipped."""
        workouts: list[WorkoutPayload] = []
        try:
            paths = sorted(self._base_dir.rglob("*.json"))
        except OSError as exc:
            return StoreResult.failure(StorageError.fetch_failed(str(exc)))

        for path in paths:
            try:
                workouts.append(self._read(path))
            except StorageError as exc:
                log.warning("workout_corrupt", path=str(path), error=exc.message)

        workouts.sort(key=lambda w: w.start_date, reverse=True)
        return StoreResult.success(workouts)

    def delete(self, workout_ids: Iterable[uuid.UUID]) -> StoreResult[int]:
        deleted = 0
        try:
            for workout_id in workout_ids:
                path = self._find(workout_id)
                if path is not None:
                    path.unlink()
                    deleted += 1
        except OSError as exc:
            log.error("workout_delete_failed", exc_info=True)
            return StoreResult.failure(StorageError.delete_failed(str(exc)))
        log.info("workouts_deleted", count=deleted)
        return StoreResult.success(deleted)

    def check_health(self) -> bool:
        """True when the storage directory is writable."""
        probe = self._base_dir / ".health"
        try:
            probe.write_text("ok")
            probe.unlink()
            return True
        except OSError:
            return False

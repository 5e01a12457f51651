"""Tests for the file-based workout store."""

from __future__ import annotations

import uuid
from datetime import timedelta

from conftest import START, make_payload
from pivotplay.core.models import GeoPoint, TrackSample, WorkoutPayload
from pivotplay.storage.file_storage import FileWorkoutStore, validate_workout_data


def test_save_and_fetch(tmp_path, payload):
    store = FileWorkoutStore(tmp_path)
    result = store.save(payload)

    assert result.ok
    assert store.exists(payload.workout_id)
    path = tmp_path / "2026" / "05" / "02" / f"{payload.workout_id}.json"
    assert path.exists()
    assert store.fetch(payload.workout_id).value == payload


def test_fetch_missing(tmp_path):
    result = FileWorkoutStore(tmp_path).fetch(uuid.uuid4())
    assert not result.ok
    assert result.error.code == "fetch_failed"


def test_fetch_all_newest_first(tmp_path):
    store = FileWorkoutStore(tmp_path)
    older = make_payload(start_date=START - timedelta(days=3))
    newest = make_payload(start_date=START + timedelta(hours=2))
    middle = make_payload()
    for w in (older, newest, middle):
        assert store.save(w).ok

    result = store.fetch_all()
    assert result.ok
    assert [w.workout_id for w in result.value] == [
        newest.workout_id, middle.workout_id, older.workout_id,
    ]


def test_fetch_all_empty(tmp_path):
    result = FileWorkoutStore(tmp_path / "nothing-yet").fetch_all()
    assert result.ok
    assert result.value == []


def test_saving_again_overwrites(tmp_path, payload):
    store = FileWorkoutStore(tmp_path)
    store.save(payload)
    store.save(payload)
    assert len(store.fetch_all().value) == 1


def test_corrupt_file_is_skipped(tmp_path, payload):
    store = FileWorkoutStore(tmp_path)
    other = make_payload()
    store.save(payload)
    store.save(other)

    path = next(tmp_path.rglob(f"{payload.workout_id}.json"))
    path.write_text(path.read_text().replace('"duration":1800.0', '"duration":1.0'))

    assert [w.workout_id for w in store.fetch_all().value] == [other.workout_id]
    result = store.fetch(payload.workout_id)
    assert not result.ok
    assert result.error.code == "corrupt_data"


def test_unparseable_file_is_skipped(tmp_path, payload):
    store = FileWorkoutStore(tmp_path)
    store.save(payload)
    (tmp_path / "2026" / "05" / "02" / "junk.json").write_text("{not json")

    assert [w.workout_id for w in store.fetch_all().value] == [payload.workout_id]


def test_delete(tmp_path):
    store = FileWorkoutStore(tmp_path)
    keep, drop = make_payload(), make_payload()
    store.save(keep)
    store.save(drop)

    result = store.delete([drop.workout_id, uuid.uuid4()])
    assert result.ok
    assert result.value == 1
    assert not store.exists(drop.workout_id)
    assert store.exists(keep.workout_id)


def test_validation_failure_is_not_written(tmp_path):
    store = FileWorkoutStore(tmp_path)
    bad = make_payload(heart_rate=[0.0])

    result = store.save(bad)
    assert not result.ok
    assert result.error.code == "validation_failed"
    assert not store.exists(bad.workout_id)


def test_validate_workout_data():
    assert validate_workout_data(make_payload()) is None
    assert validate_workout_data(make_payload(duration=-1)) == "negative duration"
    assert validate_workout_data(make_payload(total_distance=-1)) == "negative distance"
    assert validate_workout_data(make_payload(heart_rate=[310.0])) == "implausible heart rate 310.0"

    no_fix = make_payload()
    no_fix = WorkoutPayload(
        workout_id=no_fix.workout_id,
        start_date=no_fix.start_date,
        duration=no_fix.duration,
        total_distance=no_fix.total_distance,
        track=(TrackSample(GeoPoint(0.0, 0.0), START),),
    )
    assert validate_workout_data(no_fix) == "track sample without GPS fix"


def test_check_health(tmp_path):
    assert FileWorkoutStore(tmp_path).check_health()

"""Tests for sealing, encoding and validating workout payloads."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_payload, pitch_corners
from pivotplay.core.codec import (
    InvalidReason,
    PayloadCodec,
    compute_checksum,
    format_date,
    parse_date,
)
from pivotplay.core.errors import TransportError
from pivotplay.core.models import TransferConfirmation


def _tamper(codec: PayloadCodec, payload, **changes) -> bytes:
    """Encode a sealed payload, then edit fields without resealing."""
    raw = json.loads(codec.encode(codec.seal(payload)))
    raw.update(changes)
    return json.dumps(raw).encode()


def _reseal(codec: PayloadCodec, payload) -> bytes:
    """Encode with a checksum that matches, bypassing any sanity check."""
    return codec.encode(codec.seal(payload))


def test_seal_encode_validate_round_trip(codec, payload):
    sealed = codec.seal(payload)
    result = codec.validate(codec.encode(sealed))

    assert result.valid
    assert result.payload.payload == payload
    assert result.payload.checksum == sealed.checksum
    assert result.payload.transfer_id == sealed.transfer_id
    assert result.payload.schema_version == 1


def test_round_trip_with_integral_numbers(codec):
    payload = make_payload(duration=600, total_distance=0, heart_rate=[150])
    result = codec.validate(codec.encode(codec.seal(payload)))
    assert result.valid
    assert result.payload.payload.duration == 600.0


def test_round_trip_legacy_session(codec):
    payload = make_payload(corners=())
    result = codec.validate(codec.encode(codec.seal(payload)))
    assert result.valid
    assert result.payload.payload.corners == ()
    assert result.payload.payload.field_corners is None


def test_each_seal_draws_a_new_transfer_id(codec, payload):
    first = codec.seal(payload)
    second = codec.seal(payload)
    assert first.transfer_id != second.transfer_id
    assert first.checksum == second.checksum


def test_checksum_ignores_timezone_representation(payload):
    local = payload.start_date.astimezone(timezone(timedelta(hours=2)))
    shifted = make_payload(workout_id=payload.workout_id, start_date=local)
    assert compute_checksum(shifted) == compute_checksum(payload)


@pytest.mark.parametrize("field, value", [
    ("duration", 1801.0),
    ("total_distance", 1.0),
    ("workout_id", str(uuid.uuid4())),
    ("start_date", "2026-05-02T18:31:00.000000Z"),
    ("heart_rate", []),
    ("track", []),
])
def test_tampered_field_fails_checksum(codec, payload, field, value):
    result = codec.validate(_tamper(codec, payload, **{field: value}))
    assert not result.valid
    assert result.reason == "checksum mismatch"
    assert result.code is InvalidReason.CHECKSUM


def test_tampered_corner_fails_checksum(codec, payload):
    raw = json.loads(codec.encode(codec.seal(payload)))
    raw["corners"][2]["latitude"] += 0.0001
    result = codec.validate(json.dumps(raw).encode())
    assert result.reason == "checksum mismatch"


def test_empty_payload(codec):
    result = codec.validate(b"")
    assert result.reason == "Empty data payload"
    assert result.code is InvalidReason.EMPTY


def test_oversized_payload_rejected_before_decode():
    codec = PayloadCodec(max_payload_bytes=1024)
    data = b"x" * 1025
    result = codec.validate(data)
    assert result.reason == "Payload too large: 1025 bytes"
    assert result.code is InvalidReason.TOO_LARGE


def test_default_size_limit_is_ten_mebibytes(codec):
    result = codec.validate(b" " * (10 * 1024 * 1024 + 1))
    assert result.code is InvalidReason.TOO_LARGE
    # Exactly at the limit is decoded (and fails there instead)
    result = codec.validate(b" " * (10 * 1024 * 1024))
    assert result.code is InvalidReason.DECODE


def test_garbage_fails_decode(codec):
    result = codec.validate(b"not json at all")
    assert result.code is InvalidReason.DECODE
    assert result.reason.startswith("Failed to decode payload:")


def test_deeply_nested_json_fails_decode(codec):
    result = codec.validate(b"[" * 200_000)
    assert result.code is InvalidReason.DECODE


def test_out_of_range_date_fails_decode(codec, payload):
    data = _tamper(codec, payload, start_date="0001-01-01T00:00:00+01:00")
    result = codec.validate(data)
    assert result.code is InvalidReason.DECODE


def test_deeply_nested_json_has_no_transfer_id(codec):
    assert codec.peek_transfer_id(b"[" * 200_000) is None


def test_missing_field_fails_decode(codec, payload):
    raw = json.loads(codec.encode(codec.seal(payload)))
    del raw["track"]
    result = codec.validate(json.dumps(raw).encode())
    assert result.code is InvalidReason.DECODE
    assert "track" in result.reason


@pytest.mark.parametrize("field, value", [
    ("duration", "long"),
    ("duration", True),
    ("workout_id", "not-a-uuid"),
    ("start_date", "yesterday"),
    ("schema_version", 2),
    ("schema_version", "1"),
    ("corners", [{"latitude": 91.0, "longitude": 0.0}]),
])
def test_malformed_field_fails_decode(codec, payload, field, value):
    result = codec.validate(_tamper(codec, payload, **{field: value}))
    assert result.code is InvalidReason.DECODE


def test_zero_duration_is_invalid(codec):
    result = codec.validate(_reseal(codec, make_payload(duration=0)))
    assert not result.valid
    assert result.reason == "Invalid workout duration"
    assert result.code is InvalidReason.FIELD


def test_negative_distance_is_invalid(codec):
    result = codec.validate(_reseal(codec, make_payload(total_distance=-3.0)))
    assert result.reason == "Invalid total distance"


def test_single_corner_is_invalid(codec):
    payload = make_payload(corners=pitch_corners()[:1])
    result = codec.validate(_reseal(codec, payload))
    assert result.reason == "Invalid corner count: 1"
    assert result.code is InvalidReason.FIELD


def test_first_failure_wins(codec):
    # Bad duration and bad corners: duration is reported.
    payload = make_payload(duration=-1, corners=pitch_corners()[:2])
    result = codec.validate(_reseal(codec, payload))
    assert result.reason == "Invalid workout duration"


def test_format_and_parse_date():
    dt = datetime(2026, 5, 2, 18, 30, 1, 250000, tzinfo=timezone.utc)
    assert format_date(dt) == "2026-05-02T18:30:01.250000Z"
    assert parse_date("2026-05-02T18:30:01.250000Z") == dt
    # Naive datetimes are taken as UTC
    assert format_date(dt.replace(tzinfo=None)) == "2026-05-02T18:30:01.250000Z"


def test_confirmation_round_trip():
    confirmation = TransferConfirmation(uuid.uuid4(), success=False, error="checksum mismatch")
    data = PayloadCodec.encode_confirmation(confirmation)
    assert PayloadCodec.decode_confirmation(data) == confirmation


@pytest.mark.parametrize("data", [b"", b"{}", b'{"transfer_id": "x", "success": true}',
                                  b'{"transfer_id": "%s", "success": "yes"}' % str(uuid.uuid4()).encode()])
def test_malformed_confirmation_raises(data):
    with pytest.raises(TransportError) as exc_info:
        PayloadCodec.decode_confirmation(data)
    assert exc_info.value.code == "channel"


def test_peek_transfer_id(codec, payload):
    sealed = codec.seal(payload)
    data = _tamper(codec, payload, transfer_id=str(sealed.transfer_id), duration="bad")
    assert codec.peek_transfer_id(data) == sealed.transfer_id
    assert codec.peek_transfer_id(b"garbage") is None

"""Payload integrity codec.

Seals a workout for transport (canonical JSON → SHA-256 checksum), encodes
it to the JSON wire format, and validates received bytes before anything
on the receiving side trusts them.

Validation is fail-fast and every failure carries a distinct reason:
empty → too large → undecodable → checksum mismatch → field sanity.
Size checks run before decoding so a corrupt or hostile length never
reaches the JSON parser. The checksum runs after decoding so a payload that
is structurally valid but altered in transit is still caught.
"""

from __future__ import annotations

import enum
import hashlib
import json
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from pivotplay.core.errors import TransportError
from pivotplay.core.models import (
    GeoPoint,
    HeartRateSample,
    TrackSample,
    TransferConfirmation,
    ValidatedPayload,
    WorkoutPayload,
)

SCHEMA_VERSION = 1
MAX_PAYLOAD_BYTES = 10 * 1024 * 1024

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# json.JSONDecodeError and UnicodeDecodeError are ValueErrors. Deep nesting
# raises RecursionError; dates at the edge of the calendar raise OverflowError.
_DECODE_ERRORS = (ValueError, TypeError, AttributeError, OverflowError, RecursionError)


class InvalidReason(str, enum.Enum):
    EMPTY = "empty"
    TOO_LARGE = "too_large"
    DECODE = "decode"
    CHECKSUM = "checksum"
    FIELD = "field"


@dataclass(frozen=True)
class ValidationResult:
    payload: ValidatedPayload | None = None
    reason: str = ""
    code: InvalidReason | None = None

    @property
    def valid(self) -> bool:
        return self.payload is not None

    @classmethod
    def ok(cls, payload: ValidatedPayload) -> ValidationResult:
        return cls(payload=payload)

    @classmethod
    def invalid(cls, code: InvalidReason, reason: str) -> ValidationResult:
        return cls(reason=reason, code=code)


def format_date(dt: datetime) -> str:
    """ISO-8601, UTC, fixed microsecond precision. Naive datetimes are UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_DATE_FORMAT)


def parse_date(value: str) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"date must be a string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _number(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite")
    return float(value)


def payload_to_dict(payload: WorkoutPayload) -> dict:
    """Workout fields only. Numbers are always floats so that a decoded
    payload re-serializes to exactly the same bytes."""
    return {
        "workout_id": str(payload.workout_id),
        "start_date": format_date(payload.start_date),
        "duration": float(payload.duration),
        "total_distance": float(payload.total_distance),
        "heart_rate": [
            {"value": float(s.value), "timestamp": format_date(s.timestamp)}
            for s in payload.heart_rate
        ],
        "corners": [
            {"latitude": float(c.latitude), "longitude": float(c.longitude)}
            for c in payload.corners
        ],
        "track": [
            {
                "latitude": float(s.position.latitude),
                "longitude": float(s.position.longitude),
                "timestamp": format_date(s.timestamp),
                "horizontal_accuracy": float(s.horizontal_accuracy),
            }
            for s in payload.track
        ],
    }


def payload_from_dict(raw: dict) -> WorkoutPayload:
    """Inverse of payload_to_dict. Raises KeyError/TypeError/ValueError."""
    if not isinstance(raw, dict):
        raise TypeError("payload must be a JSON object")
    return WorkoutPayload(
        workout_id=uuid.UUID(raw["workout_id"]),
        start_date=parse_date(raw["start_date"]),
        duration=_number(raw["duration"], "duration"),
        total_distance=_number(raw["total_distance"], "total_distance"),
        heart_rate=tuple(
            HeartRateSample(
                value=_number(s["value"], "heart_rate.value"),
                timestamp=parse_date(s["timestamp"]),
            )
            for s in raw["heart_rate"]
        ),
        corners=tuple(
            GeoPoint(
                _number(c["latitude"], "corners.latitude"),
                _number(c["longitude"], "corners.longitude"),
            )
            for c in raw["corners"]
        ),
        track=tuple(
            TrackSample(
                position=GeoPoint(
                    _number(s["latitude"], "track.latitude"),
                    _number(s["longitude"], "track.longitude"),
                ),
                timestamp=parse_date(s["timestamp"]),
                horizontal_accuracy=_number(s.get("horizontal_accuracy", 0.0), "track.horizontal_accuracy"),
            )
            for s in raw["track"]
        ),
    )


def compute_checksum(payload: WorkoutPayload) -> str:
    """SHA-256 hex digest of the canonical encoding of the workout fields."""
    canonical = json.dumps(
        payload_to_dict(payload), sort_keys=True, separators=(",", ":"), ensure_ascii=True,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class PayloadCodec:
    """Seals, encodes and validates workout payloads. Stateless."""

    def __init__(
        self,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        schema_version: int = SCHEMA_VERSION,
    ) -> None:
        self.max_payload_bytes = max_payload_bytes
        self.schema_version = schema_version

    def checksum(self, payload: WorkoutPayload) -> str:
        return compute_checksum(payload)

    def seal(self, payload: WorkoutPayload) -> ValidatedPayload:
        """Wrap a payload for one send. Each call draws a new transfer id."""
        return ValidatedPayload(
            payload=payload,
            schema_version=self.schema_version,
            checksum=compute_checksum(payload),
            transfer_id=uuid.uuid4(),
        )

    def encode(self, validated: ValidatedPayload) -> bytes:
        data = payload_to_dict(validated.payload)
        data["schema_version"] = validated.schema_version
        data["checksum"] = validated.checksum
        data["transfer_id"] = str(validated.transfer_id)
        return json.dumps(data, separators=(",", ":")).encode("utf-8")

    def decode(self, data: bytes) -> ValidatedPayload:
        """Structural decode only. Raises on malformed input."""
        raw = json.loads(data)
        if not isinstance(raw, dict):
            raise TypeError("payload must be a JSON object")

        version = raw["schema_version"]
        if isinstance(version, bool) or not isinstance(version, int):
            raise TypeError("schema_version must be an integer")
        if version < 1 or version > self.schema_version:
            raise ValueError(f"unsupported schema_version {version}")

        checksum = raw["checksum"]
        if not isinstance(checksum, str):
            raise TypeError("checksum must be a string")

        return ValidatedPayload(
            payload=payload_from_dict(raw),
            schema_version=version,
            checksum=checksum,
            transfer_id=uuid.UUID(raw["transfer_id"]),
        )

    def validate(self, data: bytes) -> ValidationResult:
        """The single gate a receiver uses before trusting incoming data."""
        if not data:
            return ValidationResult.invalid(InvalidReason.EMPTY, "Empty data payload")

        if len(data) > self.max_payload_bytes:
            return ValidationResult.invalid(
                InvalidReason.TOO_LARGE, f"Payload too large: {len(data)} bytes",
            )

        try:
            validated = self.decode(data)
        except KeyError as exc:
            return ValidationResult.invalid(
                InvalidReason.DECODE, f"Failed to decode payload: missing field {exc}",
            )
        except _DECODE_ERRORS as exc:
            return ValidationResult.invalid(
                InvalidReason.DECODE, f"Failed to decode payload: {exc}",
            )

        if compute_checksum(validated.payload) != validated.checksum:
            return ValidationResult.invalid(InvalidReason.CHECKSUM, "checksum mismatch")

        payload = validated.payload
        if payload.duration <= 0:
            return ValidationResult.invalid(InvalidReason.FIELD, "Invalid workout duration")
        if payload.total_distance < 0:
            return ValidationResult.invalid(InvalidReason.FIELD, "Invalid total distance")
        if len(payload.corners) not in (0, 4):
            return ValidationResult.invalid(
                InvalidReason.FIELD, f"Invalid corner count: {len(payload.corners)}",
            )

        return ValidationResult.ok(validated)

    # -- acknowledgements -------------------------------------------------

    @staticmethod
    def encode_confirmation(confirmation: TransferConfirmation) -> bytes:
        return json.dumps({
            "transfer_id": str(confirmation.transfer_id),
            "success": confirmation.success,
            "error": confirmation.error,
        }, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def decode_confirmation(data: bytes) -> TransferConfirmation:
        """Raises TransportError when the reply is not a confirmation."""
        try:
            raw = json.loads(data)
            success = raw["success"]
            if not isinstance(success, bool):
                raise TypeError("success must be a boolean")
            error = raw.get("error")
            return TransferConfirmation(
                transfer_id=uuid.UUID(raw["transfer_id"]),
                success=success,
                error=str(error) if error is not None else None,
            )
        except (KeyError, *_DECODE_ERRORS) as exc:
            raise TransportError.channel(f"malformed confirmation: {exc}") from exc

    @staticmethod
    def peek_transfer_id(data: bytes) -> uuid.UUID | None:
        """Best-effort transfer id from bytes that failed validation."""
        try:
            raw = json.loads(data)
            return uuid.UUID(raw["transfer_id"])
        except (KeyError, *_DECODE_ERRORS):
            return None

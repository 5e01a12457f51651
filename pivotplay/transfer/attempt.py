"""Transfer state, transport kinds and the retry policy.

The three transport kinds form a closed, cyclic fallback order. After the
slowest kind fails the next attempt goes back to the fastest one, since the
usual cause of failure (the phone briefly out of reach) tends to clear.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any

from pivotplay.core.errors import PivotPlayError
from pivotplay.core.models import ValidatedPayload


class TransportKind(str, enum.Enum):
    DIRECT_MESSAGE = "direct_message"    # low latency, needs reachability, replies
    BACKGROUND_INFO = "background_info"  # queued, best effort, app-level ack
    FILE_HANDOFF = "file_handoff"        # largest payloads, best effort, app-level ack


_FALLBACK_ORDER = (
    TransportKind.DIRECT_MESSAGE,
    TransportKind.BACKGROUND_INFO,
    TransportKind.FILE_HANDOFF,
)


def next_kind(kind: TransportKind) -> TransportKind:
    i = _FALLBACK_ORDER.index(kind)
    return _FALLBACK_ORDER[(i + 1) % len(_FALLBACK_ORDER)]


class TransferState(str, enum.Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, enum.Enum):
    EXHAUSTED = "exhausted"  # ran out of attempts or window after a failure
    EXPIRED = "expired"      # window lapsed with no failure signal (sweep)
    REJECTED = "rejected"    # receiver refused the payload; never retried


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    window_seconds: float = 300.0
    backoff_base: float = 2.0

    def should_retry(self, attempt_count: int, elapsed: float) -> bool:
        """Both bounds are checked on every failure."""
        return attempt_count < self.max_attempts and elapsed < self.window_seconds

    def delay(self, attempt_count: int) -> float:
        """Delay before retry N (N = attempts already made): 2s, 4s, 8s..."""
        return self.backoff_base ** attempt_count

    def expired(self, elapsed: float) -> bool:
        return elapsed >= self.window_seconds


@dataclass
class TransferAttempt:
    """Mutable per-transfer bookkeeping. Owned by the engine only."""

    payload: ValidatedPayload
    started_at: float
    encoded: bytes
    attempt_count: int = 0
    transport_kind: TransportKind = TransportKind.DIRECT_MESSAGE
    state: TransferState = TransferState.PENDING
    last_error: PivotPlayError | None = None
    token: int = 0
    timer: Any = field(default=None, repr=False)

    @property
    def transfer_id(self) -> uuid.UUID:
        return self.payload.transfer_id


@dataclass(frozen=True)
class TransferResult:
    """Terminal outcome of one transfer, as reported to the caller."""

    transfer_id: uuid.UUID
    workout_id: uuid.UUID
    state: TransferState
    transport_kind: TransportKind
    attempt_count: int
    elapsed_seconds: float
    error: str | None = None
    reason: FailureReason | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is TransferState.SUCCEEDED

    @property
    def permanent(self) -> bool:
        """True when resending the same payload can never succeed."""
        return self.reason is FailureReason.REJECTED

    def to_dict(self) -> dict:
        return {
            "transfer_id": str(self.transfer_id),
            "workout_id": str(self.workout_id),
            "state": self.state.value,
            "transport_kind": self.transport_kind.value,
            "attempt_count": self.attempt_count,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "error": self.error,
            "reason": self.reason.value if self.reason else None,
            "permanent": self.permanent,
        }

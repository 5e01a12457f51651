"""Transfer statistics.

In-memory counters for both ends of the link: the sending engine
(attempts, retries, terminal outcomes per transport kind) and the
receiving side (payloads received, accepted, rejected by reason).
No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from collections import Counter


class TransferStats:
    """Thread-safe transfer counters with a JSON-serializable snapshot."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Sender side
        self.transfers_submitted: int = 0
        self.transfers_succeeded: int = 0
        self.transfers_failed: int = 0
        self.transfers_rejected: int = 0
        self.transfers_expired: int = 0
        self.retries_scheduled: int = 0
        self.ack_timeouts: int = 0
        self._attempts: Counter[str] = Counter()
        self._attempt_failures: Counter[str] = Counter()

        # Receiver side
        self.payloads_received: int = 0
        self.payloads_accepted: int = 0
        self.payloads_duplicate: int = 0
        self.bytes_received: int = 0
        self.storage_errors: int = 0
        self.queue_depth: int = 0
        self.queue_max_depth: int = 0
        self._rejections: Counter[str] = Counter()

    def record_submitted(self) -> None:
        with self._lock:
            self.transfers_submitted += 1

    def record_attempt(self, kind: str) -> None:
        with self._lock:
            self._attempts[kind] += 1

    def record_attempt_failure(self, kind: str, *, ack_timeout: bool = False) -> None:
        with self._lock:
            self._attempt_failures[kind] += 1
            if ack_timeout:
                self.ack_timeouts += 1

    def record_retry(self) -> None:
        with self._lock:
            self.retries_scheduled += 1

    def record_succeeded(self) -> None:
        with self._lock:
            self.transfers_succeeded += 1

    def record_failed(self, reason: str) -> None:
        with self._lock:
            self.transfers_failed += 1
            if reason == "rejected":
                self.transfers_rejected += 1
            elif reason == "expired":
                self.transfers_expired += 1

    def record_received(self, size_bytes: int) -> None:
        with self._lock:
            self.payloads_received += 1
            self.bytes_received += size_bytes

    def record_accepted(self, *, duplicate: bool = False) -> None:
        with self._lock:
            self.payloads_accepted += 1
            if duplicate:
                self.payloads_duplicate += 1

    def record_rejected(self, code: str) -> None:
        with self._lock:
            self._rejections[code] += 1

    def record_storage_error(self) -> None:
        with self._lock:
            self.storage_errors += 1

    def update_queue_depth(self, depth: int) -> None:
        with self._lock:
            self.queue_depth = depth
            if depth > self.queue_max_depth:
                self.queue_max_depth = depth

    @property
    def payloads_rejected(self) -> int:
        with self._lock:
            return sum(self._rejections.values())

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "transfers": {
                    "submitted": self.transfers_submitted,
                    "succeeded": self.transfers_succeeded,
                    "failed": self.transfers_failed,
                    "rejected": self.transfers_rejected,
                    "expired": self.transfers_expired,
                    "retries_scheduled": self.retries_scheduled,
                    "ack_timeouts": self.ack_timeouts,
                    "attempts_by_kind": dict(self._attempts),
                    "failures_by_kind": dict(self._attempt_failures),
                },
                "receiver": {
                    "payloads_received": self.payloads_received,
                    "payloads_accepted": self.payloads_accepted,
                    "payloads_duplicate": self.payloads_duplicate,
                    "payloads_rejected": sum(self._rejections.values()),
                    "rejections_by_reason": dict(self._rejections),
                    "bytes_received": self.bytes_received,
                    "storage_errors": self.storage_errors,
                    "queue_depth": self.queue_depth,
                    "queue_max_depth_ever": self.queue_max_depth,
                },
            }

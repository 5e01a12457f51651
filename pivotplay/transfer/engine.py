"""Transfer engine — delivers sealed workouts over an unreliable link.

One engine coordinates every outstanding transfer, keyed by transfer id.
Each transfer moves PENDING → IN_FLIGHT(kind) and ends SUCCEEDED or FAILED:

- DIRECT_MESSAGE fails immediately when the phone is not reachable;
  otherwise the reply is the receiver's confirmation.
- BACKGROUND_INFO and FILE_HANDOFF have no delivery signal. An app-level
  confirmation must arrive within the ack timeout or the attempt fails.
- A failed attempt is retried on the next kind (cyclic) after 2**n seconds,
  while fewer than ``max_attempts`` attempts were made and the transfer is
  younger than the retry window. Otherwise the transfer fails.
- A negative confirmation is terminal: the receiver refused the payload
  and resending it unchanged cannot succeed.
- A periodic sweep fails transfers whose window lapsed without any signal.

The live table and the callback table are only touched inside
``self._lock``, which is never held across an await. Every scheduled
callback carries the attempt token it was armed for; a callback whose token
is stale, or whose transfer is gone, does nothing.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import structlog

from pivotplay.config import TransferConfig
from pivotplay.core.errors import PivotPlayError, TransportError
from pivotplay.core.models import TransferConfirmation, ValidatedPayload
from pivotplay.transfer.attempt import (
    FailureReason,
    RetryPolicy,
    TransferAttempt,
    TransferResult,
    TransferState,
    TransportKind,
    next_kind,
)

if TYPE_CHECKING:
    from pivotplay.core.codec import PayloadCodec
    from pivotplay.core.stats import TransferStats
    from pivotplay.transfer.scheduler import Scheduler, TimerHandle
    from pivotplay.transport.base import TransportChannel

log = structlog.get_logger()

ResultCallback = Callable[[TransferResult], None]


@dataclass
class _Callbacks:
    on_success: ResultCallback | None = None
    on_failure: ResultCallback | None = None


class TransferEngine:
    """Retrying, multi-transport delivery of ValidatedPayloads."""

    def __init__(
        self,
        channel: TransportChannel,
        codec: PayloadCodec,
        scheduler: Scheduler,
        stats: TransferStats,
        config: TransferConfig | None = None,
    ) -> None:
        config = config or TransferConfig()
        self._channel = channel
        self._codec = codec
        self._scheduler = scheduler
        self._stats = stats
        self._policy = RetryPolicy(
            max_attempts=config.max_attempts,
            window_seconds=config.retry_window_seconds,
            backoff_base=config.backoff_base,
        )
        self._ack_timeout = config.ack_timeout_seconds
        self._sweep_interval = config.sweep_interval_seconds

        self._lock = threading.Lock()
        self._transfers: dict[uuid.UUID, TransferAttempt] = {}
        self._callbacks: dict[uuid.UUID, _Callbacks] = {}
        self._sweep_handle: TimerHandle | None = None
        self._running = False

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Arm the periodic sweep."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._sweep_handle = self._scheduler.call_later(self._sweep_interval, self._sweep)
        log.info("transfer_engine_started", sweep_interval=self._sweep_interval)

    def stop(self) -> None:
        """Cancel the sweep and every pending timer. Live transfers are kept."""
        with self._lock:
            self._running = False
            if self._sweep_handle is not None:
                self._sweep_handle.cancel()
                self._sweep_handle = None
            for entry in self._transfers.values():
                if entry.timer is not None:
                    entry.timer.cancel()
                    entry.timer = None
        log.info("transfer_engine_stopped", live=len(self._transfers))

    # -- public API ---------------------------------------------------------

    def submit(
        self,
        validated: ValidatedPayload,
        on_success: ResultCallback | None = None,
        on_failure: ResultCallback | None = None,
    ) -> uuid.UUID:
        """Start delivering a sealed payload. Returns its transfer id.

        Callbacks fire exactly once, with the terminal TransferResult.
        """
        transfer_id = validated.transfer_id
        entry = TransferAttempt(
            payload=validated,
            started_at=self._scheduler.now(),
            encoded=self._codec.encode(validated),
        )

        with self._lock:
            if transfer_id in self._transfers:
                raise ValueError(f"transfer {transfer_id} is already in flight")
            self._transfers[transfer_id] = entry
            self._callbacks[transfer_id] = _Callbacks(on_success, on_failure)
            entry.state = TransferState.IN_FLIGHT
            token = entry.token
            try:
                entry.timer = self._scheduler.call_later(
                    0.0, lambda: self._dispatch(transfer_id, token),
                )
            except Exception:
                # No timer means nothing would ever finish the transfer.
                del self._transfers[transfer_id]
                del self._callbacks[transfer_id]
                raise

        self._stats.record_submitted()
        log.info("transfer_submitted",
                 transfer_id=str(transfer_id),
                 workout_id=str(validated.workout_id),
                 size=len(entry.encoded))
        return transfer_id

    async def deliver(self, validated: ValidatedPayload) -> TransferResult:
        """Submit and wait for the terminal result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[TransferResult] = loop.create_future()

        def resolve(result: TransferResult) -> None:
            if not future.done():
                future.set_result(result)

        self.submit(validated, on_success=resolve, on_failure=resolve)
        return await future

    def handle_confirmation(self, confirmation: TransferConfirmation) -> bool:
        """Resolve a transfer from an acknowledgement. False if unknown/stale."""
        if confirmation.success:
            return self._finish(confirmation.transfer_id, TransferState.SUCCEEDED)
        return self._finish(
            confirmation.transfer_id,
            TransferState.FAILED,
            reason=FailureReason.REJECTED,
            error=confirmation.error or "rejected by receiver",
        )

    async def handle_message(self, data: bytes) -> bytes:
        """Inbound DirectMessage handler for the watch end of a channel."""
        try:
            confirmation = self._codec.decode_confirmation(data)
        except TransportError as exc:
            log.warning("inbound_message_ignored", error=str(exc))
            return b""
        self.handle_confirmation(confirmation)
        return b""

    def live_transfers(self) -> list[dict]:
        now = self._scheduler.now()
        with self._lock:
            return [
                {
                    "transfer_id": str(tid),
                    "workout_id": str(e.payload.workout_id),
                    "state": e.state.value,
                    "transport_kind": e.transport_kind.value,
                    "attempt_count": e.attempt_count,
                    "elapsed_seconds": round(now - e.started_at, 3),
                }
                for tid, e in self._transfers.items()
            ]

    def is_live(self, transfer_id: uuid.UUID) -> bool:
        with self._lock:
            return transfer_id in self._transfers

    # -- attempts -----------------------------------------------------------

    async def _dispatch(self, transfer_id: uuid.UUID, token: int) -> None:
        with self._lock:
            entry = self._transfers.get(transfer_id)
            if entry is None or entry.token != token:
                return
            entry.timer = None
            entry.attempt_count += 1
            entry.state = TransferState.IN_FLIGHT
            kind = entry.transport_kind
            attempt = entry.attempt_count
            data = entry.encoded

        self._stats.record_attempt(kind.value)
        log.info("transfer_attempt",
                 transfer_id=str(transfer_id), kind=kind.value, attempt=attempt)

        try:
            if kind is TransportKind.DIRECT_MESSAGE:
                if not self._channel.is_reachable():
                    raise TransportError.unreachable()
                reply = await self._channel.send_message(data)
                confirmation = self._codec.decode_confirmation(reply)
                if confirmation.transfer_id != transfer_id:
                    raise TransportError.channel("confirmation for another transfer")
                self.handle_confirmation(confirmation)
            else:
                if kind is TransportKind.BACKGROUND_INFO:
                    await self._channel.transfer_user_info(data)
                else:
                    await self._channel.transfer_file(data)
                self._arm_ack_timeout(transfer_id, token)
        except TransportError as exc:
            self._attempt_failed(transfer_id, token, exc)
        except Exception as exc:
            log.error("transport_channel_error", transfer_id=str(transfer_id),
                      kind=kind.value, exc_info=True)
            self._attempt_failed(transfer_id, token, TransportError.channel(str(exc)))

    def _arm_ack_timeout(self, transfer_id: uuid.UUID, token: int) -> None:
        async def expire() -> None:
            self._attempt_failed(
                transfer_id, token, TransportError.ack_timeout(self._ack_timeout),
            )

        with self._lock:
            entry = self._transfers.get(transfer_id)
            if entry is None or entry.token != token:
                return
            entry.timer = self._scheduler.call_later(self._ack_timeout, expire)

    def _attempt_failed(self, transfer_id: uuid.UUID, token: int, error: PivotPlayError) -> None:
        now = self._scheduler.now()
        with self._lock:
            entry = self._transfers.get(transfer_id)
            if entry is None or entry.token != token:
                return
            if entry.timer is not None:
                entry.timer.cancel()
                entry.timer = None

            failed_kind = entry.transport_kind
            entry.last_error = error
            elapsed = now - entry.started_at
            retry = self._policy.should_retry(entry.attempt_count, elapsed)
            if retry:
                delay = self._policy.delay(entry.attempt_count)
                entry.transport_kind = next_kind(failed_kind)
                entry.token += 1
                new_token = entry.token
                entry.timer = self._scheduler.call_later(
                    delay, lambda: self._dispatch(transfer_id, new_token),
                )

        self._stats.record_attempt_failure(
            failed_kind.value, ack_timeout=error.code == "ack_timeout",
        )
        if retry:
            self._stats.record_retry()
            log.warning("transfer_attempt_failed",
                        transfer_id=str(transfer_id),
                        kind=failed_kind.value,
                        attempt=entry.attempt_count,
                        error=error.message,
                        severity=error.severity.label,
                        retry_in=delay,
                        next_kind=entry.transport_kind.value)
            return

        self._finish(
            transfer_id,
            TransferState.FAILED,
            reason=FailureReason.EXHAUSTED,
            error=error.message,
        )

    # -- completion ---------------------------------------------------------

    def _finish(
        self,
        transfer_id: uuid.UUID,
        state: TransferState,
        *,
        reason: FailureReason | None = None,
        error: str | None = None,
    ) -> bool:
        now = self._scheduler.now()
        with self._lock:
            entry = self._transfers.pop(transfer_id, None)
            callbacks = self._callbacks.pop(transfer_id, None)
            if entry is None:
                return False
            entry.state = state
            entry.token += 1
            if entry.timer is not None:
                entry.timer.cancel()
                entry.timer = None

        result = TransferResult(
            transfer_id=transfer_id,
            workout_id=entry.payload.workout_id,
            state=state,
            transport_kind=entry.transport_kind,
            attempt_count=entry.attempt_count,
            elapsed_seconds=now - entry.started_at,
            error=error,
            reason=reason,
        )

        if state is TransferState.SUCCEEDED:
            self._stats.record_succeeded()
            log.info("transfer_succeeded", **result.to_dict())
            callback = callbacks.on_success if callbacks else None
        else:
            self._stats.record_failed(reason.value if reason else "")
            log.error("transfer_failed", **result.to_dict())
            callback = callbacks.on_failure if callbacks else None

        if callback is not None:
            try:
                callback(result)
            except Exception:
                log.error("transfer_callback_failed",
                          transfer_id=str(transfer_id), exc_info=True)
        return True

    async def _sweep(self) -> None:
        now = self._scheduler.now()
        with self._lock:
            expired = [
                (tid, e.last_error)
                for tid, e in self._transfers.items()
                if self._policy.expired(now - e.started_at)
            ]
            if self._running:
                self._sweep_handle = self._scheduler.call_later(self._sweep_interval, self._sweep)

        for tid, last_error in expired:
            self._finish(
                tid,
                TransferState.FAILED,
                reason=FailureReason.EXPIRED,
                error=last_error.message if last_error else "retry window elapsed",
            )
        if expired:
            log.warning("transfer_sweep_expired", count=len(expired))

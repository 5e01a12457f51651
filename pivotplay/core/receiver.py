"""Workout receiver — validates, stores and acknowledges incoming payloads.

This is the phone-side business logic. It depends on the DeliveryQueue,
WorkoutStore and ConfirmationSink protocols, not concrete implementations.

A confirmation is only sent once the payload is validated and stored:

- invalid payload → negative confirmation (the sender must not retry it)
- payload already stored → positive confirmation (a retry whose first ack
  was lost)
- store failure on a valid payload → no confirmation, so the sender's
  timeout/retry path runs again
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

from pivotplay.core.errors import TransportError
from pivotplay.core.models import TransferConfirmation
from pivotplay.queue.asyncio_queue import QueuedDelivery

if TYPE_CHECKING:
    from pivotplay.core.codec import PayloadCodec
    from pivotplay.core.stats import TransferStats
    from pivotplay.queue.base import DeliveryQueue
    from pivotplay.storage.base import WorkoutStore
    from pivotplay.transport.base import TransportChannel

log = structlog.get_logger()


class ConfirmationSink(Protocol):
    """Port: carries confirmations for queued deliveries back to the watch."""

    async def send(self, confirmation: TransferConfirmation) -> None: ...


class ChannelConfirmationSink:
    """Sends confirmations as DirectMessages over a transport channel."""

    def __init__(self, channel: TransportChannel, codec: PayloadCodec) -> None:
        self._channel = channel
        self._codec = codec

    async def send(self, confirmation: TransferConfirmation) -> None:
        try:
            await self._channel.send_message(self._codec.encode_confirmation(confirmation))
        except TransportError as exc:
            # The sender's ack timeout covers a lost confirmation.
            log.warning("confirmation_send_failed",
                        transfer_id=str(confirmation.transfer_id), error=exc.message)


class WorkoutReceiver:
    """Gate between the transport link and the workout store."""

    def __init__(
        self,
        codec: PayloadCodec,
        store: WorkoutStore,
        stats: TransferStats,
        queue: DeliveryQueue,
        sink: ConfirmationSink,
    ) -> None:
        self._codec = codec
        self._store = store
        self._stats = stats
        self._queue = queue
        self._sink = sink

    async def receive(self, data: bytes) -> TransferConfirmation | None:
        """Validate and store one payload. Returns the confirmation to send,
        or None when no confirmation can or should be sent."""
        self._stats.record_received(len(data))

        result = self._codec.validate(data)
        if not result.valid:
            self._stats.record_rejected(result.code.value)
            transfer_id = self._codec.peek_transfer_id(data)
            log.warning("payload_rejected",
                        reason=result.reason,
                        code=result.code.value,
                        size=len(data),
                        transfer_id=str(transfer_id) if transfer_id else None)
            if transfer_id is None:
                return None
            return TransferConfirmation(transfer_id, success=False, error=result.reason)

        validated = result.payload
        workout = validated.payload
        log_ctx = {
            "transfer_id": str(validated.transfer_id),
            "workout_id": str(workout.workout_id),
        }

        if self._store.exists(workout.workout_id):
            self._stats.record_accepted(duplicate=True)
            log.info("payload_duplicate", **log_ctx)
            return TransferConfirmation(validated.transfer_id, success=True)

        saved = self._store.save(workout)
        if not saved.ok:
            if saved.error is not None and saved.error.code == "validation_failed":
                self._stats.record_rejected("store_validation")
                log.warning("payload_rejected", reason=saved.error.message, **log_ctx)
                return TransferConfirmation(
                    validated.transfer_id, success=False, error=saved.error.message,
                )
            self._stats.record_storage_error()
            log.error("payload_store_failed",
                      error=saved.error.message if saved.error else None, **log_ctx)
            return None

        self._stats.record_accepted()
        log.info("payload_accepted",
                 samples=len(workout.track),
                 has_pitch=workout.has_pitch,
                 **log_ctx)
        return TransferConfirmation(validated.transfer_id, success=True)

    async def handle_message(self, data: bytes) -> bytes:
        """Inbound DirectMessage handler: the reply is the confirmation."""
        confirmation = await self.receive(data)
        if confirmation is None:
            return b""
        return self._codec.encode_confirmation(confirmation)

    async def enqueue(self, data: bytes, kind: str) -> None:
        """Inbound best-effort delivery; processed by ``run_consumer``."""
        await self._queue.put(QueuedDelivery(data=data, kind=kind))
        self._stats.update_queue_depth(self._queue.qsize())
        log.debug("delivery_queued", kind=kind, size=len(data))

    async def handle_user_info(self, data: bytes) -> None:
        await self.enqueue(data, "background_info")

    async def handle_file(self, data: bytes) -> None:
        await self.enqueue(data, "file_handoff")

    async def process_next(self) -> None:
        item = await self._queue.get()
        try:
            confirmation = await self.receive(item.data)
            self._stats.update_queue_depth(self._queue.qsize())
            if confirmation is not None:
                await self._sink.send(confirmation)
        except Exception:
            log.error("delivery_processing_failed", kind=item.kind, exc_info=True)
        finally:
            self._queue.task_done()

    async def run_consumer(self) -> None:
        """Consume queued deliveries. Runs as a background task."""
        log.info("delivery_consumer_started")
        while True:
            await self.process_next()

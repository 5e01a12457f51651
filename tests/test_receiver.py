"""Tests for the receiving side: validate → store → acknowledge."""

from __future__ import annotations

import json

import pytest

from conftest import make_payload, pitch_corners
from pivotplay.core.errors import StorageError
from pivotplay.core.receiver import WorkoutReceiver
from pivotplay.queue.asyncio_queue import AsyncioDeliveryQueue
from pivotplay.queue.outbox import ConfirmationOutbox
from pivotplay.storage.base import StoreResult
from pivotplay.storage.file_storage import FileWorkoutStore


@pytest.fixture
def store(tmp_path):
    return FileWorkoutStore(tmp_path / "workouts")


@pytest.fixture
def outbox():
    return ConfirmationOutbox()


@pytest.fixture
def receiver(codec, store, stats, outbox):
    return WorkoutReceiver(codec, store, stats, AsyncioDeliveryQueue(), outbox)


class BrokenStore:
    """A store whose disk is gone."""

    def exists(self, workout_id):
        return False

    def save(self, workout):
        return StoreResult.failure(StorageError.save_failed("disk full"))


@pytest.mark.asyncio
async def test_valid_payload_is_stored_and_acknowledged(receiver, codec, store, stats, payload):
    sealed = codec.seal(payload)

    confirmation = await receiver.receive(codec.encode(sealed))

    assert confirmation.success
    assert confirmation.transfer_id == sealed.transfer_id
    assert store.fetch(payload.workout_id).value == payload
    snap = stats.snapshot()["receiver"]
    assert snap["payloads_received"] == 1
    assert snap["payloads_accepted"] == 1


@pytest.mark.asyncio
async def test_invalid_payload_gets_negative_confirmation(receiver, codec, store, stats):
    payload = make_payload(duration=0)
    sealed = codec.seal(payload)

    confirmation = await receiver.receive(codec.encode(sealed))

    assert not confirmation.success
    assert confirmation.error == "Invalid workout duration"
    assert not store.exists(payload.workout_id)
    assert stats.snapshot()["receiver"]["rejections_by_reason"] == {"field": 1}


@pytest.mark.asyncio
async def test_tampered_payload_gets_negative_confirmation(receiver, codec, payload):
    sealed = codec.seal(payload)
    raw = json.loads(codec.encode(sealed))
    raw["total_distance"] = 9999.0

    confirmation = await receiver.receive(json.dumps(raw).encode())

    assert confirmation.transfer_id == sealed.transfer_id
    assert confirmation.error == "checksum mismatch"


@pytest.mark.asyncio
async def test_unidentifiable_garbage_gets_no_confirmation(receiver, stats):
    assert await receiver.receive(b"\x00\x01garbage") is None
    assert await receiver.handle_message(b"") == b""
    assert stats.payloads_rejected == 2


@pytest.mark.asyncio
async def test_redelivery_is_acknowledged_again(receiver, codec, store, stats, payload):
    first = await receiver.receive(codec.encode(codec.seal(payload)))
    second = await receiver.receive(codec.encode(codec.seal(payload)))

    assert first.success and second.success
    assert first.transfer_id != second.transfer_id
    assert len(store.fetch_all().value) == 1
    assert stats.snapshot()["receiver"]["payloads_duplicate"] == 1


@pytest.mark.asyncio
async def test_store_validation_failure_is_a_rejection(receiver, codec, store):
    # Passes the codec (corner count 4) but not the store (implausible heart rate).
    payload = make_payload(heart_rate=[120.0, 350.0], corners=pitch_corners())
    confirmation = await receiver.receive(codec.encode(codec.seal(payload)))

    assert not confirmation.success
    assert "implausible heart rate" in confirmation.error
    assert not store.exists(payload.workout_id)


@pytest.mark.asyncio
async def test_store_failure_sends_no_confirmation(codec, stats, outbox, payload):
    receiver = WorkoutReceiver(codec, BrokenStore(), stats, AsyncioDeliveryQueue(), outbox)

    assert await receiver.receive(codec.encode(codec.seal(payload))) is None
    assert stats.snapshot()["receiver"]["storage_errors"] == 1


@pytest.mark.asyncio
async def test_handle_message_replies_with_confirmation(receiver, codec, payload):
    sealed = codec.seal(payload)
    reply = await receiver.handle_message(codec.encode(sealed))
    confirmation = codec.decode_confirmation(reply)
    assert confirmation.transfer_id == sealed.transfer_id
    assert confirmation.success


@pytest.mark.asyncio
async def test_queued_delivery_acknowledged_through_sink(receiver, codec, stats, outbox, payload):
    sealed = codec.seal(payload)

    await receiver.handle_file(codec.encode(sealed))
    assert stats.snapshot()["receiver"]["queue_depth"] == 1
    assert len(outbox) == 0

    await receiver.process_next()

    confirmations = outbox.drain()
    assert [c.transfer_id for c in confirmations] == [sealed.transfer_id]
    assert confirmations[0].success
    assert stats.snapshot()["receiver"]["queue_depth"] == 0
    assert outbox.drain() == []


@pytest.mark.asyncio
async def test_queued_deliveries_processed_in_order(receiver, codec, outbox):
    sealed = [codec.seal(make_payload()) for _ in range(3)]
    for s in sealed:
        await receiver.handle_user_info(codec.encode(s))

    for _ in sealed:
        await receiver.process_next()

    assert [c.transfer_id for c in outbox.drain()] == [s.transfer_id for s in sealed]

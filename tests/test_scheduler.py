"""Tests for the asyncio-backed scheduler and awaitable delivery."""

from __future__ import annotations

import asyncio

import pytest

from pivotplay.core.receiver import WorkoutReceiver
from pivotplay.queue.asyncio_queue import AsyncioDeliveryQueue
from pivotplay.queue.outbox import ConfirmationOutbox
from pivotplay.storage.file_storage import FileWorkoutStore
from pivotplay.transfer.engine import TransferEngine
from pivotplay.transfer.scheduler import AsyncioScheduler
from pivotplay.transport.loopback import LoopbackLink


@pytest.mark.asyncio
async def test_callback_runs_after_delay():
    scheduler = AsyncioScheduler()
    fired = asyncio.Event()

    async def callback():
        fired.set()

    before = scheduler.now()
    scheduler.call_later(0.01, callback)
    await asyncio.wait_for(fired.wait(), timeout=1.0)
    assert scheduler.now() >= before


@pytest.mark.asyncio
async def test_cancelled_callback_never_runs():
    scheduler = AsyncioScheduler()
    fired = []

    async def callback():
        fired.append(True)

    handle = scheduler.call_later(0.01, callback)
    handle.cancel()
    await asyncio.sleep(0.05)
    await scheduler.drain()
    assert fired == []


@pytest.mark.asyncio
async def test_failing_callback_does_not_propagate():
    scheduler = AsyncioScheduler()

    async def callback():
        raise RuntimeError("boom")

    scheduler.call_later(0, callback)
    await asyncio.sleep(0.01)
    await scheduler.drain()


@pytest.mark.asyncio
async def test_deliver_awaits_terminal_result(tmp_path, codec, stats, payload):
    link = LoopbackLink()
    store = FileWorkoutStore(tmp_path)
    receiver = WorkoutReceiver(codec, store, stats, AsyncioDeliveryQueue(), ConfirmationOutbox())
    link.phone.bind(on_message=receiver.handle_message)

    engine = TransferEngine(link.watch, codec, AsyncioScheduler(), stats)
    result = await asyncio.wait_for(engine.deliver(codec.seal(payload)), timeout=1.0)

    assert result.succeeded
    assert result.attempt_count == 1
    assert store.exists(payload.workout_id)

"""In-process asyncio queue implementation of DeliveryQueue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class QueuedDelivery:
    data: bytes
    kind: str  # "background_info" or "file_handoff"


class AsyncioDeliveryQueue:
    """DeliveryQueue backed by asyncio.Queue. Zero dependencies."""

    def __init__(self, max_size: int = 1_000) -> None:
        self._queue: asyncio.Queue[QueuedDelivery] = asyncio.Queue(maxsize=max_size)

    async def put(self, item: QueuedDelivery) -> None:
        await self._queue.put(item)

    async def get(self) -> QueuedDelivery:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    def qsize(self) -> int:
        return self._queue.qsize()

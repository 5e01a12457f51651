"""Queue interface (port) for best-effort deliveries awaiting processing."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from pivotplay.queue.asyncio_queue import QueuedDelivery


class DeliveryQueue(Protocol):
    """Port: accepts received bytes and hands them to the consumer."""

    async def put(self, item: QueuedDelivery) -> None: ...

    async def get(self) -> QueuedDelivery: ...

    def task_done(self) -> None: ...

    def qsize(self) -> int: ...

"""In-process transport link between a watch endpoint and a phone endpoint.

Used by the simulator and the tests. Each endpoint can be made unreachable,
told to fail the next N uses of a primitive, or told to silently drop
best-effort deliveries, which covers the failure modes of a real paired
link.
"""

from __future__ import annotations

from collections import Counter

import structlog

from pivotplay.core.errors import TransportError
from pivotplay.transfer.attempt import TransportKind
from pivotplay.transport.base import DeliveryHandler, MessageHandler

log = structlog.get_logger()


class LoopbackChannel:
    """One end of a LoopbackLink. Implements TransportChannel."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.reachable = True
        self.sent: list[tuple[TransportKind, bytes]] = []
        self._peer: LoopbackChannel | None = None
        self._on_message: MessageHandler | None = None
        self._on_user_info: DeliveryHandler | None = None
        self._on_file: DeliveryHandler | None = None
        self._failures: Counter[TransportKind] = Counter()
        self._dropping: set[TransportKind] = set()

    def bind(
        self,
        *,
        on_message: MessageHandler | None = None,
        on_user_info: DeliveryHandler | None = None,
        on_file: DeliveryHandler | None = None,
    ) -> None:
        """Register this endpoint's inbound handlers."""
        if on_message is not None:
            self._on_message = on_message
        if on_user_info is not None:
            self._on_user_info = on_user_info
        if on_file is not None:
            self._on_file = on_file

    def fail_next(self, kind: TransportKind, count: int = 1) -> None:
        self._failures[kind] += count

    def drop(self, kind: TransportKind, enabled: bool = True) -> None:
        if enabled:
            self._dropping.add(kind)
        else:
            self._dropping.discard(kind)

    def is_reachable(self) -> bool:
        return self.reachable and self._peer is not None

    def _outbound(self, kind: TransportKind, data: bytes) -> LoopbackChannel:
        self.sent.append((kind, data))
        if self._peer is None:
            raise TransportError.channel(f"{self.name} is not paired")
        if self._failures[kind] > 0:
            self._failures[kind] -= 1
            raise TransportError.channel(f"{kind.value} failed on {self.name}")
        return self._peer

    async def send_message(self, data: bytes) -> bytes:
        if not self.is_reachable():
            self.sent.append((TransportKind.DIRECT_MESSAGE, data))
            raise TransportError.unreachable()
        peer = self._outbound(TransportKind.DIRECT_MESSAGE, data)
        if peer._on_message is None:
            raise TransportError.channel(f"{peer.name} does not accept messages")
        return await peer._on_message(data)

    async def transfer_user_info(self, data: bytes) -> None:
        peer = self._outbound(TransportKind.BACKGROUND_INFO, data)
        await self._deliver(TransportKind.BACKGROUND_INFO, peer._on_user_info, data)

    async def transfer_file(self, data: bytes) -> None:
        peer = self._outbound(TransportKind.FILE_HANDOFF, data)
        await self._deliver(TransportKind.FILE_HANDOFF, peer._on_file, data)

    async def _deliver(self, kind: TransportKind, handler: DeliveryHandler | None, data: bytes) -> None:
        if kind in self._dropping or handler is None:
            log.debug("loopback_delivery_lost", endpoint=self.name, kind=kind.value)
            return
        await handler(data)

    def sent_kinds(self) -> list[TransportKind]:
        return [kind for kind, _ in self.sent]


class LoopbackLink:
    """A paired watch/phone link."""

    def __init__(self) -> None:
        self.watch = LoopbackChannel("watch")
        self.phone = LoopbackChannel("phone")
        self.watch._peer = self.phone
        self.phone._peer = self.watch

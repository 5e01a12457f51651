"""Transport channel interface (port) between the watch and the phone."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol

# Inbound DirectMessage handler: receives bytes, returns the reply bytes.
MessageHandler = Callable[[bytes], Awaitable[bytes]]

# Inbound best-effort handler (user info or file): no reply.
DeliveryHandler = Callable[[bytes], Awaitable[None]]


class TransportChannel(Protocol):
    """Port: the three delivery primitives of one paired link.

    Every method raises TransportError when the primitive itself fails.
    """

    def is_reachable(self) -> bool: ...

    async def send_message(self, data: bytes) -> bytes:
        """Low latency; returns the counterpart's reply."""
        ...

    async def transfer_user_info(self, data: bytes) -> None:
        """Queued, best effort, no delivery signal."""
        ...

    async def transfer_file(self, data: bytes) -> None:
        """Large payloads, best effort, no delivery signal."""
        ...

"""Pending confirmations waiting to be collected by the watch.

Used when the link back to the watch is pull-based (the HTTP channel polls
``GET /api/v1/confirmations``).
"""

from __future__ import annotations

import threading
from collections import deque

from pivotplay.core.models import TransferConfirmation


class ConfirmationOutbox:
    """Bounded FIFO of confirmations. Oldest entries drop when full."""

    def __init__(self, max_size: int = 1_000) -> None:
        self._lock = threading.Lock()
        self._pending: deque[TransferConfirmation] = deque(maxlen=max_size)

    async def send(self, confirmation: TransferConfirmation) -> None:
        with self._lock:
            self._pending.append(confirmation)

    def drain(self) -> list[TransferConfirmation]:
        with self._lock:
            items = list(self._pending)
            self._pending.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

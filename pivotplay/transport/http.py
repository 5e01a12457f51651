"""HTTP transport channel: the watch end of a link to the companion service.

DirectMessage is a synchronous POST whose response body is the
confirmation. Background info and file handoff are queued POSTs answered
with 202; their confirmations are collected by polling
``GET /api/v1/confirmations``.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import structlog

from pivotplay.core.errors import TransportError
from pivotplay.transfer.attempt import TransportKind
from pivotplay.transport.base import MessageHandler

log = structlog.get_logger()

API_PREFIX = "/api/v1"


class HttpChannel:
    """TransportChannel over httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        poll_interval: float = 2.0,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval
        self._reachable = True
        self._on_message: MessageHandler | None = None
        self._poll_task: asyncio.Task | None = None

    def bind(self, *, on_message: MessageHandler) -> None:
        """Handler for confirmations pulled from the service."""
        self._on_message = on_message

    def is_reachable(self) -> bool:
        return self._reachable

    async def refresh_reachability(self) -> bool:
        try:
            resp = await self._client.get(f"{API_PREFIX}/health")
            self._reachable = resp.status_code == 200
        except httpx.RequestError:
            self._reachable = False
        return self._reachable

    async def send_message(self, data: bytes) -> bytes:
        resp = await self._post(f"{API_PREFIX}/transfers/message", data)
        return resp.content

    async def transfer_user_info(self, data: bytes) -> None:
        await self._post_queued(TransportKind.BACKGROUND_INFO, data)

    async def transfer_file(self, data: bytes) -> None:
        await self._post_queued(TransportKind.FILE_HANDOFF, data)

    async def _post_queued(self, kind: TransportKind, data: bytes) -> None:
        resp = await self._post(
            f"{API_PREFIX}/transfers/queued", data, params={"kind": kind.value},
        )
        if resp.status_code != 202:
            raise TransportError.channel(
                f"{kind.value} not accepted: HTTP {resp.status_code}",
            )

    async def _post(self, url: str, data: bytes, params: dict | None = None) -> httpx.Response:
        try:
            resp = await self._client.post(
                url,
                content=data,
                params=params,
                headers={"content-type": "application/json"},
            )
        except httpx.RequestError as exc:
            self._reachable = False
            log.warning("http_channel_unreachable", url=url, error=str(exc))
            raise TransportError.unreachable() from exc

        self._reachable = True
        if resp.status_code >= 500:
            raise TransportError.channel(f"server error: HTTP {resp.status_code}")
        return resp

    # -- confirmation polling -------------------------------------------------

    async def poll_once(self) -> int:
        """Fetch pending confirmations and hand each to the message handler."""
        try:
            resp = await self._client.get(f"{API_PREFIX}/confirmations")
        except httpx.RequestError as exc:
            self._reachable = False
            log.debug("confirmation_poll_failed", error=str(exc))
            return 0

        self._reachable = True
        if resp.status_code != 200:
            log.warning("confirmation_poll_failed", status=resp.status_code)
            return 0

        try:
            items = resp.json()["confirmations"]
            if not isinstance(items, list):
                raise TypeError("confirmations must be a list")
        except (KeyError, ValueError, TypeError, RecursionError) as exc:
            log.warning("confirmation_poll_failed", error=str(exc))
            return 0

        if self._on_message is not None:
            for item in items:
                await self._on_message(json.dumps(item).encode("utf-8"))
        return len(items)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                log.exception("confirmation_poll_error")
            await asyncio.sleep(self._poll_interval)

    def start_polling(self) -> None:
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

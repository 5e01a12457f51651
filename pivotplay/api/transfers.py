"""Transfer landing points.

This is the thin FastAPI adapter between the HTTP channel and the
WorkoutReceiver. DirectMessage is answered synchronously with the
confirmation; queued kinds are answered with 202 and their confirmations
are collected from ``/confirmations``.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Query, Request, Response

from pivotplay.transfer.attempt import TransportKind

router = APIRouter(prefix="/api/v1")

_QUEUED_KINDS = (TransportKind.BACKGROUND_INFO.value, TransportKind.FILE_HANDOFF.value)


def _json(content: dict, status_code: int) -> Response:
    return Response(
        content=json.dumps(content),
        status_code=status_code,
        media_type="application/json",
    )


@router.post("/transfers/message")
async def receive_message(request: Request) -> Response:
    """Validate and store one payload; the body of the reply is its confirmation.

    - 200: stored (or already stored)
    - 422: rejected; the sender must not retry the same payload
    - 400: undecodable and without a transfer id to acknowledge
    - 503: valid but not stored; no confirmation, the sender retries
    """
    from pivotplay.main import get_components

    components = get_components(request)
    body = await request.body()

    confirmation = await components.receiver.receive(body)
    if confirmation is None:
        if components.codec.peek_transfer_id(body) is None:
            return _json({"success": False, "error": "unidentifiable payload"}, 400)
        return _json({"success": False, "error": "payload not stored"}, 503)

    return Response(
        content=components.codec.encode_confirmation(confirmation),
        status_code=200 if confirmation.success else 422,
        media_type="application/json",
    )


@router.post("/transfers/queued", status_code=202)
async def receive_queued(request: Request, kind: str = Query(...)) -> Response:
    """Accept a best-effort delivery for background processing."""
    from pivotplay.main import get_components

    if kind not in _QUEUED_KINDS:
        return _json({"accepted": False, "error": f"unsupported kind: {kind}"}, 400)

    components = get_components(request)
    body = await request.body()
    await components.receiver.enqueue(body, kind)
    return _json({"accepted": True, "queue_depth": components.queue.qsize()}, 202)


@router.get("/confirmations")
async def drain_confirmations(request: Request) -> dict:
    """Hand over every pending confirmation for queued deliveries."""
    from pivotplay.main import get_components

    confirmations = get_components(request).outbox.drain()
    return {
        "confirmations": [
            {
                "transfer_id": str(c.transfer_id),
                "success": c.success,
                "error": c.error,
            }
            for c in confirmations
        ],
    }

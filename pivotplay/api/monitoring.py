"""Health check and monitoring endpoints."""

from __future__ import annotations

import shutil
from pathlib import Path

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/v1")


@router.get("/health")
async def health(request: Request) -> dict:
    """Basic health check."""
    from pivotplay.main import get_components

    components = get_components(request)

    storage_path = Path(components.config.storage.base_dir)
    try:
        disk = shutil.disk_usage(storage_path if storage_path.exists() else ".")
        disk_free_gb = round(disk.free / (1024 ** 3), 1)
    except OSError:
        disk_free_gb = -1

    snapshot = components.stats.snapshot()
    return {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": snapshot["uptime_seconds"],
        "queue_depth": components.queue.qsize(),
        "pending_confirmations": len(components.outbox),
        "storage_writable": components.store.check_health(),
        "disk_free_gb": disk_free_gb,
    }


@router.get("/stats")
async def stats(request: Request) -> dict:
    """Transfer and receiver counters.

    ``transfers`` is only populated in processes that also run a
    TransferEngine (the simulator, tests); the service itself fills
    ``receiver``.
    """
    from pivotplay.main import get_components

    return get_components(request).stats.snapshot()


@router.get("/config")
async def get_client_config(request: Request) -> dict:
    """Parameters the watch side should use when talking to this service."""
    from pivotplay.main import get_components

    config = get_components(request).config
    return {
        "schema_version": config.codec.schema_version,
        "max_payload_bytes": config.codec.max_payload_bytes,
        "max_attempts": config.transfer.max_attempts,
        "retry_window_seconds": config.transfer.retry_window_seconds,
        "ack_timeout_seconds": config.transfer.ack_timeout_seconds,
        "poll_interval_seconds": config.transfer.poll_interval_seconds,
        "max_accuracy_m": config.recorder.max_accuracy_m,
        "grid_size": [config.heatmap.grid_width, config.heatmap.grid_height],
    }

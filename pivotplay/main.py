"""PivotPlay companion service — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, queue, storage, and API layers.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from fastapi import FastAPI, Request

from pivotplay.api.monitoring import router as monitoring_router
from pivotplay.api.transfers import router as transfers_router
from pivotplay.api.workouts import router as workouts_router
from pivotplay.config import AppConfig, load_config
from pivotplay.core.codec import PayloadCodec
from pivotplay.core.receiver import WorkoutReceiver
from pivotplay.core.stats import TransferStats
from pivotplay.queue.asyncio_queue import AsyncioDeliveryQueue
from pivotplay.queue.outbox import ConfirmationOutbox
from pivotplay.storage.file_storage import FileWorkoutStore

log = structlog.get_logger()


@dataclass
class Components:
    """Everything a request handler may need. Lives on ``app.state``."""

    config: AppConfig
    stats: TransferStats
    codec: PayloadCodec
    store: FileWorkoutStore
    queue: AsyncioDeliveryQueue
    outbox: ConfirmationOutbox
    receiver: WorkoutReceiver


def build_components(config: AppConfig) -> Components:
    stats = TransferStats()
    codec = PayloadCodec(
        max_payload_bytes=config.codec.max_payload_bytes,
        schema_version=config.codec.schema_version,
    )
    store = FileWorkoutStore(base_dir=config.storage.base_dir)
    queue = AsyncioDeliveryQueue(max_size=config.queue.max_size)
    outbox = ConfirmationOutbox(max_size=config.queue.max_size)
    receiver = WorkoutReceiver(codec=codec, store=store, stats=stats, queue=queue, sink=outbox)
    return Components(
        config=config,
        stats=stats,
        codec=codec,
        store=store,
        queue=queue,
        outbox=outbox,
        receiver=receiver,
    )


def get_components(request: Request) -> Components:
    components = getattr(request.app.state, "components", None)
    assert components is not None, "Server not initialized"
    return components


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    config = load_config()
    _setup_logging(config)

    log.info("server_starting",
             env=config.server.env,
             storage_dir=config.storage.base_dir,
             queue_max_size=config.queue.max_size)

    components = build_components(config)
    app.state.components = components

    # Start background consumer for queued transports
    consumer_task = asyncio.create_task(components.receiver.run_consumer())

    log.info("server_started",
             host=config.server.host,
             port=config.server.port)

    yield

    # Shutdown
    consumer_task.cancel()
    try:
        await consumer_task
    except asyncio.CancelledError:
        pass
    app.state.components = None
    log.info("server_stopped")


app = FastAPI(
    title="PivotPlay",
    description="Companion service for football session transfers and heatmaps",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(transfers_router)
app.include_router(workouts_router)
app.include_router(monitoring_router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = load_config()
    uvicorn.run("pivotplay.main:app", host=config.server.host, port=config.server.port)

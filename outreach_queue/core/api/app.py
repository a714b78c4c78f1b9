"""FastAPI application for the outreach queue."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from outreach_queue.config.config_loader import load_config
from outreach_queue.core.api.controllers.queue_controller import router as queue_router
from outreach_queue.core.api.services.queue_service import QueueService
from outreach_queue.core.api.services.run_store import RunStore
from outreach_queue.core.engine import OutreachEngine

_engine: OutreachEngine | None = None
_queue_service: QueueService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _engine, _queue_service

    from outreach_queue.core.utils.logging_config import configure_logging

    config = load_config()
    configure_logging(config.observability.log_level, config.observability.log_file)

    logger.info("Initializing queue engine and services")
    _engine = OutreachEngine(config)
    _queue_service = QueueService(
        _engine.store,
        _engine.allowance,
        _engine.dispatcher,
        _engine.reconciler,
        run_store=RunStore(ttl=3600),
        timing_profile=config.outreach.timing_profile,
    )
    _engine.reconciler.start()

    yield

    logger.info("Shutting down services")
    if _queue_service:
        _queue_service.shutdown()
    if _engine:
        _engine.close()


def get_queue_service() -> QueueService:
    return _queue_service


app = FastAPI(
    title="Outreach Queue API",
    description="Paced outreach batches and tracker reconciliation for one operator",
    lifespan=lifespan,
)

app.include_router(queue_router)


@app.get("/health")
def health():
    return {"status": "ok"}

"""
Call Control Plane - FastAPI entry point.

Serves the call lifecycle and project call-feature routes under /api,
runs the stale call sweeper in the background and, when enabled, exposes
Prometheus metrics on a separate port.
"""
from contextlib import asynccontextmanager
import asyncio
import logging
from datetime import datetime, UTC
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from callplane import __version__
from callplane.api import router as api_router
from callplane.api.deps import get_sweeper, close_clients
from callplane.config.redis import ping_redis, close_redis
from callplane.config.settings import settings
from callplane.models.database import init_db, close_db
from callplane.services.metrics import start_metrics_server

logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)


async def _stop(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("[Sweeper] Stopped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open shared resources on startup; stop the sweeper before closing them."""
    logger.info(f"🚀 Call Control Plane {__version__} starting")

    await init_db()
    if await ping_redis():
        logger.info("✅ [Redis] Feature cache reachable")
    if settings.METRICS_ENABLED:
        start_metrics_server(settings.METRICS_PORT)

    sweeper_task = None
    if settings.STALE_SWEEP_ENABLED:
        sweeper_task = asyncio.create_task(get_sweeper().run(settings.STALE_SWEEP_INTERVAL))

    yield

    logger.info("🛑 Call Control Plane stopping")
    await _stop(sweeper_task)
    await close_clients()
    await close_redis()
    await close_db()


app = FastAPI(
    title="Call Control Plane",
    description="Call-session lifecycle with quota-gated admission over LiveKit",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is a 400, the same as service-side validation."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


app.include_router(api_router, prefix="/api")


@app.get("/")
async def service_info():
    return {"service": "callplane", "version": __version__}


@app.get("/health")
async def liveness():
    return {"status": "ok", "checked_at": datetime.now(UTC).isoformat()}

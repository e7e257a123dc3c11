from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from mcp_directory.api.router import api_router
from mcp_directory.core.config import get_settings
from mcp_directory.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    flush_api_telemetry,
    setup_api_telemetry,
)
from mcp_directory.services.repository import get_repository
from mcp_directory.services.storage import get_storage

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("starting %s environment=%s site=%s", settings.app_name, settings.environment, settings.site_url)
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            flush_api_telemetry(_telemetry_runtime)
        # asyncpg pool must close before the loop does.
        await get_repository().close()
        get_repository.cache_clear()
        get_storage.cache_clear()


configure_api_logging(settings)
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)

# The browser front-end reads the JSON API cross-origin and sends Supabase bearer tokens.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)

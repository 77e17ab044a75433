"""
FastAPI application exposing the streaming pipeline.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from biostream.acquisition.packet_decoder import record_dtype
from biostream.api.routes import health
from biostream.api.websocket import manager, router as websocket_router
from biostream.core.config import settings
from biostream.core.exceptions import BiostreamError
from biostream.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Log startup; stop every running pipeline on shutdown."""
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        env=settings.env,
        sample_rate=settings.sample_rate
    )

    yield

    running = list(manager.pipelines)
    for session_id in running:
        await manager.stop_pipeline(session_id)
    logger.info("application_shutting_down", stopped_pipelines=len(running))


app = FastAPI(
    title="biostream API",
    description="Real-time EEG band power and ECG heart rate from streaming sensor packets",
    version=settings.app_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(BiostreamError)
async def biostream_error_handler(request: Request, exc: BiostreamError) -> JSONResponse:
    """Map pipeline errors to a 400 with the error code."""
    logger.error(
        "request_failed",
        error_code=exc.code,
        message=exc.message,
        path=request.url.path
    )
    return JSONResponse(
        status_code=400,
        content={"error": {"code": exc.code, "message": exc.message}}
    )


app.include_router(health.router, tags=["health"])
app.include_router(websocket_router, tags=["stream"])


@app.get("/")
async def root():
    """Stream format and endpoints."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "stream": {
            "websocket": "/ws/stream/{session_id}",
            "sample_rate": settings.sample_rate,
            "channels": settings.n_channels,
            "record_size": record_dtype(settings.n_channels).itemsize,
            "bands": {name: list(edges) for name, edges in settings.bands.items()},
        },
    }


def main() -> None:
    """Run the API server (`biostream-api`)."""
    import uvicorn

    uvicorn.run(
        "biostream.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development and settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

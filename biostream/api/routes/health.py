"""
Health and pipeline metrics endpoints.
"""

from fastapi import APIRouter

from biostream.api.websocket import manager
from biostream.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service status and number of connected/streaming sessions."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.env,
        "connected_sessions": len(manager.sessions),
        "active_sessions": len(manager.pipelines),
    }


@router.get("/metrics")
async def metrics():
    """Counters of every running pipeline, keyed by session id."""
    pipelines = manager.pipelines
    return {
        "active_sessions": len(pipelines),
        "sessions": {
            session_id: pipeline.get_metrics()
            for session_id, pipeline in pipelines.items()
        },
    }

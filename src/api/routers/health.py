"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_thumbnail_services
from services.thumbnail_services import ThumbnailServices


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    redis: str
    render_service: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> HealthResponse:
    """
    Check application, database, cache and rendering service health.

    Only the database decides overall status: Redis and the rendering service
    both have fallbacks, so their outage degrades thumbnails but not the API.
    """
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        db_status = "unhealthy"

    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is None or not redis_client.enabled:
        redis_status = "disabled"
    elif await redis_client.ping():
        redis_status = "healthy"
    else:
        redis_status = "unavailable"

    if not thumbnails.render_client.configuration().is_configured:
        render_status = "not_configured"
    elif await thumbnails.render_client.is_available():
        render_status = "healthy"
    else:
        render_status = "unavailable"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        redis=redis_status,
        render_service=render_status,
    )

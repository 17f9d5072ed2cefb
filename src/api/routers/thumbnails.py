"""Thumbnail resolution, tracking and blob serving endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import FileResponse

from api.dependencies import get_current_user, get_thumbnail_services
from models.user import User
from schemas.thumbnail import (
    RenderServiceStatusResponse,
    ThumbnailResponse,
    ThumbnailStatsResponse,
)
from services.blob_store import METADATA_SUFFIX
from services.thumbnail_services import ThumbnailServices

router = APIRouter(prefix="/thumbnails", tags=["thumbnails"])


@router.get("/resolve", response_model=ThumbnailResponse)
async def resolve_thumbnail(
    url: str = Query(..., description="Bookmarked URL to resolve a thumbnail for"),
    current_user: User = Depends(get_current_user),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> ThumbnailResponse:
    """
    Resolve the thumbnail for one of the caller's bookmarked URLs.

    Returns `thumbnail: null` with source "none" when nothing could be found.
    """
    result = await thumbnails.resolver.resolve(url, current_user.id)
    return ThumbnailResponse.from_result(result)


@router.post("/track", status_code=204)
async def track_thumbnail_access(
    url: str = Query(..., description="Bookmarked URL whose thumbnail was viewed"),
    current_user: User = Depends(get_current_user),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> Response:
    """Record a thumbnail view. Always succeeds; tracking is best-effort."""
    await thumbnails.resolver.track_access(url, current_user.id)
    return Response(status_code=204)


@router.get("/stats", response_model=ThumbnailStatsResponse)
async def thumbnail_stats(
    current_user: User = Depends(get_current_user),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> ThumbnailStatsResponse:
    """Screenshot statistics for thumbnails uploaded by the caller."""
    stats = await thumbnails.resolver.stats(current_user.id)
    return ThumbnailStatsResponse(
        total_screenshots=stats.total_screenshots,
        total_size=stats.total_size,
        by_source=stats.by_source,
    )


@router.get("/status", response_model=RenderServiceStatusResponse)
async def render_service_status(
    _current_user: User = Depends(get_current_user),
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> RenderServiceStatusResponse:
    """Configuration and reachability of the rendering service."""
    configuration = thumbnails.render_client.configuration()
    is_available = (
        await thumbnails.render_client.is_available() if configuration.is_configured else False
    )
    return RenderServiceStatusResponse(
        api_url=configuration.api_url,
        has_api_key=configuration.has_api_key,
        is_configured=configuration.is_configured,
        is_available=is_available,
    )


@router.get("/blobs/{path:path}")
async def get_thumbnail_blob(
    path: str,
    thumbnails: ThumbnailServices = Depends(get_thumbnail_services),
) -> FileResponse:
    """
    Serve a stored screenshot.

    Blob URLs are shared by every bookmark of the same URL, so they are public.
    """
    if path.endswith(METADATA_SUFFIX) or not await thumbnails.blob_store.exists(path):
        raise HTTPException(status_code=404, detail="Thumbnail not found")

    metadata = await thumbnails.blob_store.read_metadata(path) or {}
    return FileResponse(
        thumbnails.blob_store.local_path(path),
        media_type=metadata.get("contentType", "image/jpeg"),
        headers={"Cache-Control": "public, max-age=604800, immutable"},
    )

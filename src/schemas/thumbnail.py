"""Thumbnail result types and API schemas."""
from dataclasses import asdict, dataclass, replace
from typing import Any

from pydantic import BaseModel

from models.thumbnail_record import ThumbnailKind

NO_THUMBNAIL_SOURCE = "none"


@dataclass(frozen=True)
class ThumbnailResult:
    """
    Outcome of a thumbnail resolution.

    `thumbnail` is a hosted URL, a direct link, a `data:` URL (un-hosted render
    output), or None when nothing could be produced. A result with no thumbnail and
    source "none" is the soft not-found outcome, not an error.
    """

    thumbnail: str | None
    kind: ThumbnailKind
    source: str
    is_video_thumbnail: bool | None = None
    method: str | None = None
    record_id: str | None = None

    @classmethod
    def empty(cls) -> "ThumbnailResult":
        """The 'no thumbnail available' result."""
        return cls(thumbnail=None, kind=ThumbnailKind.FAVICON, source=NO_THUMBNAIL_SOURCE)

    @property
    def is_empty(self) -> bool:
        """Whether no thumbnail was produced."""
        return not self.thumbnail

    @property
    def is_data_url(self) -> bool:
        """Whether the thumbnail is inline image data rather than a link."""
        return bool(self.thumbnail and self.thumbnail.startswith("data:"))

    def with_changes(self, **changes: Any) -> "ThumbnailResult":
        """Copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for the local cache."""
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ThumbnailResult":
        """Inverse of to_dict."""
        return cls(
            thumbnail=data.get("thumbnail"),
            kind=ThumbnailKind(data["kind"]),
            source=data["source"],
            is_video_thumbnail=data.get("is_video_thumbnail"),
            method=data.get("method"),
            record_id=data.get("record_id"),
        )


class ThumbnailResponse(BaseModel):
    """Schema for thumbnail resolution responses."""

    thumbnail: str | None
    kind: ThumbnailKind
    source: str
    is_video_thumbnail: bool | None = None
    method: str | None = None

    @classmethod
    def from_result(cls, result: ThumbnailResult) -> "ThumbnailResponse":
        """Build the response body from a resolver result."""
        return cls(
            thumbnail=result.thumbnail,
            kind=result.kind,
            source=result.source,
            is_video_thumbnail=result.is_video_thumbnail,
            method=result.method,
        )


class ThumbnailStatsResponse(BaseModel):
    """Screenshot statistics for thumbnails uploaded by the current user."""

    total_screenshots: int
    total_size: int
    by_source: dict[str, int]


class RenderServiceStatusResponse(BaseModel):
    """Configuration and reachability of the rendering service."""

    api_url: str
    has_api_key: bool
    is_configured: bool
    is_available: bool

"""Pydantic schemas for bookmark endpoints."""
import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from services.url_hasher import normalize_url


def validate_and_normalize_tags(tags: list[str]) -> list[str]:
    """Normalize tags: lowercase, validate format (alphanumeric + hyphens only)."""
    normalized = []
    for tag in tags:
        normalized_tag = tag.lower().strip()
        if not normalized_tag:
            continue
        if not re.match(r"^[a-z0-9]+(-[a-z0-9]+)*$", normalized_tag):
            raise ValueError(
                f"Invalid tag format: '{normalized_tag}'. "
                "Use lowercase letters, numbers, and hyphens only (e.g., 'machine-learning').",
            )
        normalized.append(normalized_tag)
    return normalized


class BookmarkCreate(BaseModel):
    """Schema for creating a new bookmark."""

    url: str
    title: str | None = None
    description: str | None = None
    tags: list[str] = []

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """
        Validate and normalize the URL.

        Kept as a plain string (not HttpUrl) because ownership checks and thumbnail
        hashing compare the URL exactly as stored.
        """
        return normalize_url(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        """Normalize and validate tags."""
        if v is None:
            return []
        return validate_and_normalize_tags(v)


class BookmarkUpdate(BaseModel):
    """Schema for updating an existing bookmark."""

    url: str | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate and normalize the URL if provided."""
        if v is None:
            return None
        return normalize_url(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        """Normalize and validate tags if provided."""
        if v is None:
            return None
        return validate_and_normalize_tags(v)


class BookmarkResponse(BaseModel):
    """Schema for bookmark responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    title: str | None
    description: str | None
    tags: list[str]
    thumbnail: str | None
    favicon: str | None
    created_at: datetime
    updated_at: datetime


class BookmarkListResponse(BaseModel):
    """Schema for paginated bookmark list responses."""

    items: list[BookmarkResponse]
    total: int
    offset: int
    limit: int

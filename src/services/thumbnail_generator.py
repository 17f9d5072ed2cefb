"""
Ordered fallback chain for producing a thumbnail from scratch.

Each stage returns a ThumbnailResult on success or None to pass to the next stage.
Stages run sequentially and the chain stops at the first success, so a lower
priority source is never contacted once a higher one has produced a thumbnail:

1. Rendering service (screenshot, or a video thumbnail it detected itself)
2. Twitch profile picture (Twitch URLs only)
3. Platform direct link (YouTube, Vimeo, Dailymotion), HEAD-validated
4. Favicon service, HEAD-validated
5. Empty result (source "none")
"""
import logging
from typing import Protocol

import httpx

from models.thumbnail_record import ThumbnailKind
from schemas.thumbnail import ThumbnailResult
from services.exceptions import UpstreamUnavailableError
from services.image_validator import ImageUrlValidator
from services.platform_extractor import (
    DEFAULT_FAVICON_SERVICE_URL,
    extract_twitch_channel,
    extract_video_thumbnail,
    favicon_url,
    is_twitch_url,
    lookup_twitch_avatar,
)
from services.render_client import RenderOptions, RenderServiceClient

logger = logging.getLogger(__name__)


class ThumbnailStage(Protocol):
    """One tier of the fallback chain."""

    name: str

    async def attempt(self, url: str, options: RenderOptions) -> ThumbnailResult | None:
        """Return a result, or None to fall through to the next stage."""
        ...


class RenderStage:
    """Ask the rendering service for a screenshot or detected video thumbnail."""

    name = "render"

    def __init__(self, render_client: RenderServiceClient) -> None:
        self._render_client = render_client

    async def attempt(self, url: str, options: RenderOptions) -> ThumbnailResult | None:
        try:
            return await self._render_client.render(url, options)
        except UpstreamUnavailableError as e:
            logger.info("render_stage_failed url=%s error=%s", url, e)
            return None


class TwitchProfileStage:
    """Use the channel's profile picture for Twitch URLs."""

    name = "twitch-profile"

    def __init__(self, client: httpx.AsyncClient, validator: ImageUrlValidator) -> None:
        self._client = client
        self._validator = validator

    async def attempt(self, url: str, options: RenderOptions) -> ThumbnailResult | None:  # noqa: ARG002
        if not is_twitch_url(url):
            return None
        channel = extract_twitch_channel(url)
        if not channel:
            return None
        avatar = await lookup_twitch_avatar(self._client, channel, self._validator)
        if avatar is None:
            return None
        return ThumbnailResult(
            thumbnail=avatar,
            kind=ThumbnailKind.VIDEO,
            source="twitch-profile",
            is_video_thumbnail=True,
            method="profile-picture",
        )


class PlatformLinkStage:
    """Use the platform's conventional thumbnail link for recognized video URLs."""

    name = "platform-link"

    def __init__(self, validator: ImageUrlValidator) -> None:
        self._validator = validator

    async def attempt(self, url: str, options: RenderOptions) -> ThumbnailResult | None:  # noqa: ARG002
        extracted = extract_video_thumbnail(url)
        if not extracted.thumbnail_url or extracted.platform is None:
            return None
        if not await self._validator.is_valid_image(extracted.thumbnail_url):
            return None
        return ThumbnailResult(
            thumbnail=extracted.thumbnail_url,
            kind=ThumbnailKind.VIDEO,
            source=extracted.platform.value,
            is_video_thumbnail=True,
            method="platform-link",
        )


class FaviconStage:
    """Fall back to the site's favicon."""

    name = "favicon"

    def __init__(
        self,
        validator: ImageUrlValidator,
        template: str = DEFAULT_FAVICON_SERVICE_URL,
    ) -> None:
        self._validator = validator
        self._template = template

    async def attempt(self, url: str, options: RenderOptions) -> ThumbnailResult | None:  # noqa: ARG002
        icon = favicon_url(url, self._template)
        if icon is None or not await self._validator.is_valid_image(icon):
            return None
        return ThumbnailResult(
            thumbnail=icon,
            kind=ThumbnailKind.FAVICON,
            source="google-favicon",
            method="favicon",
        )


class ThumbnailGenerator:
    """Runs the stages in order and returns the first success."""

    def __init__(
        self,
        stages: list[ThumbnailStage],
        default_options: RenderOptions | None = None,
    ) -> None:
        self.stages = stages
        self.default_options = default_options or RenderOptions()

    @classmethod
    def create(
        cls,
        render_client: RenderServiceClient,
        client: httpx.AsyncClient,
        favicon_template: str = DEFAULT_FAVICON_SERVICE_URL,
        default_options: RenderOptions | None = None,
    ) -> "ThumbnailGenerator":
        """Build the standard chain."""
        validator = ImageUrlValidator(client)
        return cls(
            [
                RenderStage(render_client),
                TwitchProfileStage(client, validator),
                PlatformLinkStage(validator),
                FaviconStage(validator, favicon_template),
            ],
            default_options,
        )

    async def generate(
        self, url: str, options: RenderOptions | None = None,
    ) -> ThumbnailResult:
        """Produce a thumbnail for url; returns the empty result if every stage fails."""
        options = options or self.default_options
        for stage in self.stages:
            try:
                result = await stage.attempt(url, options)
            except Exception:
                # A broken stage must not take the whole chain down
                logger.exception("thumbnail_stage_error stage=%s url=%s", stage.name, url)
                continue
            if result is not None and not result.is_empty:
                logger.debug(
                    "thumbnail_stage_succeeded stage=%s url=%s kind=%s",
                    stage.name, url, result.kind,
                )
                return result
        logger.info("thumbnail_not_found url=%s", url)
        return ThumbnailResult.empty()

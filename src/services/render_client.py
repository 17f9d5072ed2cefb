"""Client for the external screenshot/rendering service."""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from models.thumbnail_record import ThumbnailKind
from schemas.thumbnail import ThumbnailResult
from services.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)

SCREENSHOT_PATH = "/api/v1/screenshot"
HEALTH_PATH = "/health"
DEFAULT_HEALTH_TIMEOUT = 5.0
# Extra seconds on top of the render timeout for upload/transfer of the result
REQUEST_TIMEOUT_MARGIN = 5.0


@dataclass(frozen=True)
class RenderOptions:
    """Rendering options sent with each screenshot request."""

    width: int = 400
    height: int = 300
    format: Literal["png", "jpeg"] = "jpeg"
    quality: int = 85
    timeout_ms: int = 15000
    full_page: bool = False
    wait_until: str = "domcontentloaded"
    handle_banners: bool = True
    banner_timeout_ms: int = 5000
    detect_video_thumbnails: bool = True

    def to_payload(self, url: str) -> dict[str, Any]:
        """Request body in the service's camelCase wire format."""
        return {
            "url": url,
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "quality": self.quality,
            "timeout": self.timeout_ms,
            "fullPage": self.full_page,
            "waitUntil": self.wait_until,
            "handleBanners": self.handle_banners,
            "bannerTimeout": self.banner_timeout_ms,
            "detectVideoThumbnails": self.detect_video_thumbnails,
        }


@dataclass(frozen=True)
class RenderServiceConfiguration:
    """Configuration status of the rendering client."""

    api_url: str
    has_api_key: bool
    is_configured: bool


class RenderServiceClient:
    """
    Thin async client for the rendering service.

    render() is a hard failure for the single call (UpstreamUnavailableError); the
    generator catches it and moves on to the next fallback tier.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient,
        health_timeout: float = DEFAULT_HEALTH_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client
        self._health_timeout = health_timeout

    def configuration(self) -> RenderServiceConfiguration:
        """Report whether the client has everything it needs to render."""
        return RenderServiceConfiguration(
            api_url=self._base_url,
            has_api_key=bool(self._api_key),
            is_configured=bool(self._base_url and self._api_key),
        )

    async def render(self, url: str, options: RenderOptions | None = None) -> ThumbnailResult:
        """
        Render a thumbnail for url.

        The service answers either with JSON pointing at an image it already hosts,
        or with the image bytes themselves plus X-* headers describing them. Binary
        bodies are returned as a data URL so callers handle both shapes uniformly.

        Raises:
            UpstreamUnavailableError: Missing API key, transport error, timeout,
                non-2xx status, or an unreadable JSON body.
        """
        options = options or RenderOptions()
        if not self._api_key:
            raise UpstreamUnavailableError("Screenshot API key not configured")

        try:
            response = await self._client.post(
                f"{self._base_url}{SCREENSHOT_PATH}",
                json=options.to_payload(url),
                headers={"X-API-Key": self._api_key},
                timeout=options.timeout_ms / 1000 + REQUEST_TIMEOUT_MARGIN,
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError("Screenshot API request timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Screenshot API request failed: {e}") from e

        if not response.is_success:
            raise UpstreamUnavailableError(
                f"Screenshot API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type.lower():
            return self._parse_json_response(response)
        return self._parse_binary_response(response, options)

    def _parse_json_response(self, response: httpx.Response) -> ThumbnailResult:
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError("Screenshot API returned invalid JSON") from e
        thumbnail_url = body.get("thumbnailUrl") if isinstance(body, dict) else None
        if not thumbnail_url:
            raise UpstreamUnavailableError("Screenshot API response has no thumbnailUrl")

        is_video = bool(body.get("isVideoThumbnail"))
        return ThumbnailResult(
            thumbnail=thumbnail_url,
            kind=ThumbnailKind.VIDEO if is_video else ThumbnailKind.SCREENSHOT,
            source=f"api-{body.get('source') or 'screenshot'}",
            is_video_thumbnail=is_video,
            method=body.get("method"),
        )

    def _parse_binary_response(
        self, response: httpx.Response, options: RenderOptions,
    ) -> ThumbnailResult:
        image = response.content
        if not image:
            raise UpstreamUnavailableError("Screenshot API returned an empty body")

        is_video = response.headers.get("X-Is-Video-Thumbnail") == "true"
        screenshot_format = response.headers.get("X-Screenshot-Format")
        detection_method = response.headers.get("X-Video-Detection-Method")
        encoded = base64.b64encode(image).decode("ascii")
        return ThumbnailResult(
            thumbnail=f"data:image/{options.format};base64,{encoded}",
            kind=ThumbnailKind.VIDEO if is_video else ThumbnailKind.SCREENSHOT,
            source=f"api-{screenshot_format or 'screenshot'}",
            is_video_thumbnail=is_video,
            method=detection_method or "screenshot",
        )

    async def is_available(self) -> bool:
        """Health check with its own short timeout. Not used on the resolution path."""
        try:
            response = await self._client.get(
                f"{self._base_url}{HEALTH_PATH}", timeout=self._health_timeout,
            )
        except httpx.HTTPError as e:
            logger.info("render_service_unavailable error=%s", e)
            return False
        return response.is_success

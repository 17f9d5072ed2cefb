"""HEAD-based validation that a candidate thumbnail URL serves an image."""
import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ImageUrlValidator:
    """Checks candidate thumbnail links before they are handed to callers."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = client
        self._timeout = timeout

    async def is_valid_image(self, image_url: str) -> bool:
        """
        Return True if a HEAD request succeeds with an image/* content type.

        Best-effort: network errors and non-2xx responses return False rather than
        raising.
        """
        try:
            response = await self._client.head(
                image_url, follow_redirects=True, timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.debug("image_validation_failed url=%s error=%s", image_url, e)
            return False

        content_type = response.headers.get("content-type", "")
        is_image = response.is_success and content_type.lower().startswith("image/")
        if not is_image:
            logger.debug(
                "image_validation_rejected url=%s status=%s content_type=%s",
                image_url,
                response.status_code,
                content_type,
            )
        return is_image

"""Exceptions for the thumbnail pipeline."""


class ThumbnailError(Exception):
    """Base class for thumbnail pipeline errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UrlValidationError(ThumbnailError, ValueError):
    """Raised when a URL is not an absolute http(s) URL the pipeline can key on."""

    def __init__(self, url: object, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL ({reason}): {url!r}")


class AccessDeniedError(ThumbnailError):
    """
    Raised when a caller asks for a thumbnail of a URL they have not bookmarked.

    Surfaced to callers as a hard error (unlike thumbnail-quality failures, which
    degrade to a lower-fidelity result).
    """

    def __init__(self, url: str, user_id: int | str) -> None:
        self.url = url
        self.user_id = user_id
        super().__init__(
            "Access denied: you must have a bookmark for this URL to access its thumbnail",
        )


class UpstreamUnavailableError(ThumbnailError):
    """Raised when the rendering service is unconfigured, times out, or returns non-2xx."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UploadFailureError(ThumbnailError):
    """Raised when writing a screenshot to the blob store fails."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to upload thumbnail to {path}: {reason}")

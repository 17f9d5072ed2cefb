"""Content-addressing for bookmark URLs."""
import hashlib
import secrets
import time
from urllib.parse import urlparse

from services.exceptions import UrlValidationError

MAX_URL_LENGTH = 2048
ALLOWED_SCHEMES = ("http", "https")


def normalize_url(url: str) -> str:
    """
    Validate a URL and return the canonical string the pipeline keys on.

    Normalization only strips surrounding whitespace; scheme, host and path are kept
    exactly as given so the digest matches any other implementation hashing the same
    bookmark URL.

    Raises:
        TypeError: If url is not a string.
        UrlValidationError: If url is not an absolute http(s) URL with a hostname.
    """
    if not isinstance(url, str):
        raise TypeError(f"URL must be a string, got {type(url).__name__}")

    normalized = url.strip()
    if not normalized:
        raise UrlValidationError(url, "empty")
    if len(normalized) > MAX_URL_LENGTH:
        raise UrlValidationError(url, f"longer than {MAX_URL_LENGTH} characters")

    try:
        parsed = urlparse(normalized)
    except ValueError as e:
        raise UrlValidationError(url, str(e)) from e

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise UrlValidationError(url, "only http and https URLs are supported")
    if not parsed.hostname:
        raise UrlValidationError(url, "no hostname")
    return normalized


def hash_url(url: str) -> str:
    """
    Return the lowercase hex SHA-256 of the normalized URL's UTF-8 bytes.

    The digest is unsalted, so it is stable across processes, restarts and
    implementations.
    """
    return hashlib.sha256(normalize_url(url).encode("utf-8")).hexdigest()


def make_regeneration_key(url_hash: str, suffix: str | None = None) -> str:
    """
    Derive a distinct record key for a regenerated thumbnail.

    The canonical hash stays a prefix, so regenerated records can still be traced
    back to their URL, but they never collide with the canonical record.
    """
    if suffix is None:
        suffix = f"{int(time.time() * 1000)}_{secrets.token_hex(3)}"
    return f"{url_hash}_{suffix}"

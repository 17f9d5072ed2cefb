"""
Binary object storage for uploaded screenshots.

Objects are written beneath a root directory with a JSON sidecar holding their
descriptive metadata, and are exposed through a public base URL. Only rendered
screenshots are stored here; direct links (video thumbnails, favicons) are never
re-hosted.
"""
import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os

from services.exceptions import UploadFailureError

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "thumbnails"
METADATA_SUFFIX = ".meta.json"
DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


@dataclass(frozen=True)
class StoredBlob:
    """Location of an uploaded object."""

    url: str
    path: str
    size: int


def thumbnail_blob_path(key: str) -> str:
    """Storage path for a thumbnail keyed by URL hash (or regeneration key)."""
    return f"{STORAGE_PREFIX}/{key}.jpg"


def data_url_to_bytes(data_url: str) -> tuple[bytes, str]:
    """
    Decode a base64 data URL.

    Returns:
        (image bytes, mime type); mime defaults to image/jpeg when absent.

    Raises:
        ValueError: If the string is not a base64 data URL.
    """
    match = DATA_URL_PATTERN.match(data_url)
    if not match or ";base64" not in data_url.split(",", 1)[0]:
        raise ValueError("Not a base64 data URL")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    return data, match.group("mime") or "image/jpeg"


class LocalBlobStore:
    """Filesystem-backed blob store served under a public base URL."""

    def __init__(self, root_dir: str | Path, public_base_url: str) -> None:
        self._root = Path(root_dir).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    def public_url(self, path: str) -> str:
        """Public URL for a stored path."""
        return f"{self._public_base_url}/{path}"

    def local_path(self, path: str) -> Path:
        """
        Filesystem location for a stored path.

        Raises:
            ValueError: If the path escapes the storage root.
        """
        candidate = (self._root / path).resolve()
        if not candidate.is_relative_to(self._root):
            raise ValueError(f"Path escapes blob storage root: {path}")
        return candidate

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str],
    ) -> StoredBlob:
        """
        Write data (and its metadata sidecar) at path.

        Raises:
            UploadFailureError: If the path is invalid or the write fails.
        """
        try:
            target = self.local_path(path)
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
            sidecar = {"contentType": content_type, "size": len(data), **metadata}
            async with aiofiles.open(f"{target}{METADATA_SUFFIX}", "w", encoding="utf-8") as f:
                await f.write(json.dumps(sidecar))
        except (OSError, ValueError) as e:
            raise UploadFailureError(path, str(e)) from e

        logger.info("blob_uploaded path=%s size=%d", path, len(data))
        return StoredBlob(url=self.public_url(path), path=path, size=len(data))

    async def read_metadata(self, path: str) -> dict[str, str] | None:
        """Return the metadata sidecar for path, or None if missing."""
        try:
            async with aiofiles.open(
                f"{self.local_path(path)}{METADATA_SUFFIX}", encoding="utf-8",
            ) as f:
                return json.loads(await f.read())
        except FileNotFoundError:
            return None

    async def exists(self, path: str) -> bool:
        """Whether an object is stored at path."""
        try:
            return await aiofiles.os.path.isfile(self.local_path(path))
        except ValueError:
            return False

    async def delete(self, path: str) -> bool:
        """Delete the object and its sidecar. Returns False if it did not exist."""
        target = self.local_path(path)
        try:
            await aiofiles.os.remove(target)
        except FileNotFoundError:
            return False
        try:
            await aiofiles.os.remove(f"{target}{METADATA_SUFFIX}")
        except FileNotFoundError:
            logger.warning("blob_metadata_missing path=%s", path)
        logger.info("blob_deleted path=%s", path)
        return True

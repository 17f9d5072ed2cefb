"""
Direct thumbnail links for known video platforms.

Recognition is by hostname substring, then a per-platform regex pulls out the
video id (or channel name). Everything here is a pure function except the Twitch
avatar lookup, which needs network calls and is awaited separately by the
generator.
"""
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import quote, urlparse

import httpx

from services.image_validator import ImageUrlValidator

logger = logging.getLogger(__name__)

DEFAULT_FAVICON_SERVICE_URL = "https://www.google.com/s2/favicons?domain={domain}&sz=64"

YOUTUBE_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?(?:[^#]*&)?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"youtube\.com/v/([^&\n?#]+)"),
    re.compile(r"youtube\.com/shorts/([^&\n?#]+)"),
)
VIMEO_ID_PATTERN = re.compile(r"vimeo\.com/(?:video/)?(\d+)")
DAILYMOTION_ID_PATTERN = re.compile(r"dailymotion\.com/video/([^_?]+)")
TWITCH_CHANNEL_PATTERN = re.compile(r"twitch\.tv/([^/?#]+)")


class Platform(StrEnum):
    """Video platforms with known thumbnail conventions."""

    YOUTUBE = "youtube"
    VIMEO = "vimeo"
    DAILYMOTION = "dailymotion"
    TWITCH = "twitch"


@dataclass(frozen=True)
class PlatformThumbnail:
    """
    Result of platform recognition.

    An unrecognized URL yields platform=None. Twitch yields needs_lookup=True and no
    thumbnail_url, since its image has to be looked up over the network.
    """

    thumbnail_url: str | None = None
    platform: Platform | None = None
    needs_lookup: bool = False


def _hostname(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def extract_youtube_video_id(url: str) -> str | None:
    """Extract the video id from watch, short-link, embed, /v/ and shorts URLs."""
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_vimeo_video_id(url: str) -> str | None:
    """Extract the numeric Vimeo video id."""
    match = VIMEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def extract_dailymotion_video_id(url: str) -> str | None:
    """Extract the Dailymotion video id (without the slug or query)."""
    match = DAILYMOTION_ID_PATTERN.search(url)
    return match.group(1) if match else None


def extract_twitch_channel(url: str) -> str | None:
    """Extract the Twitch channel name from the first path segment."""
    match = TWITCH_CHANNEL_PATTERN.search(url)
    return match.group(1) if match else None


def is_twitch_url(url: str) -> bool:
    """Whether the URL's host belongs to the live-stream platform."""
    return "twitch.tv" in _hostname(url)


def extract_video_thumbnail(url: str) -> PlatformThumbnail:
    """
    Map a video page URL to a direct, stable thumbnail URL.

    Returns an empty PlatformThumbnail for unrecognized hosts or URLs whose id
    can't be extracted; never raises.
    """
    domain = _hostname(url)
    if not domain:
        return PlatformThumbnail()

    if "youtube.com" in domain or "youtu.be" in domain:
        video_id = extract_youtube_video_id(url)
        if video_id:
            return PlatformThumbnail(
                thumbnail_url=f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg",
                platform=Platform.YOUTUBE,
            )
    elif "vimeo.com" in domain:
        video_id = extract_vimeo_video_id(url)
        if video_id:
            return PlatformThumbnail(
                thumbnail_url=f"https://vumbnail.com/{video_id}.jpg",
                platform=Platform.VIMEO,
            )
    elif "dailymotion.com" in domain:
        video_id = extract_dailymotion_video_id(url)
        if video_id:
            return PlatformThumbnail(
                thumbnail_url=f"https://www.dailymotion.com/thumbnail/video/{video_id}",
                platform=Platform.DAILYMOTION,
            )
    elif "twitch.tv" in domain:
        return PlatformThumbnail(platform=Platform.TWITCH, needs_lookup=True)

    return PlatformThumbnail()


def favicon_url(url: str, template: str = DEFAULT_FAVICON_SERVICE_URL) -> str | None:
    """Build the favicon-service URL for the URL's hostname, or None if it has none."""
    domain = _hostname(url)
    if not domain:
        return None
    return template.format(domain=domain)


async def lookup_twitch_avatar(
    client: httpx.AsyncClient,
    channel: str,
    validator: ImageUrlValidator,
) -> str | None:
    """
    Find a Twitch channel's profile picture through public lookup services.

    Tries, in order: decapi.me (plain-text URL body), ivr.fi (JSON with a `logo`
    field), then the conventional static-cdn URL. Every candidate must pass the HEAD
    image check. Returns None if nothing validates.
    """
    channel_path = quote(channel, safe="")

    try:
        response = await client.get(f"https://decapi.me/twitch/avatar/{channel_path}")
        if response.is_success:
            avatar_url = response.text.strip()
            if (
                avatar_url.startswith("http")
                and "error" not in avatar_url.lower()
                and await validator.is_valid_image(avatar_url)
            ):
                return avatar_url
    except httpx.HTTPError as e:
        logger.debug("twitch_avatar_lookup_failed service=decapi channel=%s error=%s", channel, e)

    try:
        response = await client.get(
            "https://api.ivr.fi/v2/twitch/user", params={"login": channel},
        )
        if response.is_success:
            data = response.json()
            user = data[0] if isinstance(data, list) and data else data
            logo = user.get("logo") if isinstance(user, dict) else None
            if isinstance(logo, str) and logo and await validator.is_valid_image(logo):
                return logo
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("twitch_avatar_lookup_failed service=ivr channel=%s error=%s", channel, e)

    constructed = (
        f"https://static-cdn.jtvnw.net/jtv_user_pictures/{channel_path}-profile_image-300x300.png"
    )
    if await validator.is_valid_image(constructed):
        return constructed
    return None

"""Tests for platform thumbnail extraction and Twitch avatar lookup."""
import httpx
import pytest
import respx

from services.image_validator import ImageUrlValidator
from services.platform_extractor import (
    Platform,
    extract_dailymotion_video_id,
    extract_twitch_channel,
    extract_video_thumbnail,
    extract_vimeo_video_id,
    extract_youtube_video_id,
    favicon_url,
    is_twitch_url,
    lookup_twitch_avatar,
)

IMAGE_HEADERS = {"content-type": "image/png"}


class TestExtractIds:
    """Tests for the per-platform id extractors."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=abc123",
            "https://youtube.com/watch?feature=share&v=abc123",
            "https://youtu.be/abc123",
            "https://www.youtube.com/embed/abc123?autoplay=1",
            "https://www.youtube.com/v/abc123",
            "https://www.youtube.com/shorts/abc123",
        ],
    )
    def test__extract_youtube_video_id__all_url_shapes(self, url: str) -> None:
        """Watch, short-link, embed, /v/ and shorts URLs all yield the id."""
        assert extract_youtube_video_id(url) == "abc123"

    def test__extract_vimeo_video_id(self) -> None:
        """Numeric ids are extracted with or without /video/."""
        assert extract_vimeo_video_id("https://vimeo.com/76979871") == "76979871"
        assert extract_vimeo_video_id("https://vimeo.com/video/76979871") == "76979871"
        assert extract_vimeo_video_id("https://vimeo.com/channels/staff") is None

    def test__extract_dailymotion_video_id__drops_slug(self) -> None:
        """The id stops at the slug separator."""
        assert (
            extract_dailymotion_video_id("https://www.dailymotion.com/video/x7tgad0_some-title")
            == "x7tgad0"
        )

    def test__extract_twitch_channel(self) -> None:
        """The channel is the first path segment."""
        assert extract_twitch_channel("https://www.twitch.tv/somestreamer/videos") == "somestreamer"
        assert is_twitch_url("https://twitch.tv/somestreamer") is True
        assert is_twitch_url("https://example.com/twitch.tv/x") is False


class TestExtractVideoThumbnail:
    """Tests for extract_video_thumbnail."""

    def test__youtube__maxres_thumbnail(self) -> None:
        """YouTube URLs map to the maxresdefault image."""
        result = extract_video_thumbnail("https://youtube.com/watch?v=abc123")

        assert result.platform == Platform.YOUTUBE
        assert result.thumbnail_url == "https://img.youtube.com/vi/abc123/maxresdefault.jpg"
        assert result.needs_lookup is False

    def test__vimeo__vumbnail(self) -> None:
        """Vimeo URLs map to vumbnail."""
        result = extract_video_thumbnail("https://vimeo.com/76979871")

        assert result.platform == Platform.VIMEO
        assert result.thumbnail_url == "https://vumbnail.com/76979871.jpg"

    def test__dailymotion__thumbnail_endpoint(self) -> None:
        """Dailymotion URLs map to the thumbnail endpoint."""
        result = extract_video_thumbnail("https://www.dailymotion.com/video/x7tgad0")

        assert result.platform == Platform.DAILYMOTION
        assert result.thumbnail_url == "https://www.dailymotion.com/thumbnail/video/x7tgad0"

    def test__twitch__needs_lookup(self) -> None:
        """Twitch has no direct link; a lookup is required."""
        result = extract_video_thumbnail("https://www.twitch.tv/somestreamer")

        assert result.platform == Platform.TWITCH
        assert result.thumbnail_url is None
        assert result.needs_lookup is True

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/watch?v=abc123",
            "https://www.youtube.com/feed/subscriptions",
            "not a url",
            "",
        ],
    )
    def test__unrecognized__empty_result(self, url: str) -> None:
        """Unknown hosts and unparsable URLs return an empty result, never raise."""
        result = extract_video_thumbnail(url)

        assert result.platform is None
        assert result.thumbnail_url is None


class TestFaviconUrl:
    """Tests for favicon_url."""

    def test__favicon_url__default_template(self) -> None:
        """The hostname is substituted into the favicon service template."""
        assert (
            favicon_url("https://docs.python.org/3/library/")
            == "https://www.google.com/s2/favicons?domain=docs.python.org&sz=64"
        )

    def test__favicon_url__custom_template(self) -> None:
        """A configured template is used as given."""
        assert favicon_url("https://example.com", "https://icons.test/{domain}.ico") == (
            "https://icons.test/example.com.ico"
        )

    def test__favicon_url__no_hostname(self) -> None:
        """URLs without a hostname have no favicon."""
        assert favicon_url("mailto:someone@example.com") is None


class TestLookupTwitchAvatar:
    """Tests for the Twitch profile picture lookup chain."""

    @respx.mock(assert_all_called=False)
    async def test__decapi__first_choice(self, respx_mock: respx.MockRouter) -> None:
        """A valid decapi.me answer is used without asking other services."""
        avatar = "https://static-cdn.jtvnw.net/jtv_user_pictures/abc-profile_image-300x300.png"
        respx_mock.get("https://decapi.me/twitch/avatar/streamer").mock(
            return_value=httpx.Response(200, text=avatar + "\n"),
        )
        respx_mock.head(avatar).mock(return_value=httpx.Response(200, headers=IMAGE_HEADERS))
        ivr = respx_mock.get("https://api.ivr.fi/v2/twitch/user")

        async with httpx.AsyncClient() as client:
            result = await lookup_twitch_avatar(client, "streamer", ImageUrlValidator(client))

        assert result == avatar
        assert not ivr.called

    @respx.mock
    async def test__ivr__used_when_decapi_fails(self) -> None:
        """An error from decapi.me falls through to ivr.fi's logo field."""
        logo = "https://static-cdn.jtvnw.net/jtv_user_pictures/logo.png"
        respx.get("https://decapi.me/twitch/avatar/streamer").mock(
            return_value=httpx.Response(200, text="User not found: error"),
        )
        respx.get("https://api.ivr.fi/v2/twitch/user").mock(
            return_value=httpx.Response(200, json=[{"login": "streamer", "logo": logo}]),
        )
        respx.head(logo).mock(return_value=httpx.Response(200, headers=IMAGE_HEADERS))

        async with httpx.AsyncClient() as client:
            result = await lookup_twitch_avatar(client, "streamer", ImageUrlValidator(client))

        assert result == logo

    @respx.mock
    async def test__constructed_url__last_resort(self) -> None:
        """When both services fail, the conventional CDN URL is tried."""
        constructed = (
            "https://static-cdn.jtvnw.net/jtv_user_pictures/streamer-profile_image-300x300.png"
        )
        respx.get("https://decapi.me/twitch/avatar/streamer").mock(
            side_effect=httpx.ConnectError("down"),
        )
        respx.get("https://api.ivr.fi/v2/twitch/user").mock(
            return_value=httpx.Response(500),
        )
        respx.head(constructed).mock(return_value=httpx.Response(200, headers=IMAGE_HEADERS))

        async with httpx.AsyncClient() as client:
            result = await lookup_twitch_avatar(client, "streamer", ImageUrlValidator(client))

        assert result == constructed

    @respx.mock
    async def test__nothing_validates__returns_none(self) -> None:
        """No candidate passing the image check means no avatar."""
        respx.get("https://decapi.me/twitch/avatar/streamer").mock(
            return_value=httpx.Response(404),
        )
        respx.get("https://api.ivr.fi/v2/twitch/user").mock(
            return_value=httpx.Response(200, json=[]),
        )
        respx.head(url__startswith="https://static-cdn.jtvnw.net/").mock(
            return_value=httpx.Response(404),
        )

        async with httpx.AsyncClient() as client:
            result = await lookup_twitch_avatar(client, "streamer", ImageUrlValidator(client))

        assert result is None

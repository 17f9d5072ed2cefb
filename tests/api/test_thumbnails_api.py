"""Tests for thumbnail endpoints."""
import httpx
import respx
from httpx import AsyncClient

from services.url_hasher import hash_url
from tests.fakes import BLOB_BASE_URL, RENDER_API_URL

URL = "https://example.com/article"
SCREENSHOT_URL = f"{RENDER_API_URL}/api/v1/screenshot"
JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


def mock_render() -> respx.Route:
    return respx.post(SCREENSHOT_URL).mock(
        return_value=httpx.Response(
            200,
            content=JPEG,
            headers={"content-type": "image/jpeg", "X-Screenshot-Format": "jpeg"},
        ),
    )


@respx.mock
async def test_resolve_thumbnail_for_own_bookmark(client: AsyncClient) -> None:
    """A bookmarked URL resolves to its stored screenshot without rendering again."""
    render = mock_render()
    await client.post("/bookmarks/", json={"url": URL})

    response = await client.get("/thumbnails/resolve", params={"url": URL})

    assert response.status_code == 200
    data = response.json()
    assert data["thumbnail"] == f"{BLOB_BASE_URL}/thumbnails/{hash_url(URL)}.jpg"
    assert data["kind"] == "screenshot"
    assert data["source"] == "storage-uploaded-api-jpeg"
    assert "record_id" not in data
    assert render.call_count == 1


async def test_resolve_thumbnail_without_bookmark_is_forbidden(client: AsyncClient) -> None:
    """URLs the caller hasn't bookmarked are refused with 403."""
    response = await client.get("/thumbnails/resolve", params={"url": URL})

    assert response.status_code == 403
    assert "must have a bookmark" in response.json()["detail"]


async def test_resolve_thumbnail_invalid_url(client: AsyncClient) -> None:
    """Malformed URLs are a 422."""
    response = await client.get("/thumbnails/resolve", params={"url": "ftp://example.com"})

    assert response.status_code == 422


async def test_resolve_thumbnail_requires_url(client: AsyncClient) -> None:
    """The url query parameter is required."""
    response = await client.get("/thumbnails/resolve")

    assert response.status_code == 422


@respx.mock
async def test_track_thumbnail_access_always_204(client: AsyncClient) -> None:
    """Tracking succeeds for owned, unowned and invalid URLs alike."""
    mock_render()
    await client.post("/bookmarks/", json={"url": URL})

    for url in (URL, "https://not-bookmarked.example.com", "nonsense"):
        response = await client.post("/thumbnails/track", params={"url": url})
        assert response.status_code == 204


@respx.mock
async def test_thumbnail_stats(client: AsyncClient) -> None:
    """Stats count the caller's uploaded screenshots."""
    mock_render()
    await client.post("/bookmarks/", json={"url": URL})
    await client.post("/bookmarks/", json={"url": "https://example.com/other"})

    response = await client.get("/thumbnails/stats")

    assert response.status_code == 200
    assert response.json() == {
        "total_screenshots": 2,
        "total_size": 2 * len(JPEG),
        "by_source": {"api-jpeg": 2},
    }


@respx.mock
async def test_render_service_status(client: AsyncClient) -> None:
    """Status reports configuration and reachability."""
    respx.get(f"{RENDER_API_URL}/health").mock(return_value=httpx.Response(200))

    response = await client.get("/thumbnails/status")

    assert response.status_code == 200
    assert response.json() == {
        "api_url": RENDER_API_URL,
        "has_api_key": True,
        "is_configured": True,
        "is_available": True,
    }


@respx.mock
async def test_get_thumbnail_blob(client: AsyncClient) -> None:
    """Stored screenshots are served publicly with their content type."""
    mock_render()
    await client.post("/bookmarks/", json={"url": URL})

    response = await client.get(f"/thumbnails/blobs/thumbnails/{hash_url(URL)}.jpg")

    assert response.status_code == 200
    assert response.content == JPEG
    assert response.headers["content-type"] == "image/jpeg"
    assert "immutable" in response.headers["cache-control"]


@respx.mock
async def test_get_thumbnail_blob_hides_metadata(client: AsyncClient) -> None:
    """Metadata sidecars are never served."""
    mock_render()
    await client.post("/bookmarks/", json={"url": URL})

    response = await client.get(f"/thumbnails/blobs/thumbnails/{hash_url(URL)}.jpg.meta.json")

    assert response.status_code == 404


async def test_get_thumbnail_blob_missing(client: AsyncClient) -> None:
    """Unknown blobs are a 404."""
    response = await client.get("/thumbnails/blobs/thumbnails/missing.jpg")

    assert response.status_code == 404

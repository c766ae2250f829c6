import asyncio

import httpx
import pytest

from chapter_reader.pipeline import ImageFetcher, ImageRecord, extension_from_url, image_filename
from chapter_reader.pipeline.fetcher import PLACEHOLDER_PAYLOAD


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://cdn.example.com/ch1/01.png", ".png"),
        ("https://cdn.example.com/ch1/01.webp?token=abc", ".webp"),
        ("https://cdn.example.com/ch1/page", ".jpg"),
        ("not a url at all", ".jpg"),
    ],
)
def test_extension_from_url(url, expected):
    assert extension_from_url(url) == expected


def test_image_filename_pads_position():
    image = ImageRecord(id=42, chapter_id=1, position=7, url="https://cdn.example.com/x.png")
    assert image_filename(image) == "007.png"
    unpositioned = ImageRecord(id=42, chapter_id=1, position=0, url="https://cdn.example.com/x")
    assert image_filename(unpositioned) == "042.jpg"


def test_loopback_url_writes_placeholder_without_network(tmp_path):
    def handler(request):
        raise AssertionError("network should not be used")

    fetcher = ImageFetcher(transport=httpx.MockTransport(handler))
    target = tmp_path / "001.jpg"
    asyncio.run(fetcher.fetch("http://test/1.jpg", target))
    assert target.read_bytes() == PLACEHOLDER_PAYLOAD


def test_fetch_streams_body_and_replaces_existing_file(tmp_path):
    payload = b"\x89PNG" + b"x" * 200_000

    def handler(request):
        assert request.url.path == "/ch1/01.png"
        return httpx.Response(200, content=payload)

    fetcher = ImageFetcher(transport=httpx.MockTransport(handler), chunk_size=4096)
    target = tmp_path / "001.png"
    target.write_bytes(b"stale")
    asyncio.run(fetcher.fetch("https://cdn.example.com/ch1/01.png", target))
    assert target.read_bytes() == payload


def test_fetch_raises_on_error_status(tmp_path):
    fetcher = ImageFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(fetcher.fetch("https://cdn.example.com/missing.jpg", tmp_path / "001.jpg"))

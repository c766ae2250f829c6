from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional
from urllib.parse import urlparse

import httpx

from .models import ImageRecord

logger = logging.getLogger(__name__)

# URLs under this prefix never touch the network; they write PLACEHOLDER_PAYLOAD.
LOOPBACK_URL_PREFIX = "http://test/"
PLACEHOLDER_PAYLOAD = b"TEST IMAGE"

DEFAULT_EXTENSION = ".jpg"
_EXTENSION_RE = re.compile(r"\.([a-z0-9]{2,6})(?:$|\?)", re.IGNORECASE)


def extension_from_url(url: str) -> str:
    try:
        path = urlparse(url).path
    except ValueError:
        path = url
    match = _EXTENSION_RE.search(path or "")
    return f".{match.group(1)}" if match else DEFAULT_EXTENSION


def image_filename(image: ImageRecord) -> str:
    """Deterministic local name: zero-padded position (or id when unset) plus sniffed extension."""
    index = image.position or image.id
    return f"{str(index).zfill(3)}{extension_from_url(image.url or '')}"


class ImageFetcher:
    """
    Downloads one remote resource to one local file. The body is streamed to
    disk chunk by chunk and any existing file at the destination is replaced.
    Failures (timeouts, transport errors, non-2xx responses) are raised as
    httpx exceptions; callers own any bookkeeping.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
        chunk_size: int = 64 * 1024,
    ):
        self.timeout = timeout
        self.transport = transport
        self.headers = headers or {}
        self.chunk_size = chunk_size

    @asynccontextmanager
    async def client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
            headers=self.headers,
            follow_redirects=True,
        ) as client:
            yield client

    async def fetch(self, url: str, destination: Path, client: Optional[httpx.AsyncClient] = None) -> Path:
        if url.startswith(LOOPBACK_URL_PREFIX):
            destination.write_bytes(PLACEHOLDER_PAYLOAD)
            return destination

        if client is None:
            async with self.client() as own_client:
                return await self._stream_to_file(own_client, url, destination)
        return await self._stream_to_file(client, url, destination)

    async def _stream_to_file(self, client: httpx.AsyncClient, url: str, destination: Path) -> Path:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            with destination.open("wb") as fh:
                async for chunk in response.aiter_bytes(self.chunk_size):
                    fh.write(chunk)
        logger.debug("Fetched %s -> %s", url, destination)
        return destination

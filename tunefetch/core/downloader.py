import logging

import httpx

from ..config import FetchSettings
from .errors import InvalidAssetError, TransportError

logger = logging.getLogger(__name__)


class ImageDownloader:
    """Fetches the winning candidate's bytes, enforcing the size ceiling while streaming."""

    def __init__(self, client: httpx.AsyncClient, settings: FetchSettings):
        self.client = client
        self.user_agent = settings.user_agent
        self.timeout = settings.request_timeout
        self.max_bytes = settings.max_image_bytes

    async def fetch(self, url: str) -> bytes:
        try:
            async with self.client.stream(
                "GET",
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                follow_redirects=True,
            ) as response:
                if response.status_code != 200:
                    raise TransportError(f"Download of {url} returned HTTP {response.status_code}")

                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise InvalidAssetError(f"{url} is {declared} bytes (limit {self.max_bytes})")

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise InvalidAssetError(f"{url} exceeds {self.max_bytes} bytes")
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise TransportError(f"Download of {url} failed: {e}", cause=e) from e

        logger.debug(f"Downloaded {received} bytes from {url}")
        return b"".join(chunks)

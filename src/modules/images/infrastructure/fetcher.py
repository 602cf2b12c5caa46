"""Remote image download (httpx)."""

import httpx

from src.core.config import settings


class HttpxImageFetcher:
    """ImageFetcher implementation; raises on transport, status or empty body."""

    def __init__(
        self,
        *,
        timeout_sec: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_sec = timeout_sec or settings.IMAGE_FETCH_TIMEOUT_SEC
        self.transport = transport

    async def fetch(self, url: str) -> bytes:
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported image URL: {url}")
        async with httpx.AsyncClient(
            timeout=self.timeout_sec,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            response = await client.get(
                url,
                headers={"User-Agent": settings.HTTP_USER_AGENT, "Accept": "image/*"},
            )
            response.raise_for_status()
            if not response.content:
                raise ValueError(f"Empty image body for {url}")
            return response.content

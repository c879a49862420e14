import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class HTTPClient:
    """Async HTTP client with connection pooling and retry logic."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=httpx.Timeout(timeout, connect=5.0),
            follow_redirects=True,
            transport=transport,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self._client.get(url, **kwargs)

    async def get_with_retry(self, url: str, retries: int = 3, backoff: float = 0.5, **kwargs) -> httpx.Response:
        """GET with exponential backoff; re-raises the last transport error once retries run out."""
        for attempt in range(retries):
            try:
                return await self.get(url, **kwargs)
            except httpx.RequestError as e:
                if attempt == retries - 1:
                    raise
                wait_time = backoff * (2 ** attempt)
                logger.warning(f"GET {url} failed ({e}); retrying in {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
        raise ValueError("retries must be at least 1")

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

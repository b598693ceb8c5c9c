"""HTTP fetch collaborator for URL-sourced datasets.

The engine only needs "given a URL, return the response text or an
error". Every failure mode (non-2xx status, connection failure, timeout)
surfaces as NetworkFetchError so callers never see a raw transport error.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from chartdeck.errors import NetworkFetchError

logger = logging.getLogger(__name__)


@runtime_checkable
class Fetcher(Protocol):
    """Protocol for fetch implementations."""

    async def fetch(self, url: str) -> str: ...


class HttpFetcher:
    """Fetches dataset content over HTTP(S) with httpx."""

    def __init__(
        self,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    async def fetch(self, url: str) -> str:
        """Fetch a URL and return its body as text."""
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"Fetch of {url} returned HTTP {status}")
            raise NetworkFetchError(
                url,
                f"HTTP {status}: {e.response.reason_phrase}",
                status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            logger.warning(f"Fetch of {url} timed out after {self.timeout}s")
            raise NetworkFetchError(url, f"timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.warning(f"Fetch of {url} failed: {e}")
            raise NetworkFetchError(url, str(e) or type(e).__name__) from e

        logger.debug(f"Fetched {len(response.content)} bytes from {url}")
        return response.text

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

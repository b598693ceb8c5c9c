"""
Tests for the httpx-backed fetcher.
"""

import asyncio

import httpx
import pytest

from chartdeck.errors import NetworkFetchError
from chartdeck.fetch.client import Fetcher, HttpFetcher


def make_fetcher(handler) -> HttpFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpFetcher(timeout=5.0, client=client)


class TestHttpFetcher:
    """Test success and every failure mode."""

    def test_returns_body_text(self):
        def handler(request):
            assert request.url == "https://example.com/data.csv"
            return httpx.Response(200, text="a,b\n1,2")

        fetcher = make_fetcher(handler)
        assert isinstance(fetcher, Fetcher)
        assert asyncio.run(fetcher.fetch("https://example.com/data.csv")) == "a,b\n1,2"

    def test_http_error_status(self):
        fetcher = make_fetcher(lambda request: httpx.Response(404))

        with pytest.raises(NetworkFetchError) as exc_info:
            asyncio.run(fetcher.fetch("https://example.com/missing.csv"))

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == "https://example.com/missing.csv"
        assert "HTTP 404" in str(exc_info.value)

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkFetchError) as exc_info:
            asyncio.run(make_fetcher(handler).fetch("https://example.com/x.json"))

        assert exc_info.value.status_code is None
        assert "connection refused" in str(exc_info.value)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(NetworkFetchError) as exc_info:
            asyncio.run(make_fetcher(handler).fetch("https://example.com/x.json"))

        assert "timed out" in str(exc_info.value)

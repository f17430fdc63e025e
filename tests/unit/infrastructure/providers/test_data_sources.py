# tests/unit/infrastructure/providers/test_data_sources.py
import pytest
import asyncio

import aiohttp

from domain.models.errors import ProviderError, ProviderQuotaError, ProviderTimeoutError
from infrastructure.providers.data_sources import (
    HttpDataSource,
    MockDataSource,
    create_data_source
)

class FakeResponse:
    def __init__(self, status=200, payload=None, headers=None):
        self.status = status
        self._payload = payload if payload is not None else {}
        self.headers = headers or {}

    async def json(self):
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []
        self.closed = False

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self):
        self.closed = True

class TestHttpDataSource:

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            HttpDataSource("market_data", base_url=None)

    @pytest.mark.asyncio
    async def test_fetch(self):
        session = FakeSession(FakeResponse(payload={"trends": []}, headers={
            "X-RateLimit-Remaining": "10",
            "X-RateLimit-Reset": "1767225600",
        }))
        source = HttpDataSource("market_data", "https://data.example.com/trends",
                                api_key="key", session=session)

        response = await source.fetch_data({"category": "fintech", "region": None})

        assert response.data == {"trends": []}
        assert response.metadata.source == "market_data"
        assert response.metadata.rate_limit.remaining == 10
        assert response.metadata.rate_limit.reset_time.year == 2026
        call = session.calls[0]
        assert call["params"] == {"category": "fintech"}
        assert call["headers"]["Authorization"] == "Bearer key"

    @pytest.mark.asyncio
    async def test_no_rate_limit_headers(self):
        source = HttpDataSource("market_data", "https://data.example.com", session=FakeSession())

        response = await source.fetch_data({})

        assert response.metadata.rate_limit is None
        assert "Authorization" not in source._session.calls[0]["headers"]

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        source = HttpDataSource("market_data", "https://data.example.com",
                                session=FakeSession(FakeResponse(status=429)))

        with pytest.raises(ProviderQuotaError):
            await source.fetch_data({})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(500, True), (502, True), (404, False)])
    async def test_error_status(self, status, retryable):
        source = HttpDataSource("market_data", "https://data.example.com",
                                session=FakeSession(FakeResponse(status=status)))

        with pytest.raises(ProviderError) as exc_info:
            await source.fetch_data({})

        assert exc_info.value.retryable is retryable
        assert exc_info.value.provider == "market_data"

    @pytest.mark.asyncio
    async def test_timeout(self):
        source = HttpDataSource("market_data", "https://data.example.com",
                                session=FakeSession(error=asyncio.TimeoutError()))

        with pytest.raises(ProviderTimeoutError):
            await source.fetch_data({})

    @pytest.mark.asyncio
    async def test_connection_error(self):
        source = HttpDataSource("market_data", "https://data.example.com",
                                session=FakeSession(error=aiohttp.ClientConnectionError("refused")))

        with pytest.raises(ProviderError):
            await source.fetch_data({})

class TestMockDataSource:

    @pytest.mark.asyncio
    async def test_echoes_query(self):
        source = MockDataSource()

        response = await source.fetch_data({"category": "fintech"})

        assert response.data["query"] == {"category": "fintech"}
        assert response.data["fundingRounds"] == 42
        assert source.call_count == 1

    @pytest.mark.asyncio
    async def test_custom_data(self):
        source = MockDataSource("trends", data={"trends": ["x"]})

        response = await source.fetch_data({})

        assert response.data == {"query": {}, "trends": ["x"]}
        assert response.metadata.source == "trends"

class TestFactory:

    def test_none_disables(self):
        assert create_data_source("none", "market_data") is None

    def test_mock(self):
        source = create_data_source("mock", "market_data")

        assert isinstance(source, MockDataSource)
        assert source.name == "market_data"

    def test_http(self):
        source = create_data_source("http", "market_data", base_url="https://data.example.com")

        assert isinstance(source, HttpDataSource)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_data_source("ftp", "market_data")

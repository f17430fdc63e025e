# infrastructure/providers/data_sources.py
"""External data sources consulted by analysis tasks (market trends and the like)"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from domain.models.errors import ProviderError, ProviderQuotaError, ProviderTimeoutError
from shared.logging import logger


@dataclass(frozen=True)
class RateLimitInfo:
    remaining: int
    reset_time: Optional[datetime] = None


@dataclass(frozen=True)
class DataSourceMetadata:
    source: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cached: bool = False
    rate_limit: Optional[RateLimitInfo] = None


@dataclass(frozen=True)
class DataSourceResponse:
    data: Any
    metadata: DataSourceMetadata


class ExternalDataSource(ABC):

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def fetch_data(self, query: Dict[str, Any]) -> DataSourceResponse:
        ...

    async def close(self) -> None:
        return None


class HttpDataSource(ExternalDataSource):
    """JSON-over-HTTP source; the query dict is sent as GET parameters"""

    def __init__(self, name: str, base_url: str, api_key: Optional[str] = None,
                 request_timeout: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(name)
        if not base_url:
            raise ValueError(f"base_url required for data source {name}")
        self.base_url = base_url
        self.api_key = api_key
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def fetch_data(self, query: Dict[str, Any]) -> DataSourceResponse:
        session = await self._get_session()
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        params = {key: str(value) for key, value in query.items() if value is not None}

        try:
            async with session.get(
                self.base_url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                rate_limit = self._parse_rate_limit(response.headers)
                if response.status == 429:
                    raise ProviderQuotaError(
                        f"Data source {self.name} rate limit exceeded",
                        provider=self.name,
                        status_code=429,
                    )
                if response.status != 200:
                    raise ProviderError(
                        f"Data source {self.name} returned {response.status}",
                        provider=self.name,
                        retryable=response.status >= 500,
                        status_code=response.status,
                    )
                data = await response.json()
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"Data source {self.name} timed out after {self.request_timeout}s",
                provider=self.name,
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"Data source {self.name} connection error: {e}", provider=self.name) from e

        if rate_limit and rate_limit.remaining == 0:
            logger.warning("Data source rate limit reached", source=self.name,
                           reset_time=rate_limit.reset_time)

        return DataSourceResponse(
            data=data,
            metadata=DataSourceMetadata(source=self.name, rate_limit=rate_limit),
        )

    @staticmethod
    def _parse_rate_limit(headers) -> Optional[RateLimitInfo]:
        remaining = headers.get("X-RateLimit-Remaining")
        if remaining is None:
            return None
        reset_time = None
        reset = headers.get("X-RateLimit-Reset")
        if reset:
            try:
                reset_time = datetime.fromtimestamp(int(reset), tz=timezone.utc)
            except ValueError:
                reset_time = None
        try:
            return RateLimitInfo(remaining=int(remaining), reset_time=reset_time)
        except ValueError:
            return None

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


class MockDataSource(ExternalDataSource):
    """Returns fixed market-trend data"""

    DEFAULT_DATA = {
        "trends": [
            {"keyword": "automation", "interest": 78, "change": 0.4},
            {"keyword": "ai assistant", "interest": 91, "change": 0.65},
        ],
        "fundingRounds": 42,
    }

    def __init__(self, name: str = "market_data", data: Optional[Any] = None):
        super().__init__(name)
        self.data = data if data is not None else self.DEFAULT_DATA
        self.call_count = 0

    async def fetch_data(self, query: Dict[str, Any]) -> DataSourceResponse:
        self.call_count += 1
        return DataSourceResponse(
            data={"query": dict(query), **self.data},
            metadata=DataSourceMetadata(source=self.name),
        )


def create_data_source(kind: str, name: str, **options: Any) -> Optional[ExternalDataSource]:
    """Build a data source from configuration; "none" disables the source"""
    if kind == "none":
        return None
    if kind == "http":
        return HttpDataSource(name, **options)
    if kind == "mock":
        return MockDataSource(name, **options)

    logger.error("Unknown data source requested", kind=kind, name=name)
    raise ValueError(f"Unknown data source: {kind}")

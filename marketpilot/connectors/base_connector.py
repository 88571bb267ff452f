"""
BaseConnector — Abstract base class for every external-service client.

Each connector owns one long-lived `httpx.AsyncClient` (its connection pool)
and translates HTTP failures into the call taxonomy in `marketpilot.errors`.
Connectors never retry on their own: retries and failover are the job of
`marketpilot.utils.resilience.call`, so a request is never retried twice.

Usage:
    class MyConnector(BaseConnector):
        name = "my_service"

        async def fetch(self):
            return await self._request("GET", "/things")
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from marketpilot.errors import (
    FatalCallFailure,
    MalformedResponseError,
    TransientCallFailure,
    UpstreamAuthError,
    UpstreamRateLimitError,
)

logger = structlog.get_logger(__name__)


class ConnectorInfo(BaseModel):
    """Summary info for listing connectors."""

    name: str
    description: str
    base_url: str
    healthy: bool = True


def build_http_client(
    base_url: str,
    *,
    timeout: float = 30.0,
    headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """HTTP/2 client with pooled connections, shared by every request of a connector."""
    return httpx.AsyncClient(
        base_url=base_url,
        http2=True,
        headers={"Content-Type": "application/json", **(headers or {})},
        timeout=httpx.Timeout(timeout, connect=10.0, pool=5.0),
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
            keepalive_expiry=30.0,
        ),
    )


class BaseConnector(ABC):
    """
    Abstract base class for all connectors.

    Subclasses MUST define:
      - name: str — Unique identifier, also the provider tag in call history
      - description: str — What this connector talks to

    Subclasses MAY override:
      - health_check(): Verify the service is reachable
    """

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique connector identifier (e.g. 'polymarket', 'kalshi')."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what this connector does."""
        ...

    async def _request(
        self,
        method: str,
        path: str,
        *,
        client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> Any:
        """Execute one HTTP request and return the decoded JSON body.

        Raises classified call errors; transport exceptions from httpx
        (timeouts, connection resets) are left for the resilience layer
        to classify. `client` selects a secondary pool for connectors that
        talk to more than one base URL.
        """
        http = client or self._http
        start = time.monotonic()
        resp = await http.request(method, path, **kwargs)
        latency_ms = (time.monotonic() - start) * 1000

        status = resp.status_code
        if status == 429:
            logger.warning("connector_rate_limited", connector=self.name, path=path)
            raise UpstreamRateLimitError(
                f"{self.name} rate limit exceeded", provider=self.name, status_code=status
            )
        if status in (401, 403):
            raise UpstreamAuthError(
                f"{self.name} authentication failed — check API credentials",
                provider=self.name,
                status_code=status,
                detail=resp.text,
            )
        if status >= 500:
            raise TransientCallFailure(
                f"{self.name} server error: {status}",
                provider=self.name,
                status_code=status,
                detail=resp.text,
            )
        if status >= 400:
            raise FatalCallFailure(
                f"{self.name} API error: {status} — {resp.text}",
                provider=self.name,
                status_code=status,
                detail=str(status),
            )

        logger.debug(
            "connector_request",
            connector=self.name,
            method=method,
            path=path,
            status=status,
            latency_ms=round(latency_ms),
        )
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"{self.name} returned non-JSON body", provider=self.name, status_code=status
            ) from e

    async def health_check(self) -> bool:
        """Check if the service is reachable. Override per connector."""
        return True

    def get_info(self) -> ConnectorInfo:
        return ConnectorInfo(
            name=self.name,
            description=self.description,
            base_url=str(self._http.base_url),
        )

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        await self._http.aclose()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"

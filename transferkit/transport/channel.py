"""
HTTP channel implementation for transferkit.

This module provides the raw request/response primitive the resilience layers
build on: one ``HttpChannel.send`` call is one network request, with no retry
and no circuit breaking. Requests and responses are logged for diagnosis with
credential headers redacted.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from transferkit.exceptions import TransportError
from transferkit.observability.metrics import TransferMetrics


logger = logging.getLogger(__name__)

BodyFactory = Callable[[], AsyncIterator[bytes]]

IDENTITY_HEADER = "x-amzn-oidc-identity"
_REDACTED_HEADERS = frozenset({"authorization", IDENTITY_HEADER})


@dataclass(frozen=True)
class TransferRequest:
    """One logical HTTP request, replayable across retry attempts.

    Attributes:
        url: Target URL
        method: HTTP method
        headers: Request headers, sent in insertion order
        body: None, raw bytes, or a factory returning a fresh async byte
            iterator for every attempt
        timeout: Wall-clock limit in seconds for receiving the response headers
        log_body: Log the response body even on success
    """
    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | BodyFactory | None = None
    timeout: float | None = None
    log_body: bool = False

    def content(self) -> bytes | AsyncIterator[bytes] | None:
        """Return the body for a single attempt."""
        if callable(self.body):
            return self.body()
        return self.body


def _redact(headers: Mapping[str, str]) -> list[str]:
    return [
        f"{key}: {'[REDACTED]' if key.lower() in _REDACTED_HEADERS else value}"
        for key, value in headers.items()
    ]


class HttpChannel:
    """Single-shot HTTP transport over ``httpx.AsyncClient``.

    Responses are always opened in streaming mode. The caller owns the
    returned response and must read (``aread``) or close (``aclose``) it.

    Example:
        async with HttpChannel() as channel:
            response = await channel.send(TransferRequest(url, "GET"))
            body = await response.aread()
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        metrics: TransferMetrics | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            client: Existing client to use; the channel will not close it
            transport: Transport for a channel-owned client (e.g. httpx.MockTransport)
            metrics: Optional metrics collector
        """
        self._client = client
        self._owns_client = client is None
        self._transport = transport
        self._metrics = metrics

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                follow_redirects=False,
            )
            logger.debug("HTTP client initialized")
        return self._client

    def _log_request(self, request: TransferRequest) -> None:
        logger.info(f"{request.method} {request.url}")
        logger.debug("\n".join(_redact(request.headers)))
        if isinstance(request.body, bytes) and request.log_body:
            for line in request.body.decode("utf-8", errors="replace").split("\n"):
                logger.debug(line)

    async def _log_response(self, request: TransferRequest, response: httpx.Response) -> None:
        status_line = f"HTTP {response.status_code} {response.reason_phrase}"
        if response.status_code >= 400 or request.log_body:
            text = (await response.aread()).decode("utf-8", errors="replace")
            log = logger.warning if response.status_code >= 400 else logger.info
            log(f"{status_line} for {request.method} {request.url}")
            logger.debug("\n".join(_redact(response.headers)))
            for line in text.split("\n"):
                logger.debug(line)
        else:
            logger.info(f"{status_line} for {request.method} {request.url}")
            logger.debug("\n".join(_redact(response.headers)))

    async def send(self, request: TransferRequest) -> httpx.Response:
        """Issue exactly one HTTP request.

        Args:
            request: Request to send

        Returns:
            Streaming HTTP response

        Raises:
            TransportError: On connection failure or timeout
        """
        client = await self._ensure_client()
        http_request = client.build_request(
            request.method,
            request.url,
            headers=dict(request.headers),
            content=request.content(),
        )

        self._log_request(request)

        try:
            async with asyncio.timeout(request.timeout):
                if self._metrics is not None:
                    with self._metrics.time_request(request.method):
                        response = await client.send(http_request, stream=True)
                else:
                    response = await client.send(http_request, stream=True)
        except TimeoutError as e:
            self._record(request, "error")
            raise TransportError(
                f"{request.method} {request.url} timed out after {request.timeout}s",
                cause=e,
            ) from e
        except httpx.TransportError as e:
            self._record(request, "error")
            raise TransportError(
                f"{request.method} {request.url} failed: {e}",
                cause=e,
            ) from e

        self._record(request, response.status_code)
        await self._log_response(request, response)
        return response

    def _record(self, request: TransferRequest, status: Any) -> None:
        if self._metrics is not None:
            self._metrics.record_request(request.method, status)

    async def close(self) -> None:
        """Close the HTTP client if the channel created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("HTTP client closed")

    async def __aenter__(self) -> "HttpChannel":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

"""
High-level transfer client for transferkit.

TransferClient wires the channel, the shared circuit breaker boundary, the
retrying executors and the configuration together so applications only deal
with URLs, payloads and RequestOptions.
"""

import asyncio
import logging
import os
from pathlib import Path

import httpx

from transferkit.config import TransferConfig
from transferkit.observability.metrics import TransferMetrics
from transferkit.transfer import data as data_ops
from transferkit.transfer import multipart
from transferkit.transfer.multipart import PartDescriptor, PartResult
from transferkit.transfer.options import RequestOptions
from transferkit.transport.channel import BodyFactory, HttpChannel
from transferkit.transport.circuit import CircuitBreakerBoundary
from transferkit.transport.retry import RetryingExecutor, Sleep

logger = logging.getLogger(__name__)


class TransferClient:
    """
    Resilient client for HTTP object stores.

    Data and multipart operations go through the circuit breaker;
    ``upload_stream`` and ``download`` use a plain retrying executor with the
    configured upload/download timeouts.

    Example:
        config = TransferConfig.from_file("transfer.yaml")
        async with TransferClient(config) as client:
            parts = await client.prepare_upload("big.bin", part_urls)
            results = await client.put_multipart_file(parts, "big.bin", RequestOptions())
    """

    def __init__(
        self,
        config: TransferConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreakerBoundary | None = None,
        metrics: TransferMetrics | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Transfer configuration (defaults apply when None)
            client: Existing httpx client; left open on close()
            transport: httpx transport for the client this object creates
            breaker: Shared boundary; created around this client's channel when None
            metrics: Optional metrics collector
            sleep: Coroutine used to wait out backoff delays
        """
        self.config = config or TransferConfig()
        self.metrics = metrics
        self._channel = HttpChannel(client, transport=transport, metrics=metrics)
        self._owns_breaker = breaker is None
        self._breaker = breaker or CircuitBreakerBoundary(
            self._channel.send,
            config=self.config.breaker,
            metrics=metrics,
        )
        self._executor = RetryingExecutor(
            self._channel, self._breaker, sleep=sleep, metrics=metrics
        )
        self._plain_executor = RetryingExecutor(self._channel, sleep=sleep, metrics=metrics)

    @property
    def breaker(self) -> CircuitBreakerBoundary:
        return self._breaker

    @property
    def executor(self) -> RetryingExecutor:
        """Executor whose requests pass through the circuit breaker."""
        return self._executor

    async def put_data(self, url: str, data: bytes, options: RequestOptions) -> httpx.Response:
        return await data_ops.put_data(
            self._executor, url, data, options, retry_config=self.config.retry
        )

    async def get_data(self, url: str, options: RequestOptions) -> httpx.Response:
        return await data_ops.get_data(
            self._executor, url, options, retry_config=self.config.retry
        )

    async def post_data(self, url: str, data: bytes, options: RequestOptions) -> httpx.Response:
        return await data_ops.post_data(
            self._executor, url, data, options, retry_config=self.config.retry
        )

    async def patch_data(self, url: str, data: bytes, options: RequestOptions) -> httpx.Response:
        return await data_ops.patch_data(
            self._executor, url, data, options, retry_config=self.config.retry
        )

    async def upload_stream(self, url: str, body: BodyFactory, options: RequestOptions) -> httpx.Response:
        return await data_ops.upload_stream(
            self._plain_executor,
            url,
            body,
            options,
            retry_config=self.config.retry,
            timeout=self.config.timeouts.upload,
        )

    async def download(self, url: str, options: RequestOptions) -> httpx.Response:
        """Fetch response headers; the caller reads or closes the body."""
        return await data_ops.download(
            self._plain_executor,
            url,
            options,
            retry_config=self.config.retry,
            timeout=self.config.timeouts.download,
        )

    async def prepare_upload(self, file_path: str | Path, urls: list[str]) -> list[PartDescriptor]:
        """
        Plan and checksum the parts of ``file_path``.

        Args:
            file_path: File to upload
            urls: One destination URL per part

        Returns:
            Parts carrying their URL and base64 MD5
        """
        size = os.stat(file_path).st_size
        if size > self.config.multipart.max_upload_size:
            logger.warning(
                f"{file_path} is {size} bytes, larger than max_upload_size "
                f"{self.config.multipart.max_upload_size}"
            )
        parts = multipart.plan_parts(
            size,
            self.config.multipart.part_size,
            urls,
            max_parts=self.config.multipart.max_parts,
        )
        return await asyncio.to_thread(multipart.checksum_parts, file_path, parts)

    async def put_multipart_file(
        self,
        parts: list[PartDescriptor],
        file_path: str | Path,
        options: RequestOptions,
    ) -> list[PartResult]:
        return await multipart.put_multipart_file(
            self._executor,
            parts,
            file_path,
            options,
            multipart=self.config.multipart,
            retry_config=self.config.retry,
            timeout=self.config.timeouts.upload,
            metrics=self.metrics,
        )

    async def put_single_part_file(
        self,
        url: str,
        file_path: str | Path,
        options: RequestOptions,
    ) -> PartResult:
        return await multipart.put_single_part_file(
            self._executor,
            url,
            file_path,
            options,
            retry_config=self.config.retry,
            timeout=self.config.timeouts.upload,
            metrics=self.metrics,
        )

    async def get_multipart_file(
        self,
        url: str,
        file_path: str | Path,
        content_length: int,
        options: RequestOptions,
    ) -> list[PartResult]:
        return await multipart.get_multipart_file(
            self._executor,
            url,
            file_path,
            content_length,
            options,
            multipart=self.config.multipart,
            retry_config=self.config.retry,
            timeout=self.config.timeouts.download,
            metrics=self.metrics,
        )

    async def get_single_part_file(
        self,
        url: str,
        file_path: str | Path,
        content_length: int,
        options: RequestOptions,
    ) -> PartResult:
        return await multipart.get_single_part_file(
            self._executor,
            url,
            file_path,
            content_length,
            options,
            retry_config=self.config.retry,
            timeout=self.config.timeouts.download,
            metrics=self.metrics,
        )

    async def close(self) -> None:
        """Abort in-flight breaker calls this client owns and close the channel."""
        if self._owns_breaker:
            self._breaker.shutdown()
        await self._channel.close()

    async def __aenter__(self) -> "TransferClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

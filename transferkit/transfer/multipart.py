"""
Multipart file transfers for transferkit.

Large files are split into contiguous byte ranges ("parts") that are uploaded
or downloaded concurrently through run_all(). Uploads are create-once per part:
each PUT carries ``If-None-Match`` with the part's ETag, so parts that already
exist are skipped. Downloads use ``Range`` requests, optionally pinned to one
version of the object with ``If-Match``.

The file descriptor is opened once per transfer and closed after every part
has finished; parts read and write it with positional I/O only, so they never
share a file offset.

REF: https://docs.aws.amazon.com/AmazonS3/latest/userguide/example_s3_Scenario_UsingLargeFiles_section.html
REF: https://docs.aws.amazon.com/whitepapers/latest/s3-optimizing-performance-best-practices/use-byte-range-fetches.html
"""

import asyncio
import base64
import dataclasses
import hashlib
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from transferkit.conditional import etag_for_md5
from transferkit.config import MultipartConfig, RetryConfig
from transferkit.exceptions import (
    ClientError,
    ConfigurationError,
    IntegrityError,
    ServerOverloadError,
    TransportError,
)
from transferkit.observability.metrics import TransferMetrics
from transferkit.transfer.options import RequestOptions
from transferkit.transport.channel import BodyFactory, TransferRequest
from transferkit.transport.pool import run_all
from transferkit.transport.retry import RetryingExecutor, is_server_error, retry

logger = logging.getLogger(__name__)

DEFAULT_MULTIPART = MultipartConfig()
DEFAULT_RETRY = RetryConfig()
DEFAULT_TIMEOUT = 60.0

CHUNK_SIZE = 256 * 1024


@dataclass(frozen=True)
class PartDescriptor:
    """One byte range of a multipart transfer.

    Attributes:
        part_number: 1-based part number
        start: First byte offset (inclusive)
        end: Last byte offset (inclusive)
        content_md5: Base64 MD5 of the part's bytes (uploads only)
        url: Destination URL of the part (uploads only)
    """
    part_number: int
    start: int
    end: int
    content_md5: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        """Validate the byte range."""
        if self.part_number < 1:
            raise ConfigurationError("part_number must be >= 1", details={"part_number": self.part_number})
        if self.start < 0 or self.end < self.start - 1:
            raise ConfigurationError(
                "invalid part range",
                details={"part_number": self.part_number, "start": self.start, "end": self.end},
            )

    @property
    def content_length(self) -> int:
        return self.end - self.start + 1

    @property
    def range_header(self) -> str:
        return f"bytes={self.start}-{self.end}"


@dataclass(frozen=True)
class PartResult:
    """Outcome of one part.

    ``status_code`` is 304 or 412 for uploads of parts that already exist and
    412 for downloads of an object that changed; both are not errors.
    """
    part_number: int
    status_code: int
    etag: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


def plan_parts(
    content_length: int,
    part_size: int = DEFAULT_MULTIPART.part_size,
    urls: list[str] | None = None,
    *,
    max_parts: int = DEFAULT_MULTIPART.max_parts,
) -> list[PartDescriptor]:
    """Partition ``[0, content_length)`` into contiguous parts.

    Args:
        content_length: Total size in bytes
        part_size: Bytes per part; the last part may be shorter
        urls: Optional per-part URLs, one for each planned part
        max_parts: Upper bound on the number of parts

    Returns:
        Parts numbered from 1, ordered, non-overlapping and covering every byte

    Raises:
        ConfigurationError: On invalid sizes, too many parts or a URL count mismatch
    """
    if content_length < 0:
        raise ConfigurationError("content_length must be non-negative", details={"content_length": content_length})
    if part_size < 1:
        raise ConfigurationError("part_size must be positive", details={"part_size": part_size})

    count = math.ceil(content_length / part_size)
    if count > max_parts:
        raise ConfigurationError(
            f"{content_length} bytes need {count} parts, more than the maximum of {max_parts}",
            details={"content_length": content_length, "part_size": part_size, "max_parts": max_parts},
        )
    if urls is not None and len(urls) != count:
        raise ConfigurationError(
            "one URL is required per part",
            details={"parts": count, "urls": len(urls)},
        )

    return [
        PartDescriptor(
            part_number=i + 1,
            start=i * part_size,
            end=min((i + 1) * part_size, content_length) - 1,
            url=urls[i] if urls is not None else None,
        )
        for i in range(count)
    ]


def _md5_range(fd: int, start: int, length: int) -> str:
    digest = hashlib.md5()
    offset, remaining = start, length
    while remaining > 0:
        chunk = os.pread(fd, min(CHUNK_SIZE, remaining), offset)
        if not chunk:
            raise IntegrityError(f"file ended at offset {offset}, expected {remaining} more bytes")
        digest.update(chunk)
        offset += len(chunk)
        remaining -= len(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")


def checksum_parts(path: str | Path, parts: list[PartDescriptor]) -> list[PartDescriptor]:
    """Return ``parts`` with each part's base64 MD5 computed from ``path``.

    This reads the whole file; call it through asyncio.to_thread() from async code.
    """
    fd = os.open(path, os.O_RDONLY)
    try:
        return [
            dataclasses.replace(part, content_md5=_md5_range(fd, part.start, part.content_length))
            for part in parts
        ]
    finally:
        os.close(fd)


async def _file_io(func, *args):
    """Run positional file I/O in a thread.

    A cancelled caller still waits for the thread to finish, so the descriptor
    is never closed under an in-flight read or write.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait({future})
        raise


def _range_reader(fd: int, start: int, length: int) -> BodyFactory:
    async def read():
        offset, remaining = start, length
        while remaining > 0:
            chunk = await _file_io(os.pread, fd, min(CHUNK_SIZE, remaining), offset)
            if not chunk:
                raise IntegrityError(f"file ended at offset {offset}, expected {remaining} more bytes")
            offset += len(chunk)
            remaining -= len(chunk)
            yield chunk

    return read


def _pwrite_all(fd: int, data: bytes, offset: int) -> None:
    view = memoryview(data)
    while view:
        written = os.pwrite(fd, view, offset)
        view = view[written:]
        offset += written


async def _raise_for_status(response: httpx.Response, request: TransferRequest) -> None:
    if 200 <= response.status_code < 300:
        return
    await response.aclose()
    message = f"{request.method} {request.url} failed with HTTP {response.status_code}"
    if is_server_error(response.status_code):
        raise ServerOverloadError(message, status_code=response.status_code)
    raise ClientError(message, status_code=response.status_code)


def _result(part: PartDescriptor, response: httpx.Response) -> PartResult:
    return PartResult(
        part_number=part.part_number,
        status_code=response.status_code,
        etag=response.headers.get("ETag"),
        headers=dict(response.headers),
    )


def _record(metrics: TransferMetrics | None, direction: str, outcome: str) -> None:
    if metrics is not None:
        metrics.record_part(direction, outcome)


async def put_part(
    executor: RetryingExecutor,
    fd: int,
    part: PartDescriptor,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = DEFAULT_TIMEOUT,
    metrics: TransferMetrics | None = None,
) -> PartResult:
    """Upload one part unless the store already holds it.

    Raises:
        ConfigurationError: If the part has no URL or MD5
        ServerOverloadError: On 5xx after the executor's retries
        ClientError: On 4xx other than 304/412
        IntegrityError: If the store reports a different ETag
    """
    if part.url is None or part.content_md5 is None:
        raise ConfigurationError(
            "upload parts need a url and content_md5",
            details={"part_number": part.part_number},
        )

    etag = etag_for_md5(part.content_md5)
    headers = options.auth_headers()
    headers["If-None-Match"] = etag
    headers["Accept"] = "application/json"
    headers["Content-Type"] = options.content_type
    headers["Content-Length"] = str(part.content_length)
    headers["Content-MD5"] = part.content_md5

    request = TransferRequest(
        part.url,
        "PUT",
        headers=headers,
        body=_range_reader(fd, part.start, part.content_length),
        timeout=timeout,
        log_body=options.log_body,
    )
    response = await executor.execute(
        request, retry_config.retry_count, retry_config.min_delay, retry_config.max_delay
    )

    # 412 means If-None-Match failed, so the part exists. Some S3-compatible
    # servers (e.g. MinIO RELEASE.2023-11-20T22-40-07Z) answer 304 instead.
    if response.status_code in (304, 412):
        await response.aclose()
        logger.info(f"Part {part.part_number} already uploaded: {response.status_code}")
        _record(metrics, "upload", "skipped")
        return _result(part, response)

    await _raise_for_status(response, request)
    await response.aread()

    actual = response.headers.get("ETag")
    if actual != etag:
        raise IntegrityError(f"ETag mismatch: expected {etag}, got {actual}", expected=etag, actual=actual)

    _record(metrics, "upload", "transferred")
    return _result(part, response)


async def put_multipart_file(
    executor: RetryingExecutor,
    parts: list[PartDescriptor],
    file_path: str | Path,
    options: RequestOptions,
    *,
    multipart: MultipartConfig = DEFAULT_MULTIPART,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = DEFAULT_TIMEOUT,
    metrics: TransferMetrics | None = None,
) -> list[PartResult]:
    """Upload every part of ``file_path`` concurrently.

    Each part must carry its URL and base64 MD5 (see plan_parts() and
    checksum_parts()). Parts that already exist count as uploaded.

    Returns:
        Part results in completion order
    """
    part_count = len(parts)

    async def upload(part: PartDescriptor) -> PartResult:
        logger.info(f"Uploading part {part.part_number} of {part_count} from {part.start} to {part.end}")
        return await put_part(
            executor, fd, part, options,
            retry_config=retry_config, timeout=timeout, metrics=metrics,
        )

    fd = os.open(file_path, os.O_RDONLY)
    try:
        results = await run_all(
            upload,
            [(part,) for part in parts],
            multipart.upload_concurrency,
            retry_config.retry_count,
            retry_config.min_delay,
            retry_config.max_delay,
            cancel_on_failure=True,
            sleep=executor.sleep,
        )
    finally:
        os.close(fd)

    logger.info("All parts uploaded")
    return results


async def put_single_part_file(
    executor: RetryingExecutor,
    url: str,
    file_path: str | Path,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = DEFAULT_TIMEOUT,
    metrics: TransferMetrics | None = None,
) -> PartResult:
    """Upload the whole file as part 1 with create-once semantics.

    ``options.content_length`` and ``options.content_md5`` describe the file.
    """
    part = PartDescriptor(
        part_number=1,
        start=0,
        end=options.require_content_length() - 1,
        content_md5=options.content_md5,
        url=url,
    )

    fd = os.open(file_path, os.O_RDONLY)
    try:
        result = await retry(
            lambda: put_part(
                executor, fd, part, options,
                retry_config=retry_config, timeout=timeout, metrics=metrics,
            ),
            retry_config.retry_count,
            retry_config.min_delay,
            retry_config.max_delay,
            sleep=executor.sleep,
        )
    finally:
        os.close(fd)

    logger.info("File uploaded")
    return result


async def get_part(
    executor: RetryingExecutor,
    url: str,
    fd: int,
    part: PartDescriptor,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = DEFAULT_TIMEOUT,
    metrics: TransferMetrics | None = None,
) -> PartResult:
    """Download one byte range of ``url`` into ``fd`` at the part's offset.

    Raises:
        ServerOverloadError: On 5xx after the executor's retries
        ClientError: On 4xx other than 412
        IntegrityError: On an unexpected ETag or a body longer than the part
        TransportError: If the body stalls past ``timeout`` or ends early
    """
    headers = options.auth_headers()
    if options.accept:
        headers["Accept"] = options.accept
    if options.etag:
        headers["If-Match"] = options.etag
    headers["Range"] = part.range_header

    request = TransferRequest(url, "GET", headers=headers, timeout=timeout, log_body=options.log_body)
    response = await executor.execute(
        request, retry_config.retry_count, retry_config.min_delay, retry_config.max_delay
    )

    # If-Match failed: the object changed since the transfer started.
    if response.status_code == 412:
        await response.aclose()
        logger.info(f"Part {part.part_number} has changed: {response.status_code}")
        _record(metrics, "download", "changed")
        return _result(part, response)

    await _raise_for_status(response, request)

    actual = response.headers.get("ETag")
    if options.etag and actual != options.etag:
        # A changed object must be answered with 412, never a different ETag.
        await response.aclose()
        raise IntegrityError(f"ETag mismatch: expected {options.etag}, got {actual}", expected=options.etag, actual=actual)

    offset = part.start
    written = 0
    try:
        async with asyncio.timeout(timeout):
            async for chunk in response.aiter_bytes():
                if written + len(chunk) > part.content_length:
                    raise IntegrityError(
                        f"server sent more than the {part.content_length} bytes of {part.range_header}",
                        expected=str(part.content_length),
                        actual=str(written + len(chunk)),
                    )
                await _file_io(_pwrite_all, fd, chunk, offset)
                offset += len(chunk)
                written += len(chunk)
    except TimeoutError as e:
        raise TransportError(
            f"part {part.part_number} download stalled after {timeout}s",
            cause=e,
            details={"written": written},
        ) from e
    except httpx.TransportError as e:
        raise TransportError(
            f"part {part.part_number} download failed: {e}",
            cause=e,
            details={"written": written},
        ) from e
    finally:
        await response.aclose()

    if written < part.content_length:
        raise TransportError(
            f"part {part.part_number} ended after {written} of {part.content_length} bytes",
            details={"written": written},
        )

    # TODO: verify downloaded parts once the store exposes per-part checksums.
    _record(metrics, "download", "transferred")
    return _result(part, response)


def _open_for_download(file_path: str | Path, content_length: int) -> int:
    fd = os.open(file_path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        # Sparse preallocation; parts fill in their own ranges.
        os.ftruncate(fd, content_length)
    except OSError:
        os.close(fd)
        raise
    return fd


async def get_multipart_file(
    executor: RetryingExecutor,
    url: str,
    file_path: str | Path,
    content_length: int,
    options: RequestOptions,
    *,
    multipart: MultipartConfig = DEFAULT_MULTIPART,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = DEFAULT_TIMEOUT,
    metrics: TransferMetrics | None = None,
) -> list[PartResult]:
    """Download ``url`` into ``file_path`` in concurrent byte ranges.

    A result with status 412 means the object no longer matches
    ``options.etag``; the file is then incomplete.

    Returns:
        Part results in completion order
    """
    parts = plan_parts(content_length, multipart.part_size, max_parts=multipart.max_parts)
    part_count = len(parts)

    async def download(part: PartDescriptor) -> PartResult:
        logger.info(f"Downloading part {part.part_number} of {part_count} from {part.start} to {part.end}")
        return await get_part(
            executor, url, fd, part, options,
            retry_config=retry_config, timeout=timeout, metrics=metrics,
        )

    fd = _open_for_download(file_path, content_length)
    try:
        results = await run_all(
            download,
            [(part,) for part in parts],
            multipart.download_concurrency,
            retry_config.retry_count,
            retry_config.min_delay,
            retry_config.max_delay,
            cancel_on_failure=True,
            sleep=executor.sleep,
        )
    finally:
        os.close(fd)

    logger.info("All parts downloaded")
    return results


async def get_single_part_file(
    executor: RetryingExecutor,
    url: str,
    file_path: str | Path,
    content_length: int,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = DEFAULT_TIMEOUT,
    metrics: TransferMetrics | None = None,
) -> PartResult:
    """Download the whole object as one range request into ``file_path``."""
    if content_length < 1:
        raise ConfigurationError(
            "content_length must be positive",
            details={"content_length": content_length},
        )
    part = PartDescriptor(part_number=1, start=0, end=content_length - 1)

    fd = _open_for_download(file_path, content_length)
    try:
        result = await retry(
            lambda: get_part(
                executor, url, fd, part, options,
                retry_config=retry_config, timeout=timeout, metrics=metrics,
            ),
            retry_config.retry_count,
            retry_config.min_delay,
            retry_config.max_delay,
            sleep=executor.sleep,
        )
    finally:
        os.close(fd)

    logger.info("File downloaded")
    return result

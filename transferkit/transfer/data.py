"""
Whole-payload transfers for transferkit.

Each ``*_data`` entry point wraps its ``*_data_once`` counterpart in the
generic retry() helper, while ``*_data_once`` runs one logical request through
the retrying executor with its own retry budget. Uploads are create-once: PUT
carries ``If-None-Match`` with the payload's ETag, so a 412 means the object is
already stored and is handed back to the caller rather than raised.

``upload_stream`` and ``download`` are the streaming variants. They are meant
for an executor without a circuit breaker and are not wrapped in retry().
"""

import logging

import httpx

from transferkit.config import RetryConfig
from transferkit.exceptions import IntegrityError, ServerOverloadError
from transferkit.transfer.options import RequestOptions
from transferkit.transport.channel import BodyFactory, TransferRequest
from transferkit.transport.retry import RetryingExecutor, is_server_error, retry

logger = logging.getLogger(__name__)

DEFAULT_RETRY = RetryConfig()


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


async def _raise_on_overload(response: httpx.Response, request: TransferRequest) -> None:
    if is_server_error(response.status_code):
        await response.aclose()
        raise ServerOverloadError(
            f"{request.method} {request.url} failed with HTTP {response.status_code}",
            status_code=response.status_code,
            details={"url": request.url},
        )


async def _send(
    executor: RetryingExecutor,
    request: TransferRequest,
    retry_config: RetryConfig,
) -> httpx.Response:
    return await executor.execute(
        request,
        retry_config.retry_count,
        retry_config.min_delay,
        retry_config.max_delay,
    )


def _verify_etag(response: httpx.Response, expected: str) -> None:
    actual = response.headers.get("ETag")
    if actual != expected:
        raise IntegrityError(f"ETag mismatch: expected {expected}, got {actual}", expected=expected, actual=actual)


def _upload_headers(options: RequestOptions, content_length: int, conditional: bool) -> dict[str, str]:
    headers = options.auth_headers()
    if conditional:
        headers["If-None-Match"] = options.upload_etag
    headers["Accept"] = "application/json"
    headers["Content-Type"] = options.content_type
    headers["Content-Length"] = str(content_length)
    if conditional and options.content_md5:
        headers["Content-MD5"] = options.content_md5
    return headers


def _download_headers(options: RequestOptions) -> dict[str, str]:
    headers = options.auth_headers()
    if options.etag:
        headers["If-Match"] = options.etag
    headers["Accept"] = options.accept
    return headers


async def put_data_once(
    executor: RetryingExecutor,
    url: str,
    data: bytes,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    """Store ``data`` at ``url`` unless an object with the same ETag exists.

    Returns:
        The read response; a 412 (already stored) or other 4xx is returned as-is

    Raises:
        ServerOverloadError: If the store still answers 5xx after retries
        IntegrityError: If the stored object's ETag differs from the payload MD5
    """
    content_length = options.content_length if options.content_length is not None else len(data)
    request = TransferRequest(
        url,
        "PUT",
        headers=_upload_headers(options, content_length, conditional=True),
        body=data,
        timeout=timeout,
        log_body=options.log_body,
    )
    response = await _send(executor, request, retry_config)
    await _raise_on_overload(response, request)
    await response.aread()
    if not _is_success(response):
        logger.info(f"PUT {url} answered {response.status_code}, not uploading")
        return response
    _verify_etag(response, options.upload_etag)
    return response


async def put_data(
    executor: RetryingExecutor,
    url: str,
    data: bytes,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    """Retrying wrapper around put_data_once()."""
    return await retry(
        lambda: put_data_once(
            executor, url, data, options, retry_config=retry_config, timeout=timeout
        ),
        retry_config.retry_count,
        retry_config.min_delay,
        retry_config.max_delay,
        sleep=executor.sleep,
    )


async def get_data_once(
    executor: RetryingExecutor,
    url: str,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    """Fetch ``url``, requiring the expected ETag when one is given.

    Returns:
        The read response; 412 (object changed) and other 4xx are returned as-is

    Raises:
        ServerOverloadError: If the store still answers 5xx after retries
        IntegrityError: If a 2xx response carries a different ETag
    """
    request = TransferRequest(
        url,
        "GET",
        headers=_download_headers(options),
        timeout=timeout,
        log_body=options.log_body,
    )
    response = await _send(executor, request, retry_config)
    await _raise_on_overload(response, request)
    await response.aread()
    if _is_success(response) and options.etag:
        _verify_etag(response, options.etag)
    return response


async def get_data(
    executor: RetryingExecutor,
    url: str,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    """Retrying wrapper around get_data_once()."""
    return await retry(
        lambda: get_data_once(executor, url, options, retry_config=retry_config, timeout=timeout),
        retry_config.retry_count,
        retry_config.min_delay,
        retry_config.max_delay,
        sleep=executor.sleep,
    )


async def _send_unconditional(
    executor: RetryingExecutor,
    method: str,
    url: str,
    data: bytes,
    options: RequestOptions,
    retry_config: RetryConfig,
    timeout: float | None,
) -> httpx.Response:
    content_length = options.content_length if options.content_length is not None else len(data)
    request = TransferRequest(
        url,
        method,
        headers=_upload_headers(options, content_length, conditional=False),
        body=data,
        timeout=timeout,
        log_body=options.log_body,
    )
    response = await _send(executor, request, retry_config)
    await _raise_on_overload(response, request)
    await response.aread()
    return response


async def post_data_once(
    executor: RetryingExecutor,
    url: str,
    data: bytes,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    """POST ``data`` without conditional headers.

    Raises:
        ServerOverloadError: If the server still answers 5xx after retries
    """
    return await _send_unconditional(executor, "POST", url, data, options, retry_config, timeout)


async def post_data(
    executor: RetryingExecutor,
    url: str,
    data: bytes,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    return await retry(
        lambda: post_data_once(
            executor, url, data, options, retry_config=retry_config, timeout=timeout
        ),
        retry_config.retry_count,
        retry_config.min_delay,
        retry_config.max_delay,
        sleep=executor.sleep,
    )


async def patch_data_once(
    executor: RetryingExecutor,
    url: str,
    data: bytes,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    """PATCH ``data`` without conditional headers.

    Raises:
        ServerOverloadError: If the server still answers 5xx after retries
    """
    return await _send_unconditional(executor, "PATCH", url, data, options, retry_config, timeout)


async def patch_data(
    executor: RetryingExecutor,
    url: str,
    data: bytes,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = None,
) -> httpx.Response:
    return await retry(
        lambda: patch_data_once(
            executor, url, data, options, retry_config=retry_config, timeout=timeout
        ),
        retry_config.retry_count,
        retry_config.min_delay,
        retry_config.max_delay,
        sleep=executor.sleep,
    )


async def upload_stream(
    executor: RetryingExecutor,
    url: str,
    body: BodyFactory,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = 60.0,
) -> httpx.Response:
    """Create-once PUT of a streamed payload.

    ``body`` is called once per attempt, so every retry streams the payload
    from the start. ``options.content_length`` and ``options.content_md5`` are
    required because they cannot be derived from a stream.

    Raises:
        ServerOverloadError: If the store still answers 5xx after retries
        IntegrityError: If the stored object's ETag differs from the payload MD5
    """
    request = TransferRequest(
        url,
        "PUT",
        headers=_upload_headers(options, options.require_content_length(), conditional=True),
        body=body,
        timeout=timeout,
        log_body=options.log_body,
    )
    response = await _send(executor, request, retry_config)
    await _raise_on_overload(response, request)
    await response.aread()
    if not _is_success(response):
        return response
    _verify_etag(response, options.upload_etag)
    return response


async def download(
    executor: RetryingExecutor,
    url: str,
    options: RequestOptions,
    *,
    retry_config: RetryConfig = DEFAULT_RETRY,
    timeout: float | None = 60.0,
) -> httpx.Response:
    """Acquire the response headers for ``url``.

    The body is left unread so it can be consumed as a stream; the caller must
    read or close the returned response.

    Raises:
        ServerOverloadError: If the server still answers 5xx after retries
    """
    request = TransferRequest(
        url,
        "GET",
        headers=_download_headers(options),
        timeout=timeout,
        log_body=options.log_body,
    )
    response = await _send(executor, request, retry_config)
    await _raise_on_overload(response, request)
    return response

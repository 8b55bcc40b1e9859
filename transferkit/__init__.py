"""
transferkit

A resilient HTTP transfer engine for S3-style object stores. It turns a single
HTTP request into a dependable network operation under partial failure, server
overload and large payloads.

Design Principle: "Fail fast, back off politely, never store twice"
- Retries back off exponentially with jitter and honor Retry-After
- A shared circuit breaker stops calls to an unhealthy store
- Multipart transfers run with a bounded number of parts in flight
- Uploads are create-once through RFC 7232 preconditions

Example:
    from transferkit import TransferClient, RequestOptions

    async with TransferClient() as client:
        response = await client.put_data(url, payload, RequestOptions(content_md5=md5))
"""

__version__ = "1.0.0"

# Client facade
from transferkit.client import TransferClient

# Configuration
from transferkit.config import TransferConfig, RetryConfig, BreakerConfig, MultipartConfig

# Options and results
from transferkit.transfer import RequestOptions, PartDescriptor, PartResult

# Preconditions
from transferkit.conditional import EntityTag, PreconditionResult, evaluate_preconditions

# Errors
from transferkit.exceptions import (
    TransferError,
    ConfigurationError,
    CircuitOpenError,
    TransportError,
    HTTPStatusError,
    ServerOverloadError,
    ClientError,
    IntegrityError,
)

__all__ = [
    # Version info
    "__version__",
    # Client
    "TransferClient",
    # Configuration
    "TransferConfig",
    "RetryConfig",
    "BreakerConfig",
    "MultipartConfig",
    # Options and results
    "RequestOptions",
    "PartDescriptor",
    "PartResult",
    # Preconditions
    "EntityTag",
    "PreconditionResult",
    "evaluate_preconditions",
    # Errors
    "TransferError",
    "ConfigurationError",
    "CircuitOpenError",
    "TransportError",
    "HTTPStatusError",
    "ServerOverloadError",
    "ClientError",
    "IntegrityError",
]

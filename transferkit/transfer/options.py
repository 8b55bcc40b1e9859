"""
Per-request options for transferkit entry points.
"""

import base64
import binascii
from dataclasses import dataclass

from transferkit.conditional import etag_for_md5
from transferkit.exceptions import ConfigurationError
from transferkit.transport.channel import IDENTITY_HEADER


@dataclass(frozen=True)
class RequestOptions:
    """Options shared by the data, stream and multipart entry points.

    Attributes:
        authorization: Value of the Authorization header, if any
        identity: Caller identity forwarded as x-amzn-oidc-identity
        content_type: Content-Type of the uploaded payload
        content_length: Payload size in bytes
        content_md5: Base64 MD5 digest of the payload
        accept: Accept header for downloads
        etag: Expected ETag of the remote object (sent as If-Match)
        log_body: Log response bodies even on success
    """
    authorization: str | None = None
    identity: str | None = None
    content_type: str = "application/octet-stream"
    content_length: int | None = None
    content_md5: str | None = None
    accept: str = "*/*"
    etag: str | None = None
    log_body: bool = False

    def __post_init__(self) -> None:
        """Validate options."""
        if self.content_length is not None and self.content_length < 0:
            raise ConfigurationError(
                "content_length must be non-negative",
                details={"content_length": self.content_length},
            )
        if self.content_md5 is not None:
            try:
                digest = base64.b64decode(self.content_md5, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ConfigurationError(
                    "content_md5 must be base64 encoded",
                    details={"content_md5": self.content_md5},
                ) from e
            if len(digest) != 16:
                raise ConfigurationError(
                    "content_md5 must encode a 16 byte MD5 digest",
                    details={"content_md5": self.content_md5},
                )

    @property
    def upload_etag(self) -> str:
        """The ETag the store will report once the payload is stored."""
        if self.content_md5 is None:
            raise ConfigurationError("content_md5 is required for uploads")
        return etag_for_md5(self.content_md5)

    def require_content_length(self) -> int:
        if self.content_length is None:
            raise ConfigurationError("content_length is required for uploads")
        return self.content_length

    def auth_headers(self) -> dict[str, str]:
        """Authorization and identity headers, omitting unset values."""
        headers: dict[str, str] = {}
        if self.authorization:
            headers["Authorization"] = self.authorization
        if self.identity:
            headers[IDENTITY_HEADER] = self.identity
        return headers

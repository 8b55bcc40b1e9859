"""
Conditional request evaluation for transferkit.

Implements the RFC 7232 section 6 precedence of the ``If-Match``,
``If-Unmodified-Since``, ``If-None-Match`` and ``If-Modified-Since``
preconditions against a stored resource's entity tag and modification time.
The same entity-tag rules drive the transfer layer's create-if-absent
(``If-None-Match``) and update-if-unchanged (``If-Match``) guards.

REF: https://datatracker.ietf.org/doc/html/rfc7232#section-6
"""

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Mapping

import httpx

WEAK_PREFIX = "W/"


@dataclass(frozen=True)
class EntityTag:
    """An entity tag as it appears on the wire.

    ``opaque`` keeps the quoted value (``"xyzzy"``); ``weak`` records whether
    the ``W/`` prefix was present.

    RFC 7232 section 2.3.2:

        +--------+--------+-------------------+-----------------+
        | ETag 1 | ETag 2 | Strong Comparison | Weak Comparison |
        +--------+--------+-------------------+-----------------+
        | W/"1"  | W/"1"  | no match          | match           |
        | W/"1"  | W/"2"  | no match          | no match        |
        | W/"1"  | "1"    | no match          | match           |
        | "1"    | "1"    | match             | match           |
        +--------+--------+-------------------+-----------------+
    """

    opaque: str
    weak: bool = False

    @classmethod
    def parse(cls, value: str) -> "EntityTag":
        value = value.strip()
        if value.startswith(WEAK_PREFIX):
            return cls(opaque=value[len(WEAK_PREFIX):], weak=True)
        return cls(opaque=value)

    def strong_match(self, other: "EntityTag") -> bool:
        return not self.weak and not other.weak and self.opaque == other.opaque

    def weak_match(self, other: "EntityTag") -> bool:
        return self.opaque == other.opaque

    def __str__(self) -> str:
        return f"{WEAK_PREFIX}{self.opaque}" if self.weak else self.opaque


def strong_compare(a: str | None, b: str | None) -> bool:
    """Strong comparison of two wire-format entity tags."""
    if a is None or b is None:
        return False
    return EntityTag.parse(a).strong_match(EntityTag.parse(b))


def weak_compare(a: str | None, b: str | None) -> bool:
    """Weak comparison of two wire-format entity tags."""
    if a is None or b is None:
        return False
    return EntityTag.parse(a).weak_match(EntityTag.parse(b))


def etag_for_md5(content_md5: str) -> str:
    """Quoted hex form of a base64 MD5 digest, as S3 reports it in ``ETag``."""
    return f'"{base64.b64decode(content_md5).hex()}"'


@dataclass(frozen=True)
class PreconditionResult:
    """Outcome of precondition evaluation: 200 (proceed), 304 or 412."""

    status: int
    reason: str

    @property
    def proceed(self) -> bool:
        return self.status == 200


def _entity_tags(header: str) -> list[EntityTag]:
    return [EntityTag.parse(item) for item in header.split(",") if item.strip()]


def _http_date(value: str) -> datetime | None:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_http_time(value: datetime | float) -> datetime:
    # HTTP-dates carry whole seconds only.
    if isinstance(value, datetime):
        when = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    else:
        when = datetime.fromtimestamp(value, tz=timezone.utc)
    return when.replace(microsecond=0)


def if_match_precondition(if_match: str, origin_etag: str | None) -> bool:
    """True when ``If-Match`` allows the method to be performed."""
    if if_match.strip() == "*":
        # Origin server has a current representation.
        return True
    if origin_etag is None:
        return False
    origin = EntityTag.parse(origin_etag)
    return any(tag.strong_match(origin) for tag in _entity_tags(if_match))


def if_none_match_precondition(if_none_match: str, origin_etag: str | None) -> bool:
    """True when ``If-None-Match`` allows the method to be performed."""
    if if_none_match.strip() == "*":
        return False
    if origin_etag is None:
        return True
    origin = EntityTag.parse(origin_etag)
    return not any(tag.weak_match(origin) for tag in _entity_tags(if_none_match))


def evaluate_preconditions(
    method: str,
    headers: Mapping[str, str] | httpx.Headers,
    etag: str | None,
    last_modified: datetime | float,
) -> PreconditionResult:
    """Evaluate the conditional headers of a request against a resource.

    Args:
        method: Request method
        headers: Request headers (looked up case-insensitively)
        etag: Current entity tag of the resource
        last_modified: Resource modification time (datetime, naive means UTC,
            or POSIX seconds)

    Returns:
        PreconditionResult with status 200, 304 or 412 and a reason phrase
    """
    headers = httpx.Headers(headers)
    method = method.upper()
    modified = _as_http_time(last_modified)

    # Step 1: If-Match.
    if_match = headers.get("If-Match")
    if if_match and not if_match_precondition(if_match, etag):
        return PreconditionResult(
            412,
            f"Precondition failed: If-Match: {if_match} does not match ETag: {etag}",
        )

    # Step 2: If-Unmodified-Since, only without If-Match.
    if not if_match:
        if_unmodified_since = headers.get("If-Unmodified-Since")
        since = _http_date(if_unmodified_since) if if_unmodified_since else None
        if since is not None and modified > since:
            return PreconditionResult(
                412,
                f"Precondition failed: If-Unmodified-Since: {if_unmodified_since} "
                f"is before Last-Modified: {format_datetime(modified, usegmt=True)}",
            )

    # Step 3: If-None-Match.
    if_none_match = headers.get("If-None-Match")
    if if_none_match and not if_none_match_precondition(if_none_match, etag):
        if method in ("GET", "HEAD"):
            return PreconditionResult(304, "Not Modified")
        return PreconditionResult(
            412,
            f"Precondition failed: If-None-Match: {if_none_match} matches ETag: {etag}",
        )

    # Step 4: If-Modified-Since, ignored whenever If-None-Match is present.
    if method == "GET" and not if_none_match:
        if_modified_since = headers.get("If-Modified-Since")
        since = _http_date(if_modified_since) if if_modified_since else None
        if since is not None and since >= modified:
            return PreconditionResult(304, "Not Modified")

    return PreconditionResult(200, "OK")

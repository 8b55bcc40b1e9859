"""
Exponential backoff with full jitter for transferkit.

Delays grow with the retry attempt, are randomized to avoid synchronized retry
storms, and are always capped at ``max_delay``. A server supplied ``Retry-After``
hint replaces the minimum delay as the base of the computation.

REF: https://aws.amazon.com/blogs/architecture/exponential-backoff-and-jitter/
"""

import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime


def random_between(low: float, high: float) -> float:
    """Uniform random value between ``low`` and ``high``."""
    return random.uniform(low, high)


def _jitter(base: float, cap: float, attempt: int) -> float:
    temp = min(cap, base * 2 ** attempt)
    center = temp / 2 + random_between(0, temp / 2)
    return min(cap, random_between(base, center * 3))


def compute_delay(min_delay: float, max_delay: float, attempt: int) -> float:
    """Calculate the wait before retry ``attempt``.

    Args:
        min_delay: Minimum delay in seconds
        max_delay: Maximum delay in seconds (hard cap)
        attempt: Retry attempt number, starting at 1

    Returns:
        Delay in seconds within ``[0, max_delay]``
    """
    return _jitter(min_delay, max_delay, attempt)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a ``Retry-After`` header into seconds.

    Accepts both delay-seconds (``"120"``) and HTTP-date
    (``"Wed, 21 Oct 2015 07:28:00 GMT"``) forms. Dates in the past give a
    negative value; the caller clamps.

    Returns:
        Seconds to wait, or None when the value cannot be parsed
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return float(int(value))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return (when - now).total_seconds()


def compute_delay_from_hint(
    retry_after: str | None,
    min_delay: float,
    max_delay: float,
    attempt: int,
    now: datetime | None = None,
) -> float:
    """Calculate the wait before retry ``attempt`` honoring a ``Retry-After`` hint.

    The hint is clamped into ``[min_delay, max_delay]`` and used as the base of
    the jitter formula. An unparsable hint counts as zero, which the clamp
    turns into ``min_delay``.
    """
    base = parse_retry_after(retry_after, now) or 0.0
    base = max(min_delay, min(max_delay, base))
    return _jitter(base, max_delay, attempt)


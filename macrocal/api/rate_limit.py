"""Sliding-window request limits per API credential.

The count is recomputed from the request log on every call: rows for the
credential with ``created_at`` inside the last ``window_seconds``. Two tiers
exist: the free tier (60 requests per window) and everything else (600).

If the count cannot be read the limiter fails open: the request is allowed
with the full limit remaining and the store error is logged.
"""

import calendar
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from macrocal.shared.errors import StoreError
from macrocal.shared.utils import setup_logger, utc_now

logger = setup_logger(__name__)

FREE_TIER = "free"
FREE_TIER_LIMIT = 60
PAID_TIER_LIMIT = 600
DEFAULT_WINDOW_SECONDS = 60


class RequestLogStore(Protocol):
    def count_requests(self, api_key_id: str, since: datetime) -> int: ...
    def log_request(self, api_key_id: str, endpoint: str, at: datetime | None = None) -> None: ...


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # unix seconds

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


def limit_for_tier(tier_name: str | None) -> int:
    if tier_name is None or tier_name.strip().lower() == FREE_TIER:
        return FREE_TIER_LIMIT
    return PAID_TIER_LIMIT


def to_unix(dt: datetime) -> int:
    """Naive UTC datetime to unix seconds."""
    return calendar.timegm(dt.utctimetuple())


class RateLimiter:
    def __init__(
        self,
        store: RequestLogStore,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.window_seconds = window_seconds
        self._clock = clock

    def check_limit(self, credential_id: str, tier_name: str | None) -> RateLimitResult:
        """Decide whether *credential_id* may make another request now.

        ``reset_at`` is always ``now + window``; it moves forward on every
        call rather than tracking the oldest request in the window.
        """
        now = self._clock()
        limit = limit_for_tier(tier_name)
        reset_at = to_unix(now) + self.window_seconds

        try:
            count = self.store.count_requests(credential_id, now - timedelta(seconds=self.window_seconds))
        except StoreError as e:
            logger.error("Rate limit check failed for %s, allowing request: %s", credential_id, e)
            return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at=reset_at)

        remaining = max(limit - count, 0)
        return RateLimitResult(
            allowed=count < limit,
            limit=limit,
            remaining=remaining,
            reset_at=reset_at,
        )

    def record_request(self, credential_id: str, endpoint: str) -> None:
        """Append a request-log row. Failures are logged, never raised."""
        try:
            self.store.log_request(credential_id, endpoint, self._clock())
        except StoreError as e:
            logger.error("Failed to record request for %s: %s", credential_id, e)

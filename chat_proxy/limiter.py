"""In-memory rate limiter for the chat proxy.

Tracks per-client request counts using a fixed window that starts with the
client's first request and resets once it has elapsed. Client identity is
the unauthenticated source address, so this is advisory throttling only.
"""

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from chat_proxy.errors import MSG_RATE_LIMITED, ProxyError


class RateLimitExceeded(ProxyError):
    """Raised when a client exceeds their rate limit."""

    status_code = 429

    def __init__(self, client_id: str, status: "RateLimitStatus") -> None:
        self.client_id = client_id
        self.status = status
        headers = status.headers()
        headers["Retry-After"] = str(status.reset_seconds)
        super().__init__(MSG_RATE_LIMITED, headers=headers)


@dataclass
class RateLimitStatus:
    """Snapshot of a client's quota after a request was counted."""

    limit: int
    remaining: int
    reset_seconds: int
    window_seconds: float

    def headers(self) -> Dict[str, str]:
        """Standard RateLimit-* response headers."""
        return {
            "RateLimit-Policy": "{};w={}".format(
                self.limit, int(self.window_seconds)
            ),
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }


@dataclass
class _ClientBucket:
    """Fixed-window counter for a single client."""

    window_start: float = 0.0
    request_count: int = 0


@dataclass
class RateLimiter:
    """Per-client in-memory rate limiter.

    The clock is injectable so tests can roll the window over without
    sleeping.
    """

    max_requests: int = 60
    window_seconds: float = 60.0
    clock: Callable[[], float] = time.time
    _buckets: Dict[str, _ClientBucket] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def check(self, client_id: str) -> RateLimitStatus:
        """Count one request for the client and enforce the limit.

        Args:
            client_id: The caller's key (source address).

        Returns:
            The quota status after counting this request.

        Raises:
            RateLimitExceeded: If the client has used up the window.
        """
        with self._lock:
            now = self.clock()
            bucket = self._get_or_reset_bucket(client_id, now)
            bucket.request_count += 1
            count = bucket.request_count
            status = self._status(bucket, now)

        if count > self.max_requests:
            raise RateLimitExceeded(client_id, status)

        return status

    def hits(self, client_id: str) -> int:
        """Return the number of requests counted in the client's window."""
        with self._lock:
            bucket = self._buckets.get(client_id)
            if bucket is None or self._expired(bucket, self.clock()):
                return 0
            return bucket.request_count

    def reset(self, client_id: str) -> None:
        with self._lock:
            self._buckets.pop(client_id, None)

    def _status(self, bucket: _ClientBucket, now: float) -> RateLimitStatus:
        reset_at = bucket.window_start + self.window_seconds
        return RateLimitStatus(
            limit=self.max_requests,
            remaining=max(0, self.max_requests - bucket.request_count),
            reset_seconds=max(0, math.ceil(reset_at - now)),
            window_seconds=self.window_seconds,
        )

    def _expired(self, bucket: _ClientBucket, now: float) -> bool:
        return (now - bucket.window_start) >= self.window_seconds

    def _get_or_reset_bucket(self, client_id: str, now: float) -> _ClientBucket:
        """Retrieve the bucket for client_id, resetting if the window expired."""
        bucket = self._buckets.get(client_id)

        if bucket is None or self._expired(bucket, now):
            # Expired buckets of every client are dropped here.
            self._prune(now)
            bucket = _ClientBucket(window_start=now)
            self._buckets[client_id] = bucket

        return bucket

    def _prune(self, now: float) -> None:
        expired = [k for k, b in self._buckets.items() if self._expired(b, now)]
        for key in expired:
            del self._buckets[key]

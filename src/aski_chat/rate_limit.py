"""Tracker for the backend's standard ``RateLimit-*`` headers.

The Aski API applies one IP-wide window (express-rate-limit with
``standardHeaders``), so a single bucket covers every path.  ``Reset``
is the number of seconds until the window resets.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import httpx


@dataclass
class BucketInfo:
    limit: int = 0
    remaining: int = 0
    reset_at: float = 0.0  # monotonic deadline


class RateLimiter:
    """Tracks the API rate limit from response headers and pre-emptively waits."""

    def __init__(self) -> None:
        self._bucket: BucketInfo | None = None
        self._lock = asyncio.Lock()

    @property
    def bucket(self) -> BucketInfo | None:
        return self._bucket

    def update_from_response(self, response: httpx.Response) -> None:
        """Update bucket info from RateLimit-* headers."""
        headers = response.headers
        limit = headers.get("ratelimit-limit")
        remaining = headers.get("ratelimit-remaining")
        reset = headers.get("ratelimit-reset")
        if limit is None:
            return
        self._bucket = BucketInfo(
            limit=int(limit),
            remaining=int(remaining) if remaining else 0,
            reset_at=time.monotonic() + (float(reset) if reset else 0.0),
        )

    async def wait_if_needed(self) -> None:
        """Sleep if the bucket is exhausted."""
        bucket = self._bucket
        if bucket is None or bucket.remaining > 0:
            return
        if bucket.reset_at - time.monotonic() <= 0:
            return
        async with self._lock:
            # Re-check after acquiring lock
            bucket = self._bucket
            if bucket and bucket.remaining <= 0:
                delay = bucket.reset_at - time.monotonic()
                if delay > 0:
                    await asyncio.sleep(delay)

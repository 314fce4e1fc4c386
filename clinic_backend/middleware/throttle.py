"""Per-process request throttling.

Counters live in this process only: they reset on restart and are not shared
between replicas, so this limits bursts per instance and is not an
authoritative global quota.
"""

import logging
import time
from threading import Lock

from fastapi import HTTPException, Request, Response, status

logger = logging.getLogger(__name__)

STALE_ENTRY_GRACE_SECONDS = 5 * 60


class Throttle:
    """Fixed-window limiter usable as a FastAPI dependency."""

    def __init__(self, max_requests: int, window_seconds: int, scope: str = 'default', clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.scope = scope
        self._clock = clock
        self._entries: dict[str, dict] = {}
        self._lock = Lock()
        self._last_cleanup = clock()

    @staticmethod
    def client_key(request: Request) -> str:
        """Client address, preferring the first ``X-Forwarded-For`` hop.

        The header is taken on trust, so a client that reaches the app directly
        can pick its own key. Only deploy behind a proxy that overwrites it.
        """
        forwarded_for = request.headers.get('x-forwarded-for')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()
        if request.client:
            return request.client.host
        return 'unknown'

    def hit(self, key: str) -> tuple[int, float]:
        """Record one request for ``key``; return (count in window, window expiry)."""
        now = self._clock()
        with self._lock:
            self._cleanup(now)

            entry = self._entries.get(key)
            if entry is None or now > entry['expires_at']:
                entry = {'count': 0, 'expires_at': now + self.window_seconds}
                self._entries[key] = entry

            entry['count'] += 1
            return entry['count'], entry['expires_at']

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < STALE_ENTRY_GRACE_SECONDS:
            return

        self._entries = {
            key: entry
            for key, entry in self._entries.items()
            if now <= entry['expires_at'] + STALE_ENTRY_GRACE_SECONDS
        }
        self._last_cleanup = now

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __call__(self, request: Request, response: Response) -> None:
        key = f'{self.scope}:{self.client_key(request)}'
        count, expires_at = self.hit(key)
        remaining = max(0, self.max_requests - count)
        reset_in = max(0, int(expires_at - self._clock()))

        headers = {
            'X-RateLimit-Limit': str(self.max_requests),
            'X-RateLimit-Remaining': str(remaining),
            'X-RateLimit-Reset': str(reset_in),
        }
        response.headers.update(headers)

        if count > self.max_requests:
            logger.warning('Throttled %s (%s requests in window)', key, count)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={'code': 'TOO_MANY_REQUESTS', 'message': 'Too many requests, please try again later.'},
                headers={**headers, 'Retry-After': str(reset_in)},
            )

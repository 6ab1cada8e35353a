from __future__ import annotations

import time
from threading import Lock
from typing import Callable

import httpx

from .errors import DeadlineExceeded
from .logging import get_logger

log = get_logger(__name__)

DEADLINE_EXTENSION = "deadline"


class Deadline:
    """Absolute point in (monotonic) time after which a pass must give up."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self, what: str = "operation") -> None:
        if self.expired():
            raise DeadlineExceeded(f"Deadline exceeded before {what}.")

    def timeout(self, cap: float) -> float:
        """Network timeout for a sub-call: never longer than the time left."""
        self.check()
        return min(cap, self.remaining())


class TokenBucket:
    """Token-bucket limiter admitting ``permits`` operations per ``period`` seconds.

    ``burst`` tokens can be spent back-to-back; after that callers are paced at
    the refill rate. Waiting reserves a token under the lock and sleeps outside
    it, so concurrent callers queue up in arrival order instead of spinning.
    """

    def __init__(
        self,
        permits: int,
        period: float,
        burst: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if permits <= 0 or period <= 0:
            raise ValueError("permits and period must be positive.")
        self.rate = permits / period
        self.burst = max(1, int(burst if burst is not None else permits))
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._tokens = float(self.burst)
        self._updated = clock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated = now

    def reserve(self, deadline: Deadline | None = None) -> float:
        """Take one token and return how long the caller must wait for it.

        Raises DeadlineExceeded (without taking the token) if the wait would
        outlast ``deadline``.
        """
        with self._lock:
            now = self._clock()
            self._refill(now)
            wait = 0.0 if self._tokens >= 1 else (1 - self._tokens) / self.rate
            if deadline is not None and wait > deadline.remaining():
                raise DeadlineExceeded(f"Rate limiter wait of {wait:.2f}s exceeds deadline.")
            self._tokens -= 1
            return wait

    def acquire(self, deadline: Deadline | None = None) -> None:
        wait = self.reserve(deadline)
        if wait > 0:
            self._sleep(wait)


class RateLimitedTransport(httpx.BaseTransport):
    """httpx transport that holds every request until the shared limiter admits it."""

    def __init__(self, limiter: TokenBucket, transport: httpx.BaseTransport | None = None):
        self.limiter = limiter
        self._transport = transport or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        deadline = request.extensions.get(DEADLINE_EXTENSION)
        try:
            self.limiter.acquire(deadline)
        except DeadlineExceeded:
            log.warning("ratelimit_wait_aborted", url=str(request.url))
            raise
        return self._transport.handle_request(request)

    def close(self) -> None:
        self._transport.close()


def build_http_client(
    limiter: TokenBucket,
    timeout_s: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """One client for every outbound call, so all jobs share a single quota."""
    return httpx.Client(
        transport=RateLimitedTransport(limiter, transport),
        timeout=timeout_s,
        follow_redirects=False,
    )

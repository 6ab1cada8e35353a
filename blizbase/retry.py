from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import TransientRemoteFault
from .logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_unit_s: float = 0.1

    def backoff(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failed try (1-based): attempt x unit."""
        return attempt * self.backoff_unit_s


class RetriesExhausted(TransientRemoteFault):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...] = (TransientRemoteFault,),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "",
) -> T:
    """Call ``fn`` until it succeeds or ``policy.max_attempts`` is used up.

    Only exceptions in ``retry_on`` are retried; anything else propagates on
    the first occurrence.
    """
    attempts = max(1, int(policy.max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt >= attempts:
                raise RetriesExhausted(attempt, e) from e
            delay = policy.backoff(attempt)
            log.info("retrying", target=label, attempt=attempt + 1, max_attempts=attempts, delay_s=delay, error=str(e))
            sleep(delay)
    raise AssertionError("unreachable")

"""Retry policy for registry reads."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from mprdb.logger import get_logger

logger = get_logger(__name__)

Response = tuple[int, bytes]

RETRYABLE_STATUSES = frozenset((429, 502, 503, 504))


def should_retry_http_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES


@dataclass(frozen=True)
class Backoff:
    """Doubling pauses from ``base_seconds`` up to ``max_seconds``, each spread by ``jitter_ratio``."""

    base_seconds: float = 0.2
    max_seconds: float = 2.0
    jitter_ratio: float = 0.2

    def pauses(self) -> Iterator[float]:
        pause = max(0.0, self.base_seconds)
        ceiling = max(pause, self.max_seconds)
        spread = max(0.0, self.jitter_ratio)
        while True:
            window = pause * spread
            yield max(0.0, pause + random.uniform(-window, window)) if window else pause
            pause = min(ceiling, pause * 2)


def send_with_retry(
    send: Callable[[], Response],
    *,
    attempts: int = 3,
    backoff: Backoff = Backoff(),
    sleep: Callable[[float], None] = time.sleep,
) -> Response:
    """
    Call ``send`` until it answers with a status outside ``RETRYABLE_STATUSES``
    or ``attempts`` calls have been made. ``OSError`` from ``send`` counts as a
    retryable failure; anything else propagates at once.

    The last response is returned, or the last ``OSError`` re-raised. Only
    reads go through here: a registry write is sent exactly once.
    """
    attempts = max(1, attempts)
    pauses = backoff.pauses()
    attempt = 1
    while True:
        try:
            status, body = send()
        except OSError as error:
            if attempt >= attempts:
                raise
            logger.debug("registry read failed (%s), attempt %d of %d", error, attempt, attempts)
        else:
            if attempt >= attempts or not should_retry_http_status(status):
                return status, body
            logger.debug("registry answered %d, attempt %d of %d", status, attempt, attempts)
        sleep(next(pauses))
        attempt += 1

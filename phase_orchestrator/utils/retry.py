from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retry(
    fn: Callable[[], T],
    retries: int = 1,
    delay: float = 1.0,
    label: str = "call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run fn, retrying up to `retries` more times after any exception.

    The last exception is re-raised once the budget is spent.
    """
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "[retry] %s attempt=%s/%s failed: %s -> sleeping %.2fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")

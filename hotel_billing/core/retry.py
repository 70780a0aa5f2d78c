from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delays(attempts: int, base_delay: float = 1.0, factor: float = 2.0) -> list[float]:
    """Delays slept between attempts: base, base*factor, base*factor**2, ..."""
    return [base_delay * (factor ** power) for power in range(max(attempts - 1, 0))]


def retry_call(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    factor: float = 2.0,
    retry_if: Callable[[Exception], bool] = lambda _exc: True,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` up to ``attempts`` times with exponential backoff.

    Exceptions rejected by ``retry_if`` propagate immediately. The last
    exception propagates once every attempt has failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    delays = backoff_delays(attempts, base_delay, factor)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as exc:
            if not retry_if(exc) or attempt >= attempts:
                raise
            delay = delays[attempt - 1]
            logger.warning(
                "%s attempt %s/%s failed, retrying in %ss: %s",
                operation_name,
                attempt,
                attempts,
                delay,
                exc,
            )
            if on_retry is not None:
                on_retry(attempt, exc)
            sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover

"""Ordered fallback chains with uniform timeout handling."""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple, Type

import requests

logger = logging.getLogger(__name__)

# Failures that advance a chain instead of aborting it
SOFT_FAILURES: Tuple[Type[BaseException], ...] = (requests.RequestException, ValueError)


class Deadline:
    """Time budget shared by every network step of one operation."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def cap(self, timeout: float) -> float:
        """Shrink a per-step timeout so it never outlives the budget."""
        return min(timeout, self.remaining())

    def child(self, seconds: float) -> 'Deadline':
        """Nested budget that expires no later than this one."""
        return Deadline(self.cap(seconds), clock=self._clock)


@dataclass
class Strategy:
    """
    One attempt in a fallback chain.

    Attributes:
        name: Label used in log messages
        run: Callable receiving the effective timeout in seconds; a falsy
            return value counts as a failure
        timeout: Per-attempt timeout in seconds
    """
    name: str
    run: Callable[[float], Any]
    timeout: float


def run_chain(
    strategies: Iterable[Strategy],
    deadline: Optional[Deadline] = None,
    soft_failures: Tuple[Type[BaseException], ...] = SOFT_FAILURES
) -> Any:
    """
    Try strategies in order and return the first truthy result.

    The iterable is consumed lazily, so a generator can defer expensive
    setup (such as probing the next port) until the previous attempt failed.

    Args:
        strategies: Ordered attempts
        deadline: Overall budget capping each attempt's timeout
        soft_failures: Exception types treated as "try the next one"

    Returns:
        First truthy strategy result, or None when every attempt failed
    """
    for strategy in strategies:
        if deadline is not None and deadline.expired:
            logger.warning(f"Deadline exhausted before trying {strategy.name}")
            return None

        timeout = deadline.cap(strategy.timeout) if deadline is not None else strategy.timeout

        try:
            result = strategy.run(timeout)
        except soft_failures as e:
            logger.warning(f"{strategy.name} failed: {e}")
            continue

        if result:
            logger.info(f"{strategy.name} succeeded")
            return result

        logger.info(f"{strategy.name} returned no result, trying next")

    return None

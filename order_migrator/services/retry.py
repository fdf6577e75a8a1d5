from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from order_migrator.models.config_models import RetryConfig

"""Retry with exponential backoff for store calls.

delay after failed attempt k (0-based) = 2**k * base_delay, no jitter:
200ms, 400ms, ... No sleep follows the last attempt; its exception is
re-raised to the caller's per-row error boundary.
"""

__all__ = [
    "RetryPolicy",
]

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.2  # 秒
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    @classmethod
    def from_config(cls, cfg: RetryConfig, sleep: Callable[[float], None] = time.sleep) -> RetryPolicy:
        return cls(
            max_attempts=max(1, cfg.max_attempts),
            base_delay=cfg.base_delay_ms / 1000.0,
            sleep=sleep,
        )

    def delay_for(self, attempt: int) -> float:
        return (2 ** attempt) * self.base_delay

    def call(self, fn: Callable[[], T], *, label: str = "store call") -> T:
        """Run fn until it succeeds or max_attempts is exhausted."""
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except Exception as e:
                if attempt + 1 >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.debug(
                    "%s failed (attempt %d/%d): %s; retrying in %.3fs",
                    label, attempt + 1, self.max_attempts, e, delay,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

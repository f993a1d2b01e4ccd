"""Exponential backoff with jitter for transient store failures."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from backend.app.core.config import settings
from backend.app.core.errors import StoreError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    max_retries: int = 2
    base_delay: float = 0.05  # seconds
    max_delay: float = 1.0  # seconds
    exponential_base: float = 2.0

    @classmethod
    def from_settings(cls) -> RetryConfig:
        return cls(
            max_retries=settings.STORE_MAX_RETRIES,
            base_delay=settings.STORE_RETRY_BASE_DELAY,
            max_delay=settings.STORE_RETRY_MAX_DELAY,
        )


def compute_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt + 1``, capped, plus up to 10% jitter."""
    delay = min(
        config.base_delay * (config.exponential_base**attempt),
        config.max_delay,
    )
    jitter = random.uniform(0, delay * 0.1)  # noqa: S311
    return delay + jitter


def retry_with_backoff(
    func: Callable[[], T],
    config: RetryConfig,
    *,
    on_retry: Callable[[StoreError], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds, retrying only ``StoreError``.

    ``on_retry`` runs before each sleep, e.g. to roll back a failed session.
    Anything that is not a ``StoreError`` propagates on the first attempt.
    The last ``StoreError`` is re-raised once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return func()
        except StoreError as e:
            if attempt >= config.max_retries:
                logger.error("All %d store attempts failed: %s", attempt + 1, e)
                raise
            if on_retry is not None:
                on_retry(e)
            delay = compute_backoff_delay(attempt, config)
            logger.warning(
                "Store attempt %d failed: %s. Retrying in %.2fs",
                attempt + 1,
                e,
                delay,
            )
            sleep(delay)
            attempt += 1

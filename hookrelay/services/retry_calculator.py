"""Exponential backoff with additive jitter."""

import random
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

from hookrelay.config import Settings, get_settings
from hookrelay.models import utcnow


class RetryCalculator:
    def __init__(self, settings: Optional[Settings] = None, rng: Callable[[], float] = random.random):
        self.settings = settings or get_settings()
        self.rng = rng

    def next_retry_delay(self, attempt: int) -> int:
        """Seconds to wait before ``attempt`` (1-based).

        ``min(base * 2^(attempt-1), max)`` plus a jitter of up to
        ``jitter_factor`` times that value. Jitter only ever adds, so the
        result can exceed ``max_retry_delay`` by the jitter share.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")

        exponential = self.settings.retry_base_delay * (2 ** (attempt - 1))
        capped = min(exponential, self.settings.max_retry_delay)
        jitter = int(self.rng() * self.settings.retry_jitter_factor * capped)
        return int(capped) + jitter

    def next_retry_at(self, attempt: int, now: Optional[datetime] = None) -> datetime:
        now = now or utcnow()
        return now + timedelta(seconds=self.next_retry_delay(attempt))

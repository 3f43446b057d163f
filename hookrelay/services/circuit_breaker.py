"""Per-endpoint circuit breaker backed by the webhook_endpoints table.

States: CLOSED → OPEN → HALF_OPEN
- CLOSED: requests flow normally; failures are counted
- OPEN: requests are refused until the cooldown has elapsed
- HALF_OPEN: requests are admitted; a success closes, a failure re-opens

Counters are bumped with ``UPDATE ... SET n = n + 1`` and re-read, so
concurrent deliveries to one endpoint never lose increments.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import Settings, get_settings
from hookrelay.models import CircuitState, WebhookEndpoint, utcnow

logger = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(self, db: AsyncSession, endpoint: WebhookEndpoint, settings: Optional[Settings] = None):
        self.db = db
        self.endpoint = endpoint
        self.settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return self.settings.circuit_breaker_enabled

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.settings.circuit_breaker_timeout)

    # ── Admission ───────────────────────────────────────
    async def allow_request(self) -> bool:
        """Whether a delivery to this endpoint may go ahead now.

        An open circuit whose cooldown has run out is moved to HALF_OPEN
        before admitting the request.
        """
        if not self.enabled:
            return True

        state = self.endpoint.circuit_state
        if state == CircuitState.OPEN.value:
            if not self._cooldown_expired():
                return False
            await self._save(circuit_state=CircuitState.HALF_OPEN.value, circuit_opened_at=None)
            logger.info(f"Circuit breaker HALF_OPEN for {self.endpoint.url}")
            return True

        if state == CircuitState.HALF_OPEN.value:
            # No trial-request limiter: every concurrent request is admitted while half-open
            logger.debug(f"Admitting half-open request to {self.endpoint.url}")
        return True

    def is_open(self) -> bool:
        """Read-only check: enabled, OPEN, and still cooling down."""
        if not self.enabled:
            return False
        return self.endpoint.circuit_state == CircuitState.OPEN.value and not self._cooldown_expired()

    def retry_after(self, now: Optional[datetime] = None) -> float:
        """Seconds left before an open circuit will admit a trial request (0 when not open)."""
        if not self.is_open() or self.endpoint.circuit_opened_at is None:
            return 0.0
        now = now or utcnow()
        remaining = (self.endpoint.circuit_opened_at + self.cooldown - now).total_seconds()
        return max(0.0, remaining)

    # ── Outcomes ────────────────────────────────────────
    async def record_success(self) -> None:
        await self._increment(WebhookEndpoint.success_count, last_success_at=utcnow())

        if self.endpoint.circuit_state == CircuitState.HALF_OPEN.value:
            await self._save(
                circuit_state=CircuitState.CLOSED.value,
                failure_count=0,
                circuit_opened_at=None,
            )
            logger.info(f"Circuit breaker reset to CLOSED for {self.endpoint.url}")

    async def record_failure(self) -> None:
        await self._increment(WebhookEndpoint.failure_count, last_failure_at=utcnow())

        state = self.endpoint.circuit_state
        if state == CircuitState.CLOSED.value:
            if self.endpoint.failure_count >= self.settings.circuit_breaker_threshold:
                await self._open()
        elif state == CircuitState.HALF_OPEN.value:
            # A single failed trial request re-opens the circuit
            await self._open()

    # ── Internals ───────────────────────────────────────
    def _cooldown_expired(self, now: Optional[datetime] = None) -> bool:
        opened_at = self.endpoint.circuit_opened_at
        if opened_at is None:
            return True
        now = now or utcnow()
        return now > opened_at + self.cooldown

    async def _open(self) -> None:
        await self._save(circuit_state=CircuitState.OPEN.value, circuit_opened_at=utcnow())
        logger.warning(
            f"Circuit breaker OPENED for {self.endpoint.url} "
            f"(failures={self.endpoint.failure_count}, "
            f"threshold={self.settings.circuit_breaker_threshold}, "
            f"cooldown={self.settings.circuit_breaker_timeout}s)"
        )

    async def _increment(self, counter, **values: Any) -> None:
        values[counter.key] = counter + 1
        await self._save(**values)

    async def _save(self, **values: Any) -> None:
        await self.db.execute(
            update(WebhookEndpoint)
            .where(WebhookEndpoint.id == self.endpoint.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(self.endpoint)

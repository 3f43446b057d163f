"""Delivery orchestrator — runs one delivery attempt for a webhook end to end.

circuit breaker → dispatcher → attempt log → classifier → retry scheduler
"""

import logging
from datetime import timedelta
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import Settings, get_settings
from hookrelay.models import Webhook, WebhookAttempt, WebhookStatus, utcnow
from hookrelay.services.circuit_breaker import CircuitBreaker
from hookrelay.services.dispatcher import DeliveryResult, Dispatcher
from hookrelay.services.error_classifier import ErrorClassifier
from hookrelay.services.queue import SubmitFn, submit_via_celery
from hookrelay.services.retry_scheduler import RetryScheduler

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    SKIPPED = "skipped"      # missing, terminal or exhausted; nothing touched
    DEFERRED = "deferred"    # circuit open; rescheduled without spending an attempt
    DELIVERED = "delivered"
    FAILED = "failed"        # retry scheduled
    DEAD = "dead"            # permanent failure or attempts exhausted


class DeliveryOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        dispatcher: Optional[Dispatcher] = None,
        scheduler: Optional[RetryScheduler] = None,
        submit: Optional[SubmitFn] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.dispatcher = dispatcher or Dispatcher(self.settings)
        self.scheduler = scheduler or RetryScheduler(db, self.settings)
        self.submit = submit or submit_via_celery

    async def process(self, webhook_id: str) -> DeliveryOutcome:
        result = await self.db.execute(select(Webhook).where(Webhook.id == webhook_id))
        webhook = result.scalar_one_or_none()
        if webhook is None or not webhook.is_deliverable:
            logger.debug(f"Webhook {webhook_id} not deliverable, skipping")
            return DeliveryOutcome.SKIPPED

        breaker = CircuitBreaker(self.db, webhook.endpoint, self.settings)
        if not await breaker.allow_request():
            await self._defer(webhook)
            return DeliveryOutcome.DEFERRED

        webhook.mark_processing().increment_attempt()
        await self.db.commit()

        delivery = await self.dispatcher.deliver(webhook)
        self.db.add(WebhookAttempt.record(webhook, delivery))
        await self.db.commit()

        if delivery.success:
            return await self._handle_success(webhook, breaker, delivery)
        return await self._handle_failure(webhook, breaker, delivery)

    async def _handle_success(
        self, webhook: Webhook, breaker: CircuitBreaker, delivery: DeliveryResult
    ) -> DeliveryOutcome:
        webhook.mark_delivered(utcnow())
        await self.db.commit()
        await breaker.record_success()

        logger.info(
            f"Webhook {webhook.id} delivered to {webhook.url}: {delivery.status} "
            f"(attempt {webhook.attempt_count}, {delivery.duration_ms}ms)"
        )
        return DeliveryOutcome.DELIVERED

    async def _handle_failure(
        self, webhook: Webhook, breaker: CircuitBreaker, delivery: DeliveryResult
    ) -> DeliveryOutcome:
        await breaker.record_failure()

        classifier = ErrorClassifier(delivery)
        error_type = classifier.error_type().value
        if classifier.is_permanent_failure():
            webhook.mark_dead(utcnow())
            await self.db.commit()
            logger.warning(
                f"Webhook {webhook.id} to {webhook.url} failed permanently "
                f"({error_type}, status={delivery.status}), marked dead"
            )
            return DeliveryOutcome.DEAD

        webhook.mark_failed(utcnow())
        await self.db.commit()

        if webhook.status == WebhookStatus.DEAD.value:
            logger.warning(
                f"Webhook {webhook.id} to {webhook.url} exhausted "
                f"{webhook.attempt_count}/{webhook.max_attempts} attempts ({error_type}), marked dead"
            )
            return DeliveryOutcome.DEAD

        await self.scheduler.schedule_retry(webhook)
        logger.warning(
            f"Webhook {webhook.id} to {webhook.url} failed "
            f"(attempt {webhook.attempt_count}/{webhook.max_attempts}, {error_type}, "
            f"status={delivery.status})"
        )
        return DeliveryOutcome.FAILED

    async def _defer(self, webhook: Webhook) -> None:
        retry_at = utcnow() + timedelta(seconds=self.settings.circuit_breaker_timeout)
        webhook.schedule_at(retry_at)
        await self.db.commit()

        # The retry sweep only scans failed webhooks; anything else needs its own wake-up
        if webhook.status != WebhookStatus.FAILED.value:
            self.submit(webhook.id, eta=retry_at)

        logger.info(
            f"Circuit open for {webhook.endpoint.url}, webhook {webhook.id} "
            f"deferred until {retry_at.isoformat()}"
        )

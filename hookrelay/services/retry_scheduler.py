"""Retry scheduler — decides whether a failed webhook gets another try and when."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import Settings, get_settings
from hookrelay.models import Webhook, WebhookStatus
from hookrelay.services.retry_calculator import RetryCalculator

logger = logging.getLogger(__name__)


class RetryScheduler:
    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        calculator: Optional[RetryCalculator] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.calculator = calculator or RetryCalculator(self.settings)

    @staticmethod
    def is_retryable(webhook: Webhook) -> bool:
        return webhook.status == WebhookStatus.FAILED.value and webhook.attempt_count < webhook.max_attempts

    async def schedule_retry(self, webhook: Webhook) -> bool:
        """Persist the next ``scheduled_at`` for a retryable webhook. Returns False and
        leaves the webhook alone otherwise."""
        if not self.is_retryable(webhook):
            return False

        next_attempt = webhook.attempt_count + 1
        retry_at = self.calculator.next_retry_at(next_attempt)
        webhook.schedule_at(retry_at)
        await self.db.commit()

        logger.info(
            f"Webhook {webhook.id} retry {next_attempt}/{webhook.max_attempts} "
            f"scheduled at {retry_at.isoformat()}"
        )
        return True

    async def schedule_all_pending_retries(self) -> int:
        """Give every failed webhook that lost its ``scheduled_at`` a retry time."""
        result = await self.db.execute(
            select(Webhook).where(Webhook.unscheduled_failure_clause()).order_by(Webhook.created_at)
        )
        count = 0
        for webhook in result.scalars().all():
            if await self.schedule_retry(webhook):
                count += 1

        if count:
            logger.info(f"Scheduled {count} failed webhooks that had no retry time")
        return count

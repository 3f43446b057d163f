"""Retry sweep — periodically hands due failed webhooks back to the job queue."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import Settings, get_settings
from hookrelay.models import Webhook, utcnow
from hookrelay.services.circuit_breaker import CircuitBreaker
from hookrelay.services.queue import SubmitFn, submit_via_celery

logger = logging.getLogger(__name__)


class RetrySweep:
    """Finds failed webhooks whose ``scheduled_at`` has passed and re-submits them.

    Nothing is delivered here. Webhooks whose endpoint circuit refuses the
    request keep their ``scheduled_at`` and are looked at again next pass.
    ``scheduled_at`` is cleared before hand-off so a concurrent sweep does not
    pick the same webhook up again.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        submit: Optional[SubmitFn] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.submit = submit or submit_via_celery

    async def due_webhooks(self, now: Optional[datetime] = None) -> list[Webhook]:
        now = now or utcnow()
        result = await self.db.execute(
            select(Webhook).where(Webhook.due_for_retry_clause(now)).order_by(Webhook.scheduled_at)
        )
        return list(result.scalars().all())

    async def run(self, now: Optional[datetime] = None) -> int:
        webhooks = await self.due_webhooks(now)

        submitted = 0
        skipped = 0
        for webhook in webhooks:
            breaker = CircuitBreaker(self.db, webhook.endpoint, self.settings)
            if not await breaker.allow_request():
                skipped += 1
                continue

            webhook.schedule_at(None)
            await self.db.commit()
            self.submit(webhook.id)
            submitted += 1

        if webhooks:
            logger.info(
                f"Retry sweep: {len(webhooks)} due, {submitted} submitted, "
                f"{skipped} held by open circuits"
            )
        return submitted

"""Webhook delivery tasks."""

import asyncio
import logging

from hookrelay.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="hookrelay.tasks.webhook_tasks.process_webhook")
def process_webhook_task(webhook_id: str) -> str:
    """Run one delivery attempt for a webhook."""
    return asyncio.run(_process_webhook(webhook_id))


@celery_app.task(name="hookrelay.tasks.webhook_tasks.retry_failed_webhooks")
def retry_failed_webhooks_task() -> int:
    """Hand failed webhooks whose retry time has come back to the queue."""
    return asyncio.run(_retry_failed_webhooks())


@celery_app.task(name="hookrelay.tasks.webhook_tasks.schedule_pending_retries")
def schedule_pending_retries_task() -> int:
    """Give failed webhooks without a retry time one."""
    return asyncio.run(_schedule_pending_retries())


async def _process_webhook(webhook_id: str) -> str:
    from hookrelay.database import create_worker_session_factory
    from hookrelay.services.delivery import DeliveryOrchestrator

    session_factory, db_engine = create_worker_session_factory()
    try:
        async with session_factory() as db:
            outcome = await DeliveryOrchestrator(db).process(webhook_id)
    finally:
        await db_engine.dispose()

    logger.info(f"Webhook {webhook_id}: {outcome.value}")
    return outcome.value


async def _retry_failed_webhooks() -> int:
    from hookrelay.database import create_worker_session_factory
    from hookrelay.services.retry_sweep import RetrySweep

    session_factory, db_engine = create_worker_session_factory()
    try:
        async with session_factory() as db:
            return await RetrySweep(db).run()
    finally:
        await db_engine.dispose()


async def _schedule_pending_retries() -> int:
    from hookrelay.database import create_worker_session_factory
    from hookrelay.services.retry_scheduler import RetryScheduler

    session_factory, db_engine = create_worker_session_factory()
    try:
        async with session_factory() as db:
            return await RetryScheduler(db).schedule_all_pending_retries()
    finally:
        await db_engine.dispose()

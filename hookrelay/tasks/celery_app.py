"""Celery application — webhook delivery queue and periodic retry sweeps."""

import logging

from celery import Celery
from celery.signals import after_setup_logger, worker_shutting_down

from hookrelay.config import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)

celery_app = Celery(
    "hookrelay",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["hookrelay.tasks.webhook_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # At-least-once: a task is only acked once it has run
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue=settings.job_queue,
    task_routes={
        "hookrelay.tasks.webhook_tasks.*": {"queue": settings.job_queue},
    },
    beat_schedule={
        "retry-failed-webhooks": {
            "task": "hookrelay.tasks.webhook_tasks.retry_failed_webhooks",
            "schedule": settings.retry_sweep_interval,
        },
        "schedule-pending-retries": {
            "task": "hookrelay.tasks.webhook_tasks.schedule_pending_retries",
            "schedule": settings.pending_schedule_interval,
        },
    },
    worker_max_tasks_per_child=1000,
)


@after_setup_logger.connect
def _apply_log_level(logger: logging.Logger, **kw):
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))


@worker_shutting_down.connect
def on_worker_shutting_down(sig=None, how=None, exitcode=None, **kw):
    logger.info(f"Worker shutting down (signal={sig}, how={how}, exitcode={exitcode})")

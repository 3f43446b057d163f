"""Enqueue entrypoint — validates, deduplicates and schedules new webhooks."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.config import Settings, get_settings
from hookrelay.models import Webhook, WebhookEndpoint, ensure_utc
from hookrelay.services.queue import SubmitFn, submit_via_celery

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048


class WebhookValidationError(ValueError):
    """Raised synchronously for malformed enqueue calls; nothing is written."""


@dataclass
class EnqueueResult:
    webhook: Webhook
    created: bool


def validate_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise WebhookValidationError("url is required")
    if len(url) > MAX_URL_LENGTH:
        raise WebhookValidationError(f"url exceeds {MAX_URL_LENGTH} characters")
    try:
        parts = urlsplit(url)
        # Port is parsed lazily; a non-numeric or out-of-range one only fails here
        parts.port
    except ValueError as exc:
        raise WebhookValidationError(f"url is not a valid URL: {exc}") from exc
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise WebhookValidationError(f"url is not a valid http(s) URL: {url}")
    return url


def _validate(url, payload, headers, max_attempts, metadata) -> None:
    validate_url(url)
    if payload is None:
        raise WebhookValidationError("payload is required")
    if headers is not None and not isinstance(headers, Mapping):
        raise WebhookValidationError("headers must be a mapping")
    if metadata is not None and not isinstance(metadata, Mapping):
        raise WebhookValidationError("metadata must be a mapping")
    if max_attempts is not None and max_attempts < 1:
        raise WebhookValidationError("max_attempts must be at least 1")


async def find_by_idempotency_key(db: AsyncSession, key: str) -> Optional[Webhook]:
    result = await db.execute(select(Webhook).where(Webhook.idempotency_key == key))
    return result.scalar_one_or_none()


async def find_or_create_endpoint(db: AsyncSession, url: str) -> WebhookEndpoint:
    stmt = select(WebhookEndpoint).where(WebhookEndpoint.url == url)
    endpoint = (await db.execute(stmt)).scalar_one_or_none()
    if endpoint is not None:
        return endpoint

    endpoint = WebhookEndpoint(url=url, host=WebhookEndpoint.host_for(url))
    db.add(endpoint)
    try:
        await db.commit()
    except IntegrityError:
        # Another worker created it between our read and insert
        await db.rollback()
        return (await db.execute(stmt)).scalar_one()
    logger.info(f"Registered webhook endpoint {url}")
    return endpoint


async def enqueue(
    db: AsyncSession,
    url: str,
    payload: Any,
    headers: Optional[Mapping[str, str]] = None,
    max_attempts: Optional[int] = None,
    scheduled_at: Optional[datetime] = None,
    idempotency_key: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    settings: Optional[Settings] = None,
    submit: Optional[SubmitFn] = None,
) -> EnqueueResult:
    """Create a webhook and submit its first delivery.

    A call whose ``idempotency_key`` already exists returns the original
    webhook untouched and submits nothing.
    """
    settings = settings or get_settings()
    submit = submit or submit_via_celery
    _validate(url, payload, headers, max_attempts, metadata)

    if idempotency_key:
        existing = await find_by_idempotency_key(db, idempotency_key)
        if existing is not None:
            logger.info(f"Idempotency key {idempotency_key!r} matches webhook {existing.id}, not re-enqueuing")
            return EnqueueResult(webhook=existing, created=False)

    endpoint = await find_or_create_endpoint(db, url)
    scheduled_at = ensure_utc(scheduled_at)

    webhook = Webhook(
        endpoint_id=endpoint.id,
        url=url,
        payload=payload,
        headers=dict(headers or {}),
        max_attempts=max_attempts or settings.default_max_attempts,
        scheduled_at=scheduled_at,
        idempotency_key=idempotency_key or None,
        metadata_=dict(metadata or {}),
    )
    webhook.endpoint = endpoint
    db.add(webhook)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if idempotency_key:
            existing = await find_by_idempotency_key(db, idempotency_key)
            if existing is not None:
                return EnqueueResult(webhook=existing, created=False)
        raise

    if scheduled_at is not None:
        submit(webhook.id, eta=scheduled_at)
    else:
        submit(webhook.id)

    logger.info(
        f"Enqueued webhook {webhook.id} to {url} "
        f"(max_attempts={webhook.max_attempts}, scheduled_at={scheduled_at.isoformat() if scheduled_at else 'now'})"
    )
    return EnqueueResult(webhook=webhook, created=True)


async def enqueue_webhook(db: AsyncSession, url: str, payload: Any, **kwargs: Any) -> Webhook:
    """Public entrypoint: same as :func:`enqueue` but returns just the webhook."""
    return (await enqueue(db, url, payload, **kwargs)).webhook

"""Webhook enqueue and inspection API."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.api.deps import get_app_settings, get_submit
from hookrelay.config import Settings
from hookrelay.database import get_db
from hookrelay.models import Webhook, WebhookAttempt, WebhookStatus, ensure_utc
from hookrelay.schemas import AttemptOut, WebhookCreate, WebhookOut
from hookrelay.services.enqueue import WebhookValidationError, enqueue
from hookrelay.services.queue import SubmitFn

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _get_webhook_or_404(db: AsyncSession, webhook_id: str) -> Webhook:
    result = await db.execute(select(Webhook).where(Webhook.id == webhook_id))
    wh = result.scalar_one_or_none()
    if not wh:
        raise HTTPException(404, "Webhook not found")
    return wh


@router.post("/", response_model=WebhookOut, status_code=201)
async def create_webhook(
    data: WebhookCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    submit: SubmitFn = Depends(get_submit),
):
    """Enqueue a webhook. Repeating an idempotency key returns the original with 200."""
    try:
        result = await enqueue(
            db,
            url=data.url,
            payload=data.payload,
            headers=data.headers,
            max_attempts=data.max_attempts,
            scheduled_at=data.scheduled_at,
            idempotency_key=data.idempotency_key,
            metadata=data.metadata,
            settings=settings,
            submit=submit,
        )
    except WebhookValidationError as exc:
        raise HTTPException(400, str(exc))

    if not result.created:
        response.status_code = 200
    return WebhookOut.from_model(result.webhook)


@router.get("/", response_model=list[WebhookOut])
async def list_webhooks(
    status: Optional[str] = None,
    deliverable: bool = False,
    due_before: Optional[datetime] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Webhook)
    if status is not None:
        if status not in {s.value for s in WebhookStatus}:
            raise HTTPException(400, f"Invalid status: {status}")
        stmt = stmt.where(Webhook.status == status)
    if deliverable:
        stmt = stmt.where(Webhook.deliverable_clause())
    if due_before is not None:
        stmt = stmt.where(Webhook.scheduled_before_clause(ensure_utc(due_before)))
    stmt = stmt.order_by(Webhook.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return [WebhookOut.from_model(wh) for wh in result.scalars().all()]


@router.get("/{webhook_id}", response_model=WebhookOut)
async def get_webhook(webhook_id: str, db: AsyncSession = Depends(get_db)):
    return WebhookOut.from_model(await _get_webhook_or_404(db, webhook_id))


@router.get("/{webhook_id}/attempts", response_model=list[AttemptOut])
async def list_attempts(webhook_id: str, db: AsyncSession = Depends(get_db)):
    """Delivery attempts for a webhook, oldest first."""
    await _get_webhook_or_404(db, webhook_id)
    result = await db.execute(
        select(WebhookAttempt)
        .where(WebhookAttempt.webhook_id == webhook_id)
        .order_by(WebhookAttempt.attempt_number.asc())
    )
    return result.scalars().all()


@router.post("/{webhook_id}/retry", response_model=WebhookOut, status_code=202)
async def retry_webhook(
    webhook_id: str,
    db: AsyncSession = Depends(get_db),
    submit: SubmitFn = Depends(get_submit),
):
    """Submit a non-terminal webhook for immediate redelivery."""
    wh = await _get_webhook_or_404(db, webhook_id)
    if not wh.is_deliverable:
        raise HTTPException(409, f"Webhook is {wh.status} with {wh.attempt_count}/{wh.max_attempts} attempts")

    wh.schedule_at(None)
    await db.commit()
    submit(wh.id)
    return WebhookOut.from_model(wh)

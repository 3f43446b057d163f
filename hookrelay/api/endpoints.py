"""Delivery endpoint stats and circuit-breaker status."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.api.deps import get_app_settings
from hookrelay.config import Settings
from hookrelay.database import get_db
from hookrelay.models import WebhookEndpoint
from hookrelay.schemas import EndpointOut
from hookrelay.services.circuit_breaker import CircuitBreaker

router = APIRouter(prefix="/endpoints", tags=["endpoints"])


async def _get_endpoint_or_404(db: AsyncSession, endpoint_id: str) -> WebhookEndpoint:
    result = await db.execute(select(WebhookEndpoint).where(WebhookEndpoint.id == endpoint_id))
    ep = result.scalar_one_or_none()
    if not ep:
        raise HTTPException(404, "Endpoint not found")
    return ep


@router.get("/", response_model=list[EndpointOut])
async def list_endpoints(
    circuit_state: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    stmt = select(WebhookEndpoint)
    if circuit_state:
        stmt = stmt.where(WebhookEndpoint.circuit_state == circuit_state)
    stmt = stmt.order_by(WebhookEndpoint.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return [
        EndpointOut.from_model(ep, CircuitBreaker(db, ep, settings))
        for ep in result.scalars().all()
    ]


@router.get("/{endpoint_id}", response_model=EndpointOut)
async def get_endpoint(
    endpoint_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    ep = await _get_endpoint_or_404(db, endpoint_id)
    return EndpointOut.from_model(ep, CircuitBreaker(db, ep, settings))


@router.delete("/{endpoint_id}", status_code=204)
async def delete_endpoint(endpoint_id: str, db: AsyncSession = Depends(get_db)):
    """Delete an endpoint together with its webhooks and their attempts."""
    ep = await _get_endpoint_or_404(db, endpoint_id)
    await db.delete(ep)
    await db.commit()

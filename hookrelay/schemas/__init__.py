"""Pydantic schemas for API request/response."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ── Webhook ──────────────────────────────────────────────
class WebhookCreate(BaseModel):
    url: str = Field(..., max_length=2048)
    payload: Any = Field(...)
    headers: dict[str, str] = Field(default_factory=dict)
    max_attempts: Optional[int] = Field(None, ge=1, le=100)
    scheduled_at: Optional[datetime] = None
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookOut(BaseModel):
    id: str
    endpoint_id: str
    url: str
    payload: Any
    headers: dict[str, str]
    status: str
    attempt_count: int
    max_attempts: int
    scheduled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    idempotency_key: Optional[str] = None
    metadata: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, wh):
        return cls(
            id=wh.id,
            endpoint_id=wh.endpoint_id,
            url=wh.url,
            payload=wh.payload,
            headers=wh.headers or {},
            status=wh.status,
            attempt_count=wh.attempt_count,
            max_attempts=wh.max_attempts,
            scheduled_at=wh.scheduled_at,
            delivered_at=wh.delivered_at,
            failed_at=wh.failed_at,
            idempotency_key=wh.idempotency_key,
            metadata=wh.metadata_ or {},
            created_at=wh.created_at,
        )


class AttemptOut(BaseModel):
    id: str
    webhook_id: str
    attempt_number: int
    response_status: Optional[int] = None
    response_body: Optional[str] = None
    response_headers: dict[str, str] = Field(default_factory=dict)
    duration_ms: Optional[int] = None
    success: bool
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Endpoint ─────────────────────────────────────────────
class EndpointOut(BaseModel):
    id: str
    url: str
    host: str
    success_count: int
    failure_count: int
    circuit_state: str
    circuit_opened_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    is_open: bool = False
    retry_after: float = 0.0
    created_at: datetime

    @classmethod
    def from_model(cls, ep, breaker=None):
        return cls(
            id=ep.id,
            url=ep.url,
            host=ep.host,
            success_count=ep.success_count,
            failure_count=ep.failure_count,
            circuit_state=ep.circuit_state,
            circuit_opened_at=ep.circuit_opened_at,
            last_success_at=ep.last_success_at,
            last_failure_at=ep.last_failure_at,
            is_open=breaker.is_open() if breaker else False,
            retry_after=breaker.retry_after() if breaker else 0.0,
            created_at=ep.created_at,
        )


# ── Maintenance ──────────────────────────────────────────
class SweepResult(BaseModel):
    submitted: int


class ScheduleResult(BaseModel):
    scheduled: int

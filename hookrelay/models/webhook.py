"""Webhook delivery models: endpoints, webhooks and their attempt log."""

from datetime import datetime
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
    or_,
)
from sqlalchemy.orm import relationship

from hookrelay.database import Base
from hookrelay.models import UTCDateTime, new_uuid, utcnow

# Response bodies above this are cut when written to the attempt log
MAX_RESPONSE_BODY = 2000


class WebhookStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"
    DEAD = "dead"


TERMINAL_STATUSES = frozenset({WebhookStatus.DELIVERED.value, WebhookStatus.DEAD.value})


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class InvalidTransitionError(Exception):
    """Raised when a state transition is attempted on a webhook that cannot take it."""


class WebhookEndpoint(Base):
    """A delivery destination, keyed by URL, carrying circuit-breaker state."""

    __tablename__ = "webhook_endpoints"

    id = Column(String(36), primary_key=True, default=new_uuid)
    url = Column(String(2048), nullable=False, unique=True, index=True)
    host = Column(String(255), nullable=False, index=True)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    circuit_state = Column(String(20), nullable=False, default=CircuitState.CLOSED.value, index=True)
    circuit_opened_at = Column(UTCDateTime, nullable=True)  # set iff circuit_state == open
    last_success_at = Column(UTCDateTime, nullable=True)
    last_failure_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @staticmethod
    def host_for(url: str) -> Optional[str]:
        return urlsplit(url).hostname


class Webhook(Base):
    """One delivery intent for a payload to a URL."""

    __tablename__ = "webhooks"
    __table_args__ = (
        Index("ix_webhooks_status_scheduled_at", "status", "scheduled_at"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    endpoint_id = Column(
        String(36),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url = Column(String(2048), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    headers = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=WebhookStatus.PENDING.value, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False)  # supplied by the caller from Settings
    scheduled_at = Column(UTCDateTime, nullable=True, index=True)  # NULL = eligible now
    delivered_at = Column(UTCDateTime, nullable=True)
    failed_at = Column(UTCDateTime, nullable=True)
    idempotency_key = Column(String(255), nullable=True, unique=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    endpoint = relationship("WebhookEndpoint", lazy="selectin")

    # ── Queries ─────────────────────────────────────────
    @classmethod
    def deliverable_clause(cls):
        return and_(
            cls.status.in_([WebhookStatus.PENDING.value, WebhookStatus.FAILED.value]),
            cls.attempt_count < cls.max_attempts,
        )

    @classmethod
    def scheduled_before_clause(cls, when: datetime):
        return or_(cls.scheduled_at.is_(None), cls.scheduled_at <= when)

    @classmethod
    def due_for_retry_clause(cls, now: datetime):
        return and_(
            cls.status == WebhookStatus.FAILED.value,
            cls.attempt_count < cls.max_attempts,
            cls.scheduled_at <= now,
        )

    @classmethod
    def unscheduled_failure_clause(cls):
        return and_(
            cls.status == WebhookStatus.FAILED.value,
            cls.scheduled_at.is_(None),
            cls.attempt_count < cls.max_attempts,
        )

    # ── State ───────────────────────────────────────────
    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_deliverable(self) -> bool:
        return not self.is_terminal and self.attempt_count < self.max_attempts

    def _require_open(self, action: str) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Cannot {action} webhook {self.id}: status '{self.status}' is terminal"
            )

    def mark_processing(self) -> "Webhook":
        self._require_open("process")
        self.status = WebhookStatus.PROCESSING.value
        return self

    def increment_attempt(self) -> "Webhook":
        self._require_open("count an attempt for")
        if self.attempt_count >= self.max_attempts:
            raise InvalidTransitionError(
                f"Webhook {self.id} already used {self.attempt_count}/{self.max_attempts} attempts"
            )
        self.attempt_count += 1
        return self

    def mark_delivered(self, now: Optional[datetime] = None) -> "Webhook":
        self._require_open("deliver")
        self.status = WebhookStatus.DELIVERED.value
        self.delivered_at = now or utcnow()
        return self

    def mark_failed(self, now: Optional[datetime] = None) -> "Webhook":
        """Record a failed try; lands on ``dead`` once attempts are exhausted."""
        self._require_open("fail")
        if self.attempt_count >= self.max_attempts:
            self.status = WebhookStatus.DEAD.value
        else:
            self.status = WebhookStatus.FAILED.value
        self.failed_at = now or utcnow()
        return self

    def mark_dead(self, now: Optional[datetime] = None) -> "Webhook":
        self._require_open("kill")
        self.status = WebhookStatus.DEAD.value
        self.failed_at = now or utcnow()
        return self

    def schedule_at(self, when: Optional[datetime]) -> "Webhook":
        self._require_open("schedule")
        self.scheduled_at = when
        return self


class WebhookAttempt(Base):
    """Append-only log of individual delivery tries."""

    __tablename__ = "webhook_attempts"
    __table_args__ = (
        UniqueConstraint("webhook_id", "attempt_number", name="uq_webhook_attempts_webhook_number"),
        CheckConstraint("attempt_number > 0", name="ck_webhook_attempts_number_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    webhook_id = Column(
        String(36),
        ForeignKey("webhooks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attempt_number = Column(Integer, nullable=False)
    response_status = Column(Integer, nullable=True)  # NULL on transport failure
    response_body = Column(Text, nullable=True)
    response_headers = Column(JSON, nullable=False, default=dict)
    duration_ms = Column(Integer, nullable=True)
    success = Column(Boolean, nullable=False, default=False, index=True)
    error_class = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)

    @classmethod
    def record(cls, webhook: Webhook, result) -> "WebhookAttempt":
        """Build the attempt row for ``webhook``'s current attempt from a delivery result."""
        error = result.error
        body = result.body
        return cls(
            webhook_id=webhook.id,
            attempt_number=webhook.attempt_count,
            response_status=result.status,
            response_body=body[:MAX_RESPONSE_BODY] if body is not None else None,
            response_headers=dict(result.headers or {}),
            duration_ms=result.duration_ms,
            success=result.success,
            error_class=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
        )

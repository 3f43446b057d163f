"""SQLAlchemy models — portable across SQLite and PostgreSQL."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime column that always returns timezone-aware UTC values.

    SQLite has no timezone support and hands back naive datetimes; PostgreSQL
    returns aware ones. Both are normalised so comparisons never mix the two.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return ensure_utc(value)

    def process_result_value(self, value, dialect):
        return ensure_utc(value)


from hookrelay.models.webhook import (  # noqa: E402
    TERMINAL_STATUSES,
    CircuitState,
    InvalidTransitionError,
    Webhook,
    WebhookAttempt,
    WebhookEndpoint,
    WebhookStatus,
)

__all__ = [
    "TERMINAL_STATUSES",
    "CircuitState",
    "InvalidTransitionError",
    "UTCDateTime",
    "Webhook",
    "WebhookAttempt",
    "WebhookEndpoint",
    "WebhookStatus",
    "ensure_utc",
    "new_uuid",
    "utcnow",
]

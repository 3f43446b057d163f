"""Tests for webhook models and their state transitions."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import func, select

from hookrelay.models import (
    InvalidTransitionError,
    Webhook,
    WebhookAttempt,
    WebhookEndpoint,
    WebhookStatus,
    ensure_utc,
)
from hookrelay.models.webhook import MAX_RESPONSE_BODY
from hookrelay.services.dispatcher import HttpResponse, TransportFailure


# ── Defaults ─────────────────────────────────────────────
def test_endpoint_defaults():
    ep = WebhookEndpoint(url="https://x.example.com/hook", host="x.example.com")
    assert ep.circuit_state == "closed"
    assert ep.circuit_opened_at is None
    assert ep.success_count == 0
    assert ep.failure_count == 0


def test_webhook_defaults():
    wh = Webhook(url="https://x.example.com/hook", payload={"a": 1})
    assert wh.status == "pending"
    assert wh.attempt_count == 0
    assert wh.max_attempts is None  # set by enqueue from Settings
    assert wh.headers == {}
    assert wh.metadata_ == {}
    assert wh.scheduled_at is None


def test_attempt_defaults():
    a = WebhookAttempt(webhook_id="w1", attempt_number=1)
    assert a.success is False
    assert a.response_headers == {}


def test_host_for():
    assert WebhookEndpoint.host_for("https://Hooks.Example.com:8443/a?b=1") == "hooks.example.com"


def test_ensure_utc():
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo == timezone.utc
    assert ensure_utc(None) is None


# ── Transitions ──────────────────────────────────────────
def _webhook(**kw) -> Webhook:
    kw.setdefault("url", "https://x.example.com/hook")
    kw.setdefault("payload", {})
    kw.setdefault("max_attempts", 5)
    return Webhook(**kw)


class TestTransitions:
    def test_deliverable(self):
        assert _webhook().is_deliverable
        assert _webhook(status="failed", attempt_count=2, max_attempts=5).is_deliverable
        assert _webhook(status="processing").is_deliverable

    def test_not_deliverable_when_terminal_or_exhausted(self):
        assert not _webhook(status="delivered").is_deliverable
        assert not _webhook(status="dead").is_deliverable
        assert not _webhook(status="failed", attempt_count=5, max_attempts=5).is_deliverable

    def test_processing_and_increment(self):
        wh = _webhook().mark_processing().increment_attempt()
        assert wh.status == "processing"
        assert wh.attempt_count == 1

    def test_increment_past_max_raises(self):
        wh = _webhook(attempt_count=3, max_attempts=3)
        with pytest.raises(InvalidTransitionError):
            wh.increment_attempt()
        assert wh.attempt_count == 3

    def test_mark_delivered(self):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        wh = _webhook(status="processing", attempt_count=1).mark_delivered(now)
        assert wh.status == "delivered"
        assert wh.delivered_at == now

    def test_mark_failed_with_attempts_left(self):
        wh = _webhook(status="processing", attempt_count=2, max_attempts=5).mark_failed()
        assert wh.status == "failed"
        assert wh.failed_at is not None

    def test_mark_failed_at_exhaustion_is_dead(self):
        wh = _webhook(status="processing", attempt_count=5, max_attempts=5).mark_failed()
        assert wh.status == "dead"
        assert wh.failed_at is not None

    @pytest.mark.parametrize("terminal", ["delivered", "dead"])
    def test_terminal_states_are_final(self, terminal):
        wh = _webhook(status=terminal, attempt_count=1)
        for transition in (
            wh.mark_processing,
            wh.increment_attempt,
            wh.mark_delivered,
            wh.mark_failed,
            wh.mark_dead,
        ):
            with pytest.raises(InvalidTransitionError):
                transition()
        with pytest.raises(InvalidTransitionError):
            wh.schedule_at(None)
        assert wh.status == terminal
        assert wh.attempt_count == 1

    def test_status_enum_compares_to_stored_string(self):
        assert _webhook(status="failed").status == WebhookStatus.FAILED


# ── Attempt records ──────────────────────────────────────
class TestAttemptRecord:
    def test_from_response(self):
        wh = _webhook(attempt_count=2)
        wh.id = "wh-1"
        result = HttpResponse(status=503, body="busy", headers={"retry-after": "10"}, duration_ms=12, success=False)
        attempt = WebhookAttempt.record(wh, result)
        assert attempt.webhook_id == "wh-1"
        assert attempt.attempt_number == 2
        assert attempt.response_status == 503
        assert attempt.response_body == "busy"
        assert attempt.response_headers == {"retry-after": "10"}
        assert attempt.success is False
        assert attempt.error_class is None

    def test_from_transport_failure(self):
        wh = _webhook(attempt_count=1)
        result = TransportFailure(error=httpx.ConnectError("refused"), duration_ms=3)
        attempt = WebhookAttempt.record(wh, result)
        assert attempt.response_status is None
        assert attempt.response_body is None
        assert attempt.response_headers == {}
        assert attempt.error_class == "ConnectError"
        assert attempt.error_message == "refused"

    def test_long_body_truncated(self):
        wh = _webhook(attempt_count=1)
        result = HttpResponse(status=200, body="x" * 5000, headers={}, duration_ms=1, success=True)
        assert len(WebhookAttempt.record(wh, result).response_body) == MAX_RESPONSE_BODY


# ── Persistence ──────────────────────────────────────────
@pytest.mark.asyncio
async def test_timestamps_round_trip_as_utc(db, make_webhook):
    when = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
    wh = await make_webhook(scheduled_at=when)
    await db.refresh(wh)
    assert wh.scheduled_at == when
    assert wh.scheduled_at.tzinfo is not None


@pytest.mark.asyncio
async def test_attempt_numbers_unique_per_webhook(db, make_webhook):
    from sqlalchemy.exc import IntegrityError

    wh = await make_webhook(attempt_count=1)
    db.add(WebhookAttempt(webhook_id=wh.id, attempt_number=1))
    await db.commit()
    db.add(WebhookAttempt(webhook_id=wh.id, attempt_number=1))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()


@pytest.mark.asyncio
async def test_deleting_endpoint_cascades(db, endpoint, make_webhook):
    wh = await make_webhook(attempt_count=1)
    db.add(WebhookAttempt(webhook_id=wh.id, attempt_number=1, success=True))
    await db.commit()

    await db.delete(endpoint)
    await db.commit()

    assert (await db.execute(select(func.count(Webhook.id)))).scalar() == 0
    assert (await db.execute(select(func.count(WebhookAttempt.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_deliverable_clause(db, make_webhook):
    pending = await make_webhook()
    failed = await make_webhook(status=WebhookStatus.FAILED.value, attempt_count=1)
    await make_webhook(status=WebhookStatus.FAILED.value, attempt_count=5, max_attempts=5)
    await make_webhook(status=WebhookStatus.DELIVERED.value, attempt_count=1)
    await make_webhook(status=WebhookStatus.DEAD.value, attempt_count=1)

    result = await db.execute(select(Webhook.id).where(Webhook.deliverable_clause()))
    assert set(result.scalars().all()) == {pending.id, failed.id}


@pytest.mark.asyncio
async def test_scheduled_before_clause(db, make_webhook):
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    unscheduled = await make_webhook()
    past = await make_webhook(scheduled_at=now - timedelta(minutes=1))
    exact = await make_webhook(scheduled_at=now)
    await make_webhook(scheduled_at=now + timedelta(minutes=1))

    result = await db.execute(select(Webhook.id).where(Webhook.scheduled_before_clause(now)))
    assert set(result.scalars().all()) == {unscheduled.id, past.id, exact.id}


@pytest.mark.asyncio
async def test_webhook_requires_max_attempts(db, endpoint):
    from sqlalchemy.exc import IntegrityError

    db.add(Webhook(endpoint_id=endpoint.id, url=endpoint.url, payload={}))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()

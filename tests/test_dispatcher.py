"""Tests for the HTTP dispatcher."""

import json

import httpx
import pytest

from hookrelay.config import Settings
from hookrelay.models import Webhook
from hookrelay.services.dispatcher import HttpResponse, TransportFailure


def _webhook(**kw) -> Webhook:
    wh = Webhook(
        url=kw.pop("url", "https://receiver.example.com/hooks"),
        payload=kw.pop("payload", {"event": "invoice.paid", "amount": 1200}),
        **kw,
    )
    wh.id = "wh-test"
    return wh


@pytest.mark.asyncio
async def test_success_response(make_dispatcher, respond):
    handler = respond(200, body='{"ok": true}', headers={"X-Request-Id": "abc"})
    result = await make_dispatcher(handler).deliver(_webhook())

    assert isinstance(result, HttpResponse)
    assert result.kind == "response"
    assert result.success is True
    assert result.status == 200
    assert result.body == '{"ok": true}'
    assert result.headers["x-request-id"] == "abc"
    assert result.error is None
    assert isinstance(result.duration_ms, int)
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_posts_json_payload_with_merged_headers(make_dispatcher, respond):
    handler = respond(204)
    wh = _webhook(headers={"X-Signature": "s1", "Content-Type": "application/vnd.custom+json"})
    await make_dispatcher(handler).deliver(wh)

    assert len(handler.calls) == 1
    request = handler.calls[0]
    assert request.method == "POST"
    assert str(request.url) == "https://receiver.example.com/hooks"
    assert json.loads(request.content) == {"event": "invoice.paid", "amount": 1200}
    assert request.headers["X-Signature"] == "s1"
    # Webhook headers win over the default content type
    assert request.headers["Content-Type"] == "application/vnd.custom+json"


@pytest.mark.asyncio
async def test_default_content_type(make_dispatcher, respond):
    handler = respond(200)
    await make_dispatcher(handler).deliver(_webhook())
    assert handler.calls[0].headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_error_status_is_not_a_transport_error(make_dispatcher, respond):
    result = await make_dispatcher(respond(500, body="oops")).deliver(_webhook())
    assert isinstance(result, HttpResponse)
    assert result.success is False
    assert result.status == 500
    assert result.body == "oops"
    assert result.error is None


@pytest.mark.asyncio
async def test_custom_success_codes(make_dispatcher, respond):
    settings = Settings(_env_file=None, success_codes=[200])
    result = await make_dispatcher(respond(202), settings).deliver(_webhook())
    assert result.success is False
    assert result.status == 202


@pytest.mark.asyncio
async def test_connection_error_becomes_failure(make_dispatcher, fail_with):
    result = await make_dispatcher(fail_with(httpx.ConnectError, "connection refused")).deliver(_webhook())

    assert isinstance(result, TransportFailure)
    assert result.kind == "transport_error"
    assert result.success is False
    assert result.status is None
    assert result.body is None
    assert result.headers == {}
    assert isinstance(result.error, httpx.ConnectError)
    assert result.duration_ms >= 0


@pytest.mark.asyncio
async def test_timeout_becomes_failure(make_dispatcher, fail_with):
    result = await make_dispatcher(fail_with(httpx.ReadTimeout, "timed out")).deliver(_webhook())
    assert isinstance(result, TransportFailure)
    assert isinstance(result.error, httpx.TimeoutException)


def test_timeouts_come_from_settings(make_dispatcher, respond):
    settings = Settings(_env_file=None, http_open_timeout=2, http_read_timeout=9)
    timeout = make_dispatcher(respond(200), settings).timeout
    assert timeout.connect == 2
    assert timeout.read == 9


@pytest.mark.asyncio
async def test_unusable_url_becomes_failure(make_dispatcher, respond):
    handler = respond(200)
    result = await make_dispatcher(handler).deliver(_webhook(url="http://receiver.example.com:abc/hooks"))

    assert isinstance(result, TransportFailure)
    assert isinstance(result.error, httpx.InvalidURL)
    assert handler.calls == []

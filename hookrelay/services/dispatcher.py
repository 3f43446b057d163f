"""Webhook dispatcher — performs one HTTP delivery attempt and normalises the outcome."""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Literal, Optional, Union

import httpx

from hookrelay.config import Settings, get_settings
from hookrelay.models import Webhook

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


# ── Results ──────────────────────────────────────────────
@dataclass(frozen=True)
class HttpResponse:
    """The receiver answered with a well-formed HTTP response, whatever its status."""

    status: int
    body: str
    headers: dict[str, str]
    duration_ms: int
    success: bool
    kind: Literal["response"] = field(default="response", init=False)

    @property
    def error(self) -> None:
        return None


@dataclass(frozen=True)
class TransportFailure:
    """No response was obtained: timeout, refused connection, TLS failure and the like."""

    error: Exception
    duration_ms: int
    kind: Literal["transport_error"] = field(default="transport_error", init=False)

    @property
    def success(self) -> bool:
        return False

    @property
    def status(self) -> None:
        return None

    @property
    def body(self) -> None:
        return None

    @property
    def headers(self) -> dict[str, str]:
        return {}


DeliveryResult = Union[HttpResponse, TransportFailure]


# ── Dispatcher ───────────────────────────────────────────
class Dispatcher:
    """POSTs a webhook's JSON payload to its URL.

    Transport errors and URLs httpx cannot use are converted into a
    ``TransportFailure`` and never raised. Pass ``client`` to reuse a
    connection pool (or a mock transport); otherwise a short-lived
    ``httpx.AsyncClient`` is opened per delivery.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self.client = client

    @property
    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.settings.http_open_timeout,
            read=self.settings.http_read_timeout,
            write=self.settings.http_read_timeout,
            pool=self.settings.http_open_timeout,
        )

    def build_headers(self, webhook: Webhook) -> httpx.Headers:
        # httpx.Headers matches names case-insensitively, so webhook headers replace defaults
        headers = httpx.Headers(DEFAULT_HEADERS)
        for key, value in (webhook.headers or {}).items():
            headers[str(key)] = str(value)
        return headers

    async def deliver(self, webhook: Webhook) -> DeliveryResult:
        body = json.dumps(webhook.payload)
        headers = self.build_headers(webhook)

        start = time.monotonic()
        try:
            resp = await self._post(webhook.url, body, headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.warning(f"Webhook {webhook.id} to {webhook.url} failed in transport: {exc!r}")
            return TransportFailure(error=exc, duration_ms=duration_ms)
        duration_ms = int((time.monotonic() - start) * 1000)

        return HttpResponse(
            status=resp.status_code,
            body=resp.text,
            headers={k.lower(): v for k, v in resp.headers.items()},
            duration_ms=duration_ms,
            success=resp.status_code in self.settings.success_codes,
        )

    async def _post(self, url: str, body: str, headers: httpx.Headers) -> httpx.Response:
        if self.client is not None:
            return await self.client.post(url, content=body, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, content=body, headers=headers)

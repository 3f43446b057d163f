"""Test fixtures — a fresh in-memory database per test, plus sample endpoints and webhooks."""

import os
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Force an in-memory database *before* any hookrelay import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from hookrelay.config import Settings  # noqa: E402
from hookrelay.database import Base, build_engine  # noqa: E402
from hookrelay.models import Webhook, WebhookEndpoint  # noqa: E402
from hookrelay.services.dispatcher import Dispatcher  # noqa: E402

RECEIVER_URL = "https://receiver.example.com/hooks"


class SubmitRecorder:
    """Stands in for the Celery hand-off and remembers what was submitted."""

    def __init__(self):
        self.calls: list[tuple[str, object]] = []

    def __call__(self, webhook_id, eta=None):
        self.calls.append((webhook_id, eta))

    @property
    def ids(self) -> list[str]:
        return [webhook_id for webhook_id, _ in self.calls]


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def submitted() -> SubmitRecorder:
    return SubmitRecorder()


@pytest_asyncio.fixture
async def engine():
    db_engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def endpoint(db) -> WebhookEndpoint:
    ep = WebhookEndpoint(url=RECEIVER_URL, host="receiver.example.com")
    db.add(ep)
    await db.commit()
    return ep


@pytest.fixture
def make_webhook(db, endpoint, settings):
    async def _make(**overrides) -> Webhook:
        target = overrides.pop("endpoint", endpoint)
        overrides.setdefault("url", target.url)
        overrides.setdefault("payload", {"event": "order.created", "order_id": 42})
        overrides.setdefault("max_attempts", settings.default_max_attempts)
        wh = Webhook(endpoint_id=target.id, **overrides)
        wh.endpoint = target
        db.add(wh)
        await db.commit()
        return wh

    return _make


@pytest.fixture
def make_dispatcher(settings):
    """Build a Dispatcher whose HTTP calls are answered by ``handler``."""

    def _make(handler, dispatcher_settings=None) -> Dispatcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return Dispatcher(dispatcher_settings or settings, client=client)

    return _make


@pytest.fixture
def respond():
    """MockTransport handler answering every request with ``status``; requests land in ``.calls``."""

    def _respond(status: int, body: str = "", headers=None):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(status, text=body, headers=headers or {})

        handler.calls = calls
        return handler

    return _respond


@pytest.fixture
def fail_with():
    """MockTransport handler raising a transport error for every request."""

    def _fail_with(exc_type, message: str = "boom"):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise exc_type(message, request=request)

        handler.calls = calls
        return handler

    return _fail_with


@pytest_asyncio.fixture
async def client(session_factory, settings, submitted) -> AsyncGenerator[AsyncClient, None]:
    from hookrelay.api.deps import get_app_settings, get_submit
    from hookrelay.database import get_db
    from hookrelay.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_submit] = lambda: submitted

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

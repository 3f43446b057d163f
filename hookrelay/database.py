"""Async SQLAlchemy engine & session — supports SQLite and PostgreSQL."""

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from hookrelay.config import get_settings

settings = get_settings()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # ON DELETE CASCADE is a no-op in SQLite unless switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite gets connect_args and FK enforcement, PostgreSQL a pool."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
        db_engine = create_async_engine(url, echo=echo, **kwargs)
        event.listen(db_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return db_engine
    return create_async_engine(url, echo=echo, pool_size=10, pool_pre_ping=True)


engine = build_engine(settings.database_url, echo=settings.debug)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@event.listens_for(Base, "init", propagate=True)
def _apply_defaults(target, args, kwargs):
    """Apply Column defaults at Python level right after __init__."""
    mapper = sa_inspect(type(target))
    for col_attr in mapper.column_attrs:
        key = col_attr.key
        if key in kwargs:
            continue
        if getattr(target, key, None) is not None:
            continue
        default = col_attr.columns[0].default
        if default is None:
            continue
        if default.is_callable:
            # SQLAlchemy wraps zero-arg callables to accept an execution context
            setattr(target, key, default.arg(None))
        elif default.is_scalar:
            setattr(target, key, default.arg)


async def get_db():
    async with async_session() as session:
        yield session


def create_worker_session_factory():
    """Create a fresh engine + session factory for Celery workers.

    Each Celery task runs in a new event loop, so it needs an engine that is
    not tied to a previous (closed) loop. Dispose the engine when done.
    """
    worker_engine = build_engine(settings.database_url)
    return async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False), worker_engine

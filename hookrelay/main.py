"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hookrelay.api import endpoints, maintenance, webhooks
from hookrelay.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables if they do not exist yet
    from hookrelay.database import Base, engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Reliable webhook delivery with retries and per-endpoint circuit breaking",
    lifespan=lifespan,
)

# Register routers
app.include_router(webhooks.router, prefix="/api/v1")
app.include_router(endpoints.router, prefix="/api/v1")
app.include_router(maintenance.router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}

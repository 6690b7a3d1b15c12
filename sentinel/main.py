"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from sentinel.api.v1 import v1_router
from sentinel.core.config import get_settings
from sentinel.core.database import init_db

HTTP_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Startup: ensure tables exist
    await init_db()
    app.state.http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    yield
    await app.state.http_client.aclose()


app = FastAPI(
    title="Guest Sentinel",
    version="0.1.0",
    description="Slack guest inactivity audits and Stripe billing sync",
    lifespan=lifespan,
)

# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}

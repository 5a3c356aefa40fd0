from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from golink.api.router import router
from golink.core.config import settings
from golink.core.logging import configure_logging
from golink.workers.fetcher import close_http_client

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # ── Shutdown ─────────────────────────────────────────────────────
    await close_http_client()


app = FastAPI(
    title="golink",
    description="Resolves go/ shortcuts to their target URLs.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}

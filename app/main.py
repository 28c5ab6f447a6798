"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import v1_router
from app.core.config import get_settings
from app.core.database import async_session_factory, init_db
from app.services.accounts import ensure_bootstrap_admin

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: ensure tables exist, then seed the first admin if configured
    await init_db()
    if _settings.bootstrap_admin_email and _settings.bootstrap_admin_password:
        async with async_session_factory() as session:
            await ensure_bootstrap_admin(
                session,
                _settings.bootstrap_admin_email,
                _settings.bootstrap_admin_password,
            )
    yield


app = FastAPI(
    title="Fusion Billing",
    version="0.1.0",
    description="Credit ledger, model pricing and admin API for the Fusion LLM gateway",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}

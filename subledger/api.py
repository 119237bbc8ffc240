"""
FastAPI app entry point aggregating routers under subledger/routes.
Keep as `uvicorn subledger.api:app`.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .db import get_conn
from .logs import ensure_log_schema, set_request_id, setup_logging
from .repository import subscription_repo

logger = logging.getLogger(__name__)


def ensure_schemas() -> None:
    ensure_log_schema()
    with get_conn() as conn:
        subscription_repo.ensure_schema(conn)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from .routes.subscriptions import build_service

    setup_logging(get_settings()["log_level"])
    ensure_schemas()
    app.state.subscriptions = build_service()
    logger.info("subledger api started")
    try:
        yield
    finally:
        app.state.subscriptions.close()
        logger.info("subledger api stopped")


app = FastAPI(title="subledger-api", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings()["cors_origins"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


# Include routers
from .routes import base as base_routes
from .routes import logs as logs_routes
from .routes import subscriptions as subscriptions_routes

app.include_router(base_routes.router)
app.include_router(logs_routes.router)
app.include_router(subscriptions_routes.router)

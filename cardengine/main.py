# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — FastAPI Application Entry Point
Creates the app, registers lifespan events, CORS, routers,
and global error handlers.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardengine.api.middleware.error_handler import register_error_handlers
from cardengine.api.routes import batches, cards
from cardengine.config import get_settings
from cardengine.dependencies import close_backend, init_backend, init_job_store
from cardengine.utils.logger import configure_logging, get_logger

log = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Startup: configure logging, initialise JobStore and backend client.
    Shutdown: close the backend client's connection pool.
    """
    # ── Startup ──────────────────────────────────────────────────────────────
    configure_logging()
    settings = get_settings()

    log.info(
        "cardengine_startup",
        version=VERSION,
        backend_api=settings.backend_api_url,
        job_store=settings.job_store_backend,
        card_max_kb=settings.card_max_kb,
        canvas=f"{settings.card_canvas_width}x{settings.card_canvas_height}",
    )

    init_job_store()
    init_backend()

    log.info("cardengine_ready")
    yield

    # ── Shutdown ─────────────────────────────────────────────────────────────
    await close_backend()
    log.info("cardengine_shutdown")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="CardEngine",
        summary="Renders, compresses and uploads personalised guest invitation cards.",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    # Admin console dev servers and the Docker nginx front
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://localhost:80",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error Handlers ───────────────────────────────────────────────────────
    register_error_handlers(app)

    # ── Routers ──────────────────────────────────────────────────────────────
    app.include_router(batches.router)
    app.include_router(cards.router)

    # ── Health Check ─────────────────────────────────────────────────────────
    @app.get("/health", tags=["health"], summary="Health check")
    async def health() -> dict:
        return {
            "status": "ok",
            "service": "cardengine",
            "version": VERSION,
            "job_store": settings.job_store_backend,
            "card_max_kb": settings.card_max_kb,
        }

    return app


# Module-level app instance for uvicorn
app = create_app()

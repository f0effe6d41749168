# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — FastAPI Dependencies
Singleton providers for the JobStore and the event backend client.
Both are created once at startup via the lifespan event in main.py and
stored here as module-level singletons.
Route handlers access them via FastAPI's Depends() injection.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from cardengine.config import Settings, get_settings
from cardengine.core.backend_client import CardBackend, HttpCardBackend
from cardengine.core.job_store import InMemoryJobStore, JobStore, RedisJobStore
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

# ─── JobStore Singleton ───────────────────────────────────────────────────────

_job_store: JobStore | None = None


def init_job_store() -> None:
    """
    Initialise the JobStore singleton based on JOB_STORE_BACKEND config.
    Called once during application lifespan startup.
    """
    global _job_store
    settings = get_settings()

    if settings.job_store_backend == "redis":
        log.info("init_job_store", backend="redis", url=settings.redis_url)
        _job_store = RedisJobStore(
            redis_url=settings.redis_url,
            ttl_seconds=settings.job_ttl_seconds,
        )
    else:
        log.info("init_job_store", backend="memory")
        _job_store = InMemoryJobStore()


def get_job_store() -> JobStore:
    """FastAPI dependency: inject the JobStore singleton into route handlers."""
    if _job_store is None:
        raise RuntimeError(
            "JobStore has not been initialised. "
            "Ensure init_job_store() is called during app lifespan startup."
        )
    return _job_store


# ─── Backend Client Singleton ────────────────────────────────────────────────

_backend: CardBackend | None = None


def init_backend(backend: CardBackend | None = None) -> None:
    """
    Initialise the event backend client. Tests pass a fake here;
    otherwise an HttpCardBackend is built from settings.
    """
    global _backend
    if backend is None:
        settings = get_settings()
        log.info("init_backend", url=settings.backend_api_url)
        backend = HttpCardBackend(settings)
    _backend = backend


async def close_backend() -> None:
    global _backend
    if _backend is not None:
        await _backend.aclose()
        _backend = None


def get_backend() -> CardBackend:
    """
    FastAPI dependency: inject the backend client.

    Usage in a route:
        @router.post("/events/{event_id}/cards/batch")
        async def submit(event_id: int, backend: BackendDep): ...
    """
    if _backend is None:
        raise RuntimeError(
            "Backend client has not been initialised. "
            "Ensure init_backend() is called during app lifespan startup."
        )
    return _backend


# Annotated type aliases for clean route signatures
JobStoreDep = Annotated[JobStore, Depends(get_job_store)]
BackendDep = Annotated[CardBackend, Depends(get_backend)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

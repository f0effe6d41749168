# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Errors and Global Error Handler
Defines the service's exception taxonomy and converts it into structured
JSON error responses. Registered on the FastAPI app in main.py.

Per-guest failures inside a batch never reach these handlers — they are
recorded on the run. Only pre-flight and request-level errors do.
"""

from __future__ import annotations

import traceback

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cardengine.utils.logger import get_logger

log = get_logger(__name__)


class PreflightError(ValueError):
    """Raised before a run starts when it cannot produce any card."""


class TemplateUnavailableError(PreflightError):
    """Raised when the event has no card template or it cannot be decoded."""


class JobNotFoundError(KeyError):
    """Raised when a job_id does not exist in the store."""


class JobConflictError(RuntimeError):
    """Raised when an operation does not apply to the run's current state."""


class GuestNotFoundError(KeyError):
    """Raised when a guest id is not part of the event's guest directory."""


class BackendApiError(RuntimeError):
    """Raised when the event-management backend rejects or fails a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CardRejectedError(RuntimeError):
    """Raised when the backend answers an upload with success=false."""


class StaleRenderError(RuntimeError):
    """Raised when a render was superseded by a newer one on the same compositor."""


def _error_body(code: str, message: str, detail: str | None = None) -> dict:
    body = {"error": {"code": code, "message": message}}
    if detail:
        body["error"]["detail"] = detail
    return body


def register_error_handlers(app: FastAPI) -> None:
    """
    Register all global exception handlers on the FastAPI application.
    Call this in main.py after creating the app instance.
    """

    @app.exception_handler(PreflightError)
    async def preflight_handler(
        req: Request, exc: PreflightError
    ) -> JSONResponse:
        log.warning("preflight_failed", path=str(req.url), error=str(exc))
        code = (
            "TEMPLATE_UNAVAILABLE"
            if isinstance(exc, TemplateUnavailableError)
            else "PREFLIGHT_FAILED"
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(code=code, message=str(exc)),
        )

    @app.exception_handler(JobNotFoundError)
    async def job_not_found_handler(
        req: Request, exc: JobNotFoundError
    ) -> JSONResponse:
        log.warning("job_not_found", path=str(req.url), error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(
                code="JOB_NOT_FOUND",
                message=f"Job not found: {exc}",
            ),
        )

    @app.exception_handler(GuestNotFoundError)
    async def guest_not_found_handler(
        req: Request, exc: GuestNotFoundError
    ) -> JSONResponse:
        log.warning("guest_not_found", path=str(req.url), error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(
                code="GUEST_NOT_FOUND",
                message=f"Guest not found: {exc}",
            ),
        )

    @app.exception_handler(JobConflictError)
    async def job_conflict_handler(
        req: Request, exc: JobConflictError
    ) -> JSONResponse:
        log.warning("job_conflict", path=str(req.url), error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_body(code="JOB_CONFLICT", message=str(exc)),
        )

    @app.exception_handler(BackendApiError)
    async def backend_error_handler(
        req: Request, exc: BackendApiError
    ) -> JSONResponse:
        log.error(
            "backend_error",
            path=str(req.url),
            error=str(exc),
            upstream_status=exc.status_code,
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=_error_body(
                code="BACKEND_ERROR",
                message="The event backend request failed.",
                detail=str(exc),
            ),
        )

    @app.exception_handler(Exception)
    async def generic_handler(req: Request, exc: Exception) -> JSONResponse:
        tb = traceback.format_exc()
        log.error(
            "unhandled_exception",
            path=str(req.url),
            error=str(exc),
            exc_type=type(exc).__name__,
            traceback=tb,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                code="INTERNAL_SERVER_ERROR",
                message="An unexpected error occurred.",
            ),
        )

# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Batch endpoints
  POST /events/{event_id}/cards/batch   pre-flight + enqueue a batch run
  GET  /batches/{job_id}                progress / summary polling
  POST /batches/{job_id}/cancel         cooperative cancel
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, status

from cardengine.api.middleware.error_handler import JobConflictError, JobNotFoundError
from cardengine.core.pipeline import run_batch, submit_batch
from cardengine.dependencies import BackendDep, JobStoreDep, SettingsDep
from cardengine.models.job import BatchRequest, BatchResponse, CancelResponse
from cardengine.utils.logger import get_logger

router = APIRouter(tags=["batches"])
log = get_logger(__name__)


@router.post(
    "/events/{event_id}/cards/batch",
    response_model=BatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Generate cards for an event's guests",
    description=(
        "mode='missing' renders cards only for guests without one; "
        "mode='all' regenerates every guest's card. Pre-flight problems "
        "(no card design, nobody to generate for) are returned as 422 and "
        "no run is created. Poll GET /batches/{job_id} for progress."
    ),
)
async def submit_card_batch(
    event_id: int,
    request: BatchRequest,
    background_tasks: BackgroundTasks,
    backend: BackendDep,
    store: JobStoreDep,
    settings: SettingsDep,
) -> BatchResponse:
    log.info("batch_request_received", event_id=event_id, mode=request.mode.value)

    job, plan = await submit_batch(event_id, request.mode, backend, store, settings)

    background_tasks.add_task(run_batch, job.job_id, plan, backend, store, settings)
    log.info("batch_enqueued", job_id=job.job_id, total=job.total)

    return BatchResponse(job_id=job.job_id, status=job.status, total=job.total)


@router.get(
    "/batches/{job_id}",
    summary="Poll batch progress",
    description=(
        "Returns status, current/total progress and the guest in flight. "
        "Once the run is completed, cancelled or failed the response also "
        "carries the summary counters and the per-guest failure list."
    ),
)
async def get_batch_status(job_id: str, store: JobStoreDep) -> dict:
    job = store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)

    log.debug("batch_polled", job_id=job_id, status=job.status.value, progress=job.progress)
    return job.to_status_response()


@router.post(
    "/batches/{job_id}/cancel",
    response_model=CancelResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request cancellation of a running batch",
)
async def cancel_batch(job_id: str, store: JobStoreDep) -> CancelResponse:
    job = store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if job.is_finished:
        raise JobConflictError(
            f"Batch {job_id} already finished with status '{job.status.value}'."
        )

    job = store.request_cancel(job_id)
    return CancelResponse(job_id=job_id, status=job.status)

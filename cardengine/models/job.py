# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Batch Job State Models
Tracks one batch run (BatchRun) from submission through completion.
Used by the abstract JobStore and the batch status endpoints.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from cardengine.models.card import RegenerationMode


class BatchStatus(str, Enum):
    PENDING = "pending"        # idle, accepted but not yet started
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"          # fatal error outside the per-guest loop


TERMINAL_STATUSES = frozenset(
    {BatchStatus.COMPLETED, BatchStatus.CANCELLED, BatchStatus.FAILED}
)


class GuestFailure(BaseModel):
    """One (guest, error) entry of a run's failure breakdown."""
    guest_id: int
    guest_name: str
    error: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchJob(BaseModel):
    """Full batch run record stored in JobStore."""
    job_id: str
    event_id: int
    mode: RegenerationMode = RegenerationMode.MISSING
    status: BatchStatus = BatchStatus.PENDING

    total: int = Field(0, ge=0)
    current_index: int = Field(0, ge=0, description="1-based index of the guest in flight")
    progress: int = Field(0, ge=0, le=100)

    generated: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    failures: list[GuestFailure] = Field(default_factory=list)
    # Best-effort deletes that failed before an overwrite
    delete_failures: int = Field(0, ge=0)

    current_guest_id: Optional[int] = None
    current_guest_name: Optional[str] = None

    cancel_requested: bool = False
    error: Optional[str] = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    finished_at: Optional[datetime] = None

    @property
    def processed(self) -> int:
        return self.generated + self.failed

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_status_response(self) -> dict:
        """Serialise to the shape returned by GET /batches/{job_id}."""
        resp = {
            "job_id": self.job_id,
            "event_id": self.event_id,
            "mode": self.mode.value,
            "status": self.status.value,
            "progress": {
                "current": self.current_index,
                "total": self.total,
                "percent": self.progress,
            },
            "current_guest": (
                {"id": self.current_guest_id, "name": self.current_guest_name}
                if self.current_guest_id is not None else None
            ),
            "error": self.error,
        }
        if self.is_finished:
            resp["summary"] = {
                "generated": self.generated,
                "failed": self.failed,
                "processed": self.processed,
                "delete_failures": self.delete_failures,
            }
            resp["failures"] = [f.model_dump() for f in self.failures]
        return resp


# ─── API Request/Response Schemas ────────────────────────────────────────────

class BatchRequest(BaseModel):
    """Request body for POST /events/{event_id}/cards/batch."""
    mode: RegenerationMode = RegenerationMode.MISSING


class BatchResponse(BaseModel):
    """Response body for POST /events/{event_id}/cards/batch."""
    job_id: str
    status: BatchStatus = BatchStatus.PENDING
    total: int
    message: str = "Card batch accepted. Poll /batches/{job_id} for progress."


class CancelResponse(BaseModel):
    job_id: str
    status: BatchStatus
    message: str = "Cancellation requested. The run stops before the next guest."

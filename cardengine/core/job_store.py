# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Abstract JobStore
Clean interface over batch run state storage.
Swap InMemoryJobStore for RedisJobStore with zero orchestrator changes.

InMemoryJobStore  — development / single-worker deployments
RedisJobStore     — production / multi-worker deployments; cancel requests
                    issued on one worker are seen by the worker running the batch
"""

from __future__ import annotations

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from cardengine.models.card import Guest, RegenerationMode
from cardengine.models.job import BatchJob, BatchStatus, GuestFailure
from cardengine.utils.logger import get_logger

log = get_logger(__name__)

Mutator = Callable[[BatchJob], None]


def _percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, int(round(done * 100 / total)))


# ─── Abstract Interface ──────────────────────────────────────────────────────

class JobStore(ABC):
    """
    Abstract base class for all batch state backends.
    Backends implement storage and an atomic read-modify-write (mutate);
    every state transition below is expressed in terms of mutate.
    All methods are synchronous — the orchestrator calls them between awaits.
    """

    @abstractmethod
    def _insert(self, job: BatchJob) -> None:
        """Persist a freshly created job."""

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[BatchJob]:
        """Return BatchJob by ID, or None if not found."""

    @abstractmethod
    def mutate(self, job_id: str, fn: Mutator) -> Optional[BatchJob]:
        """
        Apply fn to the stored job atomically and persist the result.
        Returns the updated job, or None if job_id is unknown.
        """

    def create_job(
        self,
        event_id: int,
        mode: RegenerationMode,
        total: int,
    ) -> BatchJob:
        """Create a new PENDING batch run record."""
        job = BatchJob(
            job_id=str(uuid.uuid4()),
            event_id=event_id,
            mode=mode,
            total=total,
        )
        self._insert(job)
        log.info(
            "job_created",
            job_id=job.job_id,
            event_id=event_id,
            mode=mode.value,
            total=total,
            backend=self.backend_name,
        )
        return job

    def update_job(self, job_id: str, **fields: Any) -> Optional[BatchJob]:
        """Partially update a job record. Only provided fields are changed."""
        def _apply(job: BatchJob) -> None:
            for key, value in fields.items():
                setattr(job, key, value)

        return self.mutate(job_id, _apply)

    # ── Transitions used by the orchestrator ─────────────────────────────────

    def start(self, job_id: str) -> None:
        self.update_job(job_id, status=BatchStatus.RUNNING)

    def advance(self, job_id: str, index: int, guest: Guest) -> None:
        """Mark guest number `index` (1-based) as the one in flight."""
        def _apply(job: BatchJob) -> None:
            job.current_index = index
            job.current_guest_id = guest.id
            job.current_guest_name = guest.name

        self.mutate(job_id, _apply)

    def record_success(self, job_id: str) -> None:
        def _apply(job: BatchJob) -> None:
            job.generated += 1
            job.progress = _percent(job.processed, job.total)

        self.mutate(job_id, _apply)

    def record_failure(self, job_id: str, guest: Guest, error: str) -> None:
        def _apply(job: BatchJob) -> None:
            job.failed += 1
            job.failures.append(
                GuestFailure(guest_id=guest.id, guest_name=guest.name, error=error)
            )
            job.progress = _percent(job.processed, job.total)

        self.mutate(job_id, _apply)

    def record_delete_failure(self, job_id: str) -> None:
        def _apply(job: BatchJob) -> None:
            job.delete_failures += 1

        self.mutate(job_id, _apply)

    def request_cancel(self, job_id: str) -> Optional[BatchJob]:
        """Raise the cooperative cancel flag. No-op on finished runs."""
        def _apply(job: BatchJob) -> None:
            if not job.is_finished:
                job.cancel_requested = True

        job = self.mutate(job_id, _apply)
        if job is not None:
            log.info("job_cancel_requested", job_id=job_id)
        return job

    def is_cancel_requested(self, job_id: str) -> bool:
        job = self.get_job(job_id)
        return bool(job and job.cancel_requested)

    def finish(self, job_id: str, status: BatchStatus) -> None:
        """Move a run into COMPLETED or CANCELLED and clear the in-flight guest."""
        def _apply(job: BatchJob) -> None:
            job.status = status
            job.current_guest_id = None
            job.current_guest_name = None
            job.finished_at = datetime.now(timezone.utc)
            if status == BatchStatus.COMPLETED:
                job.progress = 100

        self.mutate(job_id, _apply)

    def fail_job(self, job_id: str, error: str) -> None:
        """Mark a run as failed with an error message."""
        self.update_job(
            job_id,
            status=BatchStatus.FAILED,
            error=error,
            finished_at=datetime.now(timezone.utc),
        )
        log.error("job_failed", job_id=job_id, error=error)

    @property
    def backend_name(self) -> str:
        return type(self).__name__


# ─── In-Memory Implementation ────────────────────────────────────────────────

class InMemoryJobStore(JobStore):
    """
    Thread-safe in-memory job store using a dict + RLock.
    Suitable for single-process development and testing.
    All data is lost on process restart.
    """

    backend_name = "memory"

    def __init__(self) -> None:
        self._store: dict[str, BatchJob] = {}
        self._lock = threading.RLock()

    def _insert(self, job: BatchJob) -> None:
        with self._lock:
            self._store[job.job_id] = job

    def get_job(self, job_id: str) -> Optional[BatchJob]:
        with self._lock:
            job = self._store.get(job_id)
            # Callers get a snapshot, never the live record
            return job.model_copy(deep=True) if job is not None else None

    def mutate(self, job_id: str, fn: Mutator) -> Optional[BatchJob]:
        with self._lock:
            job = self._store.get(job_id)
            if job is None:
                log.warning("update_job_not_found", job_id=job_id)
                return None
            fn(job)
            job.updated_at = datetime.now(timezone.utc)
            return job.model_copy(deep=True)

    def count(self) -> int:
        """Return total number of jobs in store (useful for health checks)."""
        with self._lock:
            return len(self._store)


# ─── Redis Implementation ────────────────────────────────────────────────────

class RedisJobStore(JobStore):
    """
    Redis-backed job store for multi-worker deployments.
    Jobs are JSON-serialised and stored with TTL expiry.
    Requires redis-py and a running Redis instance.

    The cancel flag lives in its own key ({prefix}{job_id}:cancel). Other
    workers only ever write that key, so the batch worker's read-modify-write
    of the record cannot overwrite a cancel request.
    """

    backend_name = "redis"

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = 86400,
        client: Any = None,
    ) -> None:
        if client is None:
            try:
                import redis as redis_lib
            except ImportError as e:
                raise ImportError(
                    "redis package required for RedisJobStore. "
                    "Install with: pip install 'cardengine[redis]'"
                ) from e
            client = redis_lib.from_url(redis_url, decode_responses=True)

        self._client = client
        self._ttl = ttl_seconds
        self._prefix = "cardengine:batch:"
        # Serialises read-modify-write within this worker
        self._lock = threading.RLock()

        self._client.ping()
        log.info("redis_job_store_connected", url=redis_url)

    def _key(self, job_id: str) -> str:
        return f"{self._prefix}{job_id}"

    def _cancel_key(self, job_id: str) -> str:
        return f"{self._key(job_id)}:cancel"

    def _save(self, job: BatchJob) -> None:
        self._client.setex(self._key(job.job_id), self._ttl, job.model_dump_json())

    def _insert(self, job: BatchJob) -> None:
        self._save(job)

    def get_job(self, job_id: str) -> Optional[BatchJob]:
        raw = self._client.get(self._key(job_id))
        if raw is None:
            return None
        job = BatchJob.model_validate_json(raw)
        if self._client.get(self._cancel_key(job_id)) is not None:
            job.cancel_requested = True
        return job

    def mutate(self, job_id: str, fn: Mutator) -> Optional[BatchJob]:
        with self._lock:
            job = self.get_job(job_id)
            if job is None:
                log.warning("update_job_not_found", job_id=job_id)
                return None
            fn(job)
            job.updated_at = datetime.now(timezone.utc)
            # Refresh TTL on every update
            self._save(job)
            return job

    def request_cancel(self, job_id: str) -> Optional[BatchJob]:
        job = self.get_job(job_id)
        if job is None:
            log.warning("update_job_not_found", job_id=job_id)
            return None
        if not job.is_finished:
            self._client.setex(self._cancel_key(job_id), self._ttl, "1")
            job.cancel_requested = True
        log.info("job_cancel_requested", job_id=job_id)
        return job

    def is_cancel_requested(self, job_id: str) -> bool:
        return self._client.get(self._cancel_key(job_id)) is not None

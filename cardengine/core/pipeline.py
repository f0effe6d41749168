# Copyright (c) 2026 Harsh Dwivedi
# Licensed under the Harsh Non-Commercial Attribution License (HNCAL) v1.0
# Commercial use requires written permission. See LICENSE for details.

"""
CardEngine — Batch Orchestrator
Drives card generation across an event's guest list, one guest at a time:

  pre-flight (before any job exists)
    1. Open the rendering session: event, card type flags, template
    2. Fetch the guest directory and filter it by regeneration mode
    3. No template or no targets → PreflightError, nothing recorded

  run (FastAPI background task)
    for each target guest, in order:
      a. cancel requested?            → stop, run ends CANCELLED
      b. mode=all and card exists     → best-effort delete
      c. render → compress → upload   → generated += 1
         any exception in b–c         → failed += 1, failure recorded
      d. rate-limit delay (not after the last guest)
    refresh callback once the run ends

Per-guest errors never escape the loop. Anything raised outside it marks
the run FAILED.
"""

from __future__ import annotations

import asyncio
import traceback
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict

from cardengine.api.middleware.error_handler import (
    BackendApiError,
    CardRejectedError,
    GuestNotFoundError,
    PreflightError,
    TemplateUnavailableError,
)
from cardengine.config import Settings
from cardengine.core.backend_client import CardBackend
from cardengine.core.job_store import JobStore
from cardengine.models.card import (
    CardTypeFlags,
    EventCardConfig,
    GenerationResult,
    Guest,
    RegenerationMode,
)
from cardengine.models.job import BatchJob, BatchStatus
from cardengine.modules.compression import (
    CompressionPolicy,
    CompressionResult,
    compress_card,
)
from cardengine.modules.rendering.compositor import CardCompositor, RenderedCard
from cardengine.modules.rendering.qr_layer import QrImageLoader
from cardengine.modules.rendering.template_loader import load_template
from cardengine.utils.logger import batch_log_context, get_logger

log = get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]
DeleteFailureHook = Callable[[Guest, Exception], None]


# ─── Target selection ────────────────────────────────────────────────────────

def filter_targets(guests: list[Guest], mode: RegenerationMode) -> list[Guest]:
    """
    missing → guests without a generated card; all → every guest.
    Order is preserved. Pure: filtering twice yields the same list.
    """
    if mode == RegenerationMode.ALL:
        return list(guests)
    return [g for g in guests if not g.has_card]


# ─── Session / pre-flight ────────────────────────────────────────────────────

class CardSession(BaseModel):
    """Everything rendering needs for one event, loaded once."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    event: EventCardConfig
    flags: CardTypeFlags
    compositor: CardCompositor
    policy: CompressionPolicy

    @property
    def event_id(self) -> int:
        return self.event.id


class BatchPlan(BaseModel):
    """A validated run: session + the exact guests to process."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session: CardSession
    mode: RegenerationMode
    targets: list[Guest]

    @property
    def event_id(self) -> int:
        return self.session.event_id


async def open_session(
    event_id: int,
    backend: CardBackend,
    settings: Settings,
) -> CardSession:
    """
    Load event, layer flags and template for one event.

    Raises:
        TemplateUnavailableError: the event has no design, or it can't be decoded.
        BackendApiError: the backend rejected one of the fetches.
    """
    event = await backend.get_event(event_id)
    if not event.has_template:
        raise TemplateUnavailableError(
            f"No card design found for event {event_id}. "
            "Upload a card design before generating cards."
        )

    design = await backend.get_card_design(event_id)
    template = await asyncio.to_thread(
        load_template,
        event_id,
        design,
        (settings.card_canvas_width, settings.card_canvas_height),
    )
    flags = await backend.get_card_type(event.card_type_id)

    compositor = CardCompositor(
        template,
        event.placement(),
        flags,
        QrImageLoader(backend.fetch_storage_file, settings.qr_base_url),
        qr_size=settings.qr_size_px,
        font_path=settings.font_path,
    )
    log.info(
        "session_opened",
        event_id=event_id,
        card_type_id=event.card_type_id,
        show_guest_name=flags.show_guest_name,
        show_card_class=flags.show_card_class,
        show_qr_code=flags.show_qr_code,
    )
    return CardSession(
        event=event,
        flags=flags,
        compositor=compositor,
        policy=CompressionPolicy.from_settings(settings),
    )


async def preflight(
    event_id: int,
    mode: RegenerationMode,
    backend: CardBackend,
    settings: Settings,
) -> BatchPlan:
    """Validate that a run can produce cards. Creates no job state."""
    session = await open_session(event_id, backend, settings)

    guests = await backend.get_all_guests(event_id)
    targets = filter_targets(guests, mode)
    if not targets:
        raise PreflightError(
            "No guests found to generate cards for."
            if mode == RegenerationMode.ALL or not guests
            else "Every guest already has a card. Use mode 'all' to regenerate."
        )

    log.info(
        "preflight_ok",
        event_id=event_id,
        mode=mode.value,
        guests=len(guests),
        targets=len(targets),
    )
    return BatchPlan(session=session, mode=mode, targets=targets)


# ─── One guest ───────────────────────────────────────────────────────────────

async def render_and_compress(
    session: CardSession, guest: Guest
) -> tuple[RenderedCard, CompressionResult]:
    rendered = await session.compositor.render(guest)
    compressed = await asyncio.to_thread(
        compress_card, rendered.image, policy=session.policy
    )
    return rendered, compressed


async def generate_card(
    session: CardSession,
    guest: Guest,
    backend: CardBackend,
    *,
    delete_existing: bool = False,
    on_delete_failure: Optional[DeleteFailureHook] = None,
) -> GenerationResult:
    """
    Delete (optional, best-effort) → render → compress → upload.
    Raises on any render/compress/upload failure; the caller decides
    whether that aborts anything.
    """
    if delete_existing and guest.has_card:
        try:
            await backend.delete_card(guest.id)
        except Exception as e:
            # The upload overwrites the card anyway
            log.warning("card_delete_failed", guest_id=guest.id, error=str(e))
            if on_delete_failure is not None:
                on_delete_failure(guest, e)

    rendered, compressed = await render_and_compress(session, guest)

    upload = await backend.upload_card(guest.id, compressed.to_data_url())
    if not upload.success:
        raise CardRejectedError(upload.message or "Failed to save card.")

    log.info(
        "guest_card_generated",
        guest_id=guest.id,
        qr_state=rendered.qr_state.value,
        format=compressed.image_format,
        size_kb=round(compressed.size_bytes / 1024, 1),
        within_budget=compressed.within_budget,
    )
    return GenerationResult(
        guest_id=guest.id,
        success=True,
        card_url=upload.card_url,
        size_bytes=compressed.size_bytes,
        image_format=compressed.image_format,
    )


def _error_text(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


# ─── Batch run ───────────────────────────────────────────────────────────────

class BatchOrchestrator:
    """
    Runs one BatchPlan against a job record. Sequential by construction:
    each guest's pipeline is awaited before the next one starts.
    """

    def __init__(
        self,
        backend: CardBackend,
        store: JobStore,
        settings: Settings,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._store = store
        self._settings = settings
        self._sleep = sleep

    async def run(self, job_id: str, plan: BatchPlan) -> BatchJob:
        store = self._store
        targets = plan.targets
        delete_existing = plan.mode == RegenerationMode.ALL

        def _on_delete_failure(guest: Guest, exc: Exception) -> None:
            store.record_delete_failure(job_id)

        store.start(job_id)
        log.info("batch_start", total=len(targets), mode=plan.mode.value)

        final_status = BatchStatus.COMPLETED
        for index, guest in enumerate(targets, start=1):
            if store.is_cancel_requested(job_id):
                final_status = BatchStatus.CANCELLED
                log.info("batch_cancelled", stopped_before=index, total=len(targets))
                break

            store.advance(job_id, index, guest)
            try:
                await generate_card(
                    plan.session,
                    guest,
                    self._backend,
                    delete_existing=delete_existing,
                    on_delete_failure=_on_delete_failure,
                )
            except Exception as exc:
                error = _error_text(exc)
                log.warning(
                    "guest_card_failed",
                    guest_id=guest.id,
                    guest_name=guest.name,
                    error=error,
                    exc_type=type(exc).__name__,
                )
                store.record_failure(job_id, guest, error)
            else:
                store.record_success(job_id)

            if index < len(targets) and self._settings.inter_item_delay_seconds > 0:
                await self._sleep(self._settings.inter_item_delay_seconds)

        store.finish(job_id, final_status)
        job = store.get_job(job_id)

        log.info(
            "batch_finished",
            status=final_status.value,
            generated=job.generated,
            failed=job.failed,
            delete_failures=job.delete_failures,
        )
        await self._refresh(plan.event_id, job)
        return job

    async def _refresh(self, event_id: int, job: BatchJob) -> None:
        summary = {
            "job_id": job.job_id,
            "status": job.status.value,
            "generated": job.generated,
            "failed": job.failed,
        }
        try:
            await self._backend.notify_refresh(event_id, summary)
        except Exception as e:
            log.warning("refresh_callback_failed", event_id=event_id, error=str(e))


async def run_batch(
    job_id: str,
    plan: BatchPlan,
    backend: CardBackend,
    store: JobStore,
    settings: Settings,
) -> None:
    """
    Background-task entry point. Binds job/event ids to the log context;
    any exception escaping the orchestrator marks the run FAILED.
    """
    with batch_log_context(job_id=job_id, event_id=plan.event_id):
        try:
            await BatchOrchestrator(backend, store, settings).run(job_id, plan)
        except Exception as exc:
            err_msg = f"{type(exc).__name__}: {exc}"
            log.error(
                "batch_fatal_error",
                error=err_msg,
                traceback=traceback.format_exc(),
            )
            store.fail_job(job_id, err_msg)


async def submit_batch(
    event_id: int,
    mode: RegenerationMode,
    backend: CardBackend,
    store: JobStore,
    settings: Settings,
) -> tuple[BatchJob, BatchPlan]:
    """
    Pre-flight, then create the job record. A pre-flight failure raises
    before anything is stored.
    """
    plan = await preflight(event_id, mode, backend, settings)
    job = store.create_job(event_id, mode, total=len(plan.targets))
    return job, plan


# ─── Single guest ────────────────────────────────────────────────────────────

async def _find_guest(event_id: int, guest_id: int, backend: CardBackend) -> Guest:
    for guest in await backend.get_all_guests(event_id):
        if guest.id == guest_id:
            return guest
    raise GuestNotFoundError(f"guest {guest_id} in event {event_id}")


async def generate_single_card(
    event_id: int,
    guest_id: int,
    backend: CardBackend,
    settings: Settings,
) -> GenerationResult:
    """Render, compress and upload one guest's card, replacing any existing one."""
    session = await open_session(event_id, backend, settings)
    guest = await _find_guest(event_id, guest_id, backend)

    with batch_log_context(event_id=event_id, guest_id=guest_id):
        try:
            return await generate_card(
                session, guest, backend, delete_existing=guest.has_card
            )
        except BackendApiError:
            raise
        except Exception as exc:
            log.warning("single_card_failed", error=_error_text(exc))
            return GenerationResult(
                guest_id=guest_id, success=False, error=_error_text(exc)
            )


async def render_preview(
    event_id: int,
    guest_id: int,
    backend: CardBackend,
    settings: Settings,
) -> CompressionResult:
    """Render + compress one guest's card without uploading it."""
    session = await open_session(event_id, backend, settings)
    guest = await _find_guest(event_id, guest_id, backend)
    _, compressed = await render_and_compress(session, guest)
    log.info(
        "card_preview_rendered",
        event_id=event_id,
        guest_id=guest_id,
        size_kb=round(compressed.size_bytes / 1024, 1),
    )
    return compressed

"""One end-to-end conversation report generation attempt."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from app.config import ReportConfig
from app.errors import NotFoundError, PersistenceError, ReportInProgressError
from app.observability import REPORT_JOB_SECONDS, REPORT_JOBS_TOTAL, REPORT_PDF_BYTES, log_event
from app.providers.base import ReportClient
from app.store.base import ReportStore

from . import bookkeeping
from .payload import format_german_date, german_to_iso_date, transcript_to_text
from .pdf import build_report_pdf
from .profile import resolve_participant_profile
from .publish import publish_report_pdf
from .summarize import request_report
from .text import build_report_text
from .transcript import load_conversation, load_transcript

Clock = Callable[[], datetime]

# One lock per conversation id; entries vanish once no attempt holds them
_conversation_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lock_for(conversation_id: str) -> asyncio.Lock:
    lock = _conversation_locks.get(conversation_id)
    if lock is None:
        lock = asyncio.Lock()
        _conversation_locks[conversation_id] = lock
    return lock


@dataclass
class ReportResult:
    conversation_id: str
    target_id: str
    run_id: str
    summary_id: str
    report_id: str
    storage_path: str
    pdf_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "targetId": self.target_id,
            "runId": self.run_id,
            "summaryId": self.summary_id,
            "reportId": self.report_id,
            "storagePath": self.storage_path,
            "pdfSize": self.pdf_size,
        }


async def generate_and_store_conversation_report(
    conversation_id: str,
    *,
    store: ReportStore,
    client: ReportClient,
    config: Optional[ReportConfig] = None,
    request_id: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> ReportResult:
    """Generate, render and persist the report for one conversation.

    Raises the first error encountered. Once a run row exists, the error is
    recorded on it (``status=failed``) before being re-raised unchanged. Rows
    written before the failing step are left in place, except that a report
    which already existed gets its previous ``report_status`` back.
    """
    config = config or ReportConfig()
    now = clock or _utcnow
    t0 = time.perf_counter()

    lock = _lock_for(conversation_id)
    if lock.locked():
        REPORT_JOBS_TOTAL.labels(status="busy").inc()
        raise ReportInProgressError(f"Report generation already in progress for conversation {conversation_id}")

    async with lock:
        try:
            result = await _generate(conversation_id, store, client, config, request_id, now)
        except ReportInProgressError:
            REPORT_JOBS_TOTAL.labels(status="busy").inc()
            raise
        except (Exception, asyncio.CancelledError):
            REPORT_JOBS_TOTAL.labels(status="error").inc()
            raise
    REPORT_JOBS_TOTAL.labels(status="ok").inc()
    REPORT_JOB_SECONDS.observe(time.perf_counter() - t0)
    REPORT_PDF_BYTES.observe(result.pdf_size)
    log_event(
        "report_generate",
        conversationId=conversation_id,
        runId=result.run_id,
        reportId=result.report_id,
        storagePath=result.storage_path,
        pdfBytes=result.pdf_size,
        durationMs=int((time.perf_counter() - t0) * 1000),
        requestId=request_id,
    )
    return result


async def _generate(
    conversation_id: str,
    store: ReportStore,
    client: ReportClient,
    config: ReportConfig,
    request_id: Optional[str],
    now: Clock,
) -> ReportResult:
    conversation = await load_conversation(store, conversation_id)
    person_id = str(conversation.get("person_id") or "").strip()
    if not person_id:
        raise NotFoundError("Conversation has no person_id")

    messages = await load_transcript(store, conversation_id)
    transcript = transcript_to_text(messages)
    input_hash = hashlib.sha256(transcript.encode("utf-8")).hexdigest()
    started_at = conversation.get("started_at") or None
    ended_at = conversation.get("ended_at") or None
    conversation_date = format_german_date(str(ended_at or started_at or ""), today=now().date())
    profile = await resolve_participant_profile(store, person_id)

    target_id = await bookkeeping.ensure_target(store, config, person_id, conversation_id, now())
    await bookkeeping.assert_no_active_run(store, target_id, config, now())
    run_id = await bookkeeping.create_run(store, target_id, input_hash, config, now())
    log_event(
        "report_run_created",
        conversationId=conversation_id,
        targetId=target_id,
        runId=run_id,
        messages=len(messages),
        provider=getattr(client, "provider_name", "unknown"),
        model=getattr(client, "model", None),
        requestId=request_id,
    )

    report_id: Optional[str] = None
    previous_status: Optional[str] = None
    try:
        payload = await request_report(client, transcript, profile, conversation_date, config, request_id=request_id)
        report_text = build_report_text(payload)
        template_id = await bookkeeping.ensure_template(store, config)
        generated_at = bookkeeping.iso_timestamp(now())

        summary_id = await bookkeeping.replace_latest_summary(
            store,
            config,
            target_id=target_id,
            run_id=run_id,
            input_hash=input_hash,
            source_from_ts=started_at,
            source_to_ts=ended_at,
            summary_text=report_text,
            summary_json=payload.to_dict(),
        )

        report_json = payload.to_dict()
        report_json["template_version"] = config.template_version
        report_json["bericht_generiert_am"] = generated_at
        report_id, previous_status = await bookkeeping.upsert_report(
            store,
            config,
            person_id=person_id,
            conversation_id=conversation_id,
            template_id=template_id,
            run_id=run_id,
            conversation_date_iso=german_to_iso_date(conversation_date),
            generated_at=generated_at,
            report_text=report_text,
            report_json=report_json,
        )

        pdf_bytes = build_report_pdf(report_text, title=payload.titel)
        storage_path = await publish_report_pdf(
            store,
            config,
            report_id=report_id,
            person_id=person_id,
            conversation_id=conversation_id,
            pdf_bytes=pdf_bytes,
            generated_at=generated_at,
            now=now(),
        )

        await bookkeeping.complete_run(store, run_id, now())
        await bookkeeping.set_latest_completed_run(store, target_id, run_id)
    except (Exception, asyncio.CancelledError) as e:
        message = str(e) or type(e).__name__
        # the run must reach a terminal status even when the attempt is cancelled
        try:
            await asyncio.shield(bookkeeping.fail_run(store, run_id, message, now()))
        except PersistenceError as mark_error:
            log_event("report_run_mark_failed_error", logging.ERROR, runId=run_id, error=str(mark_error)[:512])
        if report_id and previous_status:
            # a failed regeneration leaves the existing report status where it was
            try:
                await asyncio.shield(bookkeeping.restore_report_status(store, report_id, previous_status))
            except PersistenceError as restore_error:
                log_event("report_status_restore_error", logging.ERROR, reportId=report_id, error=str(restore_error)[:512])
        log_event(
            "report_run_failed",
            logging.ERROR,
            conversationId=conversation_id,
            runId=run_id,
            error=type(e).__name__,
            message=message[:512],
            requestId=request_id,
        )
        raise

    return ReportResult(
        conversation_id=conversation_id,
        target_id=target_id,
        run_id=run_id,
        summary_id=summary_id,
        report_id=report_id,
        storage_path=storage_path,
        pdf_size=len(pdf_bytes),
    )

"""Target, run, summary, template and report rows for one generation attempt.

Targets and reports are upserted on their natural composite keys, so repeated
attempts for one conversation reuse them. Runs and summaries are append-only.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.config import ReportConfig
from app.errors import PersistenceError, ReportInProgressError
from app.store.base import ReportStore

from .payload import REQUIRED_FIELDS, parse_iso_timestamp

ENTITY_TYPE = "conversation"

TARGET_KEY = ("tenant_id", "person_id", "entity_type", "entity_id")
TEMPLATE_KEY = ("template_key", "version", "language")
REPORT_KEY = ("tenant_id", "person_id", "entity_type", "entity_id", "template_id")


def iso_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    dt = parse_iso_timestamp(value)
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _row_id(rows: Any, what: str) -> str:
    row = rows[0] if isinstance(rows, list) and rows else rows
    if not isinstance(row, Mapping) or not row.get("id"):
        raise PersistenceError(f"Failed to {what}: no id returned")
    return str(row["id"])


async def ensure_target(
    store: ReportStore, config: ReportConfig, person_id: str, conversation_id: str, now: datetime
) -> str:
    rows = await store.upsert(
        "summary_targets",
        {
            "tenant_id": config.tenant_id,
            "person_id": person_id,
            "entity_type": ENTITY_TYPE,
            "entity_id": conversation_id,
            "source_updated_at": iso_timestamp(now),
        },
        on_conflict=TARGET_KEY,
    )
    return _row_id(rows, "upsert summary target")


async def assert_no_active_run(store: ReportStore, target_id: str, config: ReportConfig, now: datetime) -> None:
    """Refuse a second attempt while a recent run for the same target is still processing."""
    runs = await store.select(
        "summary_runs",
        columns="id, status, started_at",
        filters={"target_id": target_id, "status": "processing"},
    )
    horizon = now - timedelta(seconds=config.stale_run_seconds)
    for run in runs:
        started = parse_timestamp(run.get("started_at"))
        if started is not None and started > horizon:
            raise ReportInProgressError(f"Report generation already in progress (run {run.get('id')})")


async def create_run(
    store: ReportStore, target_id: str, input_hash: str, config: ReportConfig, now: datetime
) -> str:
    row = await store.insert("summary_runs", {
        "target_id": target_id,
        "status": "processing",
        "summary_type": config.summary_type,
        "language": config.language,
        "prompt_version": config.prompt_version,
        "model_name": config.model,
        "input_hash": input_hash,
        "started_at": iso_timestamp(now),
    })
    return _row_id(row, "create summary run")


async def complete_run(store: ReportStore, run_id: str, now: datetime) -> None:
    await store.update(
        "summary_runs",
        {"status": "completed", "finished_at": iso_timestamp(now)},
        filters={"id": run_id},
    )


async def fail_run(store: ReportStore, run_id: str, message: str, now: datetime) -> None:
    await store.update(
        "summary_runs",
        {"status": "failed", "finished_at": iso_timestamp(now), "error_message": message},
        filters={"id": run_id},
    )


async def set_latest_completed_run(store: ReportStore, target_id: str, run_id: str) -> None:
    await store.update("summary_targets", {"latest_completed_run_id": run_id}, filters={"id": target_id})


async def replace_latest_summary(
    store: ReportStore,
    config: ReportConfig,
    *,
    target_id: str,
    run_id: str,
    input_hash: str,
    source_from_ts: Optional[str],
    source_to_ts: Optional[str],
    summary_text: str,
    summary_json: Dict[str, Any],
) -> str:
    # clear-then-insert; callers hold the per-conversation lock around this
    await store.update(
        "summaries",
        {"is_latest": False},
        filters={
            "target_id": target_id,
            "summary_type": config.summary_type,
            "language": config.language,
            "is_latest": True,
        },
    )
    row = await store.insert("summaries", {
        "target_id": target_id,
        "run_id": run_id,
        "summary_type": config.summary_type,
        "language": config.language,
        "prompt_version": config.prompt_version,
        "input_hash": input_hash,
        "source_from_ts": source_from_ts,
        "source_to_ts": source_to_ts,
        "is_latest": True,
        "summary_text": summary_text,
        "summary_json": summary_json,
    })
    return _row_id(row, "insert summary")


def template_schema() -> Dict[str, List[str]]:
    return {"required_fields": list(REQUIRED_FIELDS)}


async def ensure_template(store: ReportStore, config: ReportConfig) -> str:
    rows = await store.upsert(
        "report_templates",
        {
            "template_key": config.template_key,
            "version": config.template_version,
            "language": config.language,
            "section_schema": template_schema(),
            "is_active": True,
        },
        on_conflict=TEMPLATE_KEY,
    )
    return _row_id(rows, "ensure report template")


async def upsert_report(
    store: ReportStore,
    config: ReportConfig,
    *,
    person_id: str,
    conversation_id: str,
    template_id: str,
    run_id: str,
    conversation_date_iso: Optional[str],
    generated_at: str,
    report_text: str,
    report_json: Dict[str, Any],
) -> Tuple[str, Optional[str]]:
    """Upsert the report as ``final``; returns (report_id, status the row had before, if any)."""
    existing = await store.select_one(
        "conversation_reports",
        columns="id, report_status",
        filters={
            "tenant_id": config.tenant_id,
            "person_id": person_id,
            "entity_type": ENTITY_TYPE,
            "entity_id": conversation_id,
            "template_id": template_id,
        },
    )
    rows = await store.upsert(
        "conversation_reports",
        {
            "tenant_id": config.tenant_id,
            "person_id": person_id,
            "entity_type": ENTITY_TYPE,
            "entity_id": conversation_id,
            "template_id": template_id,
            "summary_run_id": run_id,
            "gespraechsdatum": conversation_date_iso,
            "bericht_generiert_am": generated_at,
            "report_status": "final",
            "report_text": report_text,
            "report_json": report_json,
        },
        on_conflict=REPORT_KEY,
    )
    previous = existing.get("report_status") if existing else None
    return _row_id(rows, "upsert conversation report"), previous


async def restore_report_status(store: ReportStore, report_id: str, status: str) -> None:
    await store.update("conversation_reports", {"report_status": status}, filters={"id": report_id})

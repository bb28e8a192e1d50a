from datetime import datetime

from app.config import ReportConfig
from app.store.base import ReportStore

from .bookkeeping import ENTITY_TYPE, iso_timestamp

PDF_MIME_TYPE = "application/pdf"


def build_storage_path(config: ReportConfig, person_id: str, conversation_id: str, now: datetime) -> str:
    stamp = iso_timestamp(now).replace(":", "-").replace(".", "-")
    return f"{config.tenant_id}/{person_id}/{ENTITY_TYPE}/{conversation_id}/{stamp}.pdf"


async def publish_report_pdf(
    store: ReportStore,
    config: ReportConfig,
    *,
    report_id: str,
    person_id: str,
    conversation_id: str,
    pdf_bytes: bytes,
    generated_at: str,
    now: datetime,
) -> str:
    """Upload the PDF, record its metadata row, then advance the report to ``pdf_generated``."""
    storage_path = build_storage_path(config, person_id, conversation_id, now)
    await store.upload(config.bucket, storage_path, pdf_bytes, content_type=PDF_MIME_TYPE, upsert=True)
    await store.insert("report_pdfs", {
        "report_id": report_id,
        "storage_bucket": config.bucket,
        "storage_path": storage_path,
        "file_name": f"{conversation_id}.pdf",
        "mime_type": PDF_MIME_TYPE,
        "file_size_bytes": len(pdf_bytes),
        "pdf_version": config.pdf_version,
        "generation_status": "completed",
        "generated_at": generated_at,
    })
    await store.update("conversation_reports", {"report_status": "pdf_generated"}, filters={"id": report_id})
    return storage_path

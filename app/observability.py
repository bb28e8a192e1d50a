import json
import logging
import os
from typing import Any

from prometheus_client import Counter, Histogram

logger = logging.getLogger("avatar_coach.reports")
# Ensure our application logger emits under Uvicorn:
# - honor LOG_LEVEL env (default INFO)
# - attach a StreamHandler if none present
# - disable propagate to avoid duplicate logs with Uvicorn root handlers
_lvl = getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO)
if not isinstance(_lvl, int):
    _lvl = logging.INFO
logger.setLevel(_lvl)
if not logger.handlers:
    _h = logging.StreamHandler()
    _h.setLevel(_lvl)
    _h.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(_h)
logger.propagate = False


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one JSON line: {"event": ..., **fields}."""
    payload = {"event": event}
    payload.update(fields)
    logger.log(level, json.dumps(payload, default=str, ensure_ascii=False))


# HTTP request metrics
HTTP_REQUESTS_TOTAL = Counter(
    "avatarcoach_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_class"],
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "avatarcoach_http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ["method", "path"],
)

# Report generation metrics
REPORT_JOBS_TOTAL = Counter(
    "avatarcoach_report_jobs_total",
    "Conversation report generation outcomes",
    ["status"],
)
REPORT_JOB_SECONDS = Histogram(
    "avatarcoach_report_job_seconds",
    "Duration of conversation report generation in seconds",
)
REPORT_PDF_BYTES = Histogram(
    "avatarcoach_report_pdf_bytes",
    "Size of generated report PDFs in bytes",
    buckets=(2_000, 5_000, 10_000, 20_000, 50_000, 100_000, 250_000),
)

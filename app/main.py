import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Match

from app.config import ReportConfig, SupabaseSettings, _env_str
from app.errors import (
    EmptyTranscriptError,
    NotFoundError,
    ReportError,
    ReportInProgressError,
    SummarizationParseError,
    SummarizationRequestError,
)
from app.middleware.request_id import RequestIdMiddleware
from app.observability import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL, log_event
from app.providers.factory import get_report_client
from app.reports.bookkeeping import ENTITY_TYPE, iso_timestamp
from app.reports.pipeline import generate_and_store_conversation_report
from app.store.base import ReportStore
from app.store.memory import InMemoryStore
from app.store.supabase import SupabaseStore


def build_store() -> ReportStore:
    settings = SupabaseSettings.from_env()
    if settings.configured:
        return SupabaseStore(settings)
    log_event("store_fallback_memory", logging.WARNING, reason="SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY not set")
    return InMemoryStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own store before startup
    if getattr(app.state, "store", None) is None:
        app.state.store = build_store()  # type: ignore[attr-defined]
    app.state.report_config = ReportConfig.from_env()  # type: ignore[attr-defined]
    log_event(
        "service_config",
        store=getattr(app.state.store, "store_name", "unknown"),
        model=app.state.report_config.model,
        language=app.state.report_config.language,
    )
    yield


app = FastAPI(
    title="Avatar Coaching Reports API",
    description="Conversation bookkeeping and coaching report generation for avatar sessions.",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in (_env_str("CORS_ALLOW_ORIGINS") or "http://localhost:3000").split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
    allow_credentials=False,
)
app.add_middleware(RequestIdMiddleware)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    if route is None:
        for candidate in request.app.router.routes:
            match, _ = candidate.matches(request.scope)
            if match == Match.FULL:
                route = candidate
                break
    return getattr(route, "path", None) or "unmatched"


# HTTP metrics middleware
@app.middleware("http")
async def _http_metrics_middleware(request: Request, call_next):
    t0 = time.perf_counter()
    method = request.method
    status_code = 500
    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 500)
        return response
    finally:
        # label by route template so path parameters do not create new series
        path = _route_template(request)
        status_class = f"{status_code // 100}xx"
        HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status_class=status_class).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(time.perf_counter() - t0)


def _store() -> ReportStore:
    return app.state.store  # type: ignore[attr-defined]


def _config() -> ReportConfig:
    return getattr(app.state, "report_config", None) or ReportConfig()


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id")


def _now_iso() -> str:
    return iso_timestamp(datetime.now(timezone.utc))


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _report_error_status(e: Exception) -> int:
    if isinstance(e, NotFoundError):
        return 404
    if isinstance(e, ReportInProgressError):
        return 409
    if isinstance(e, EmptyTranscriptError):
        return 422
    if isinstance(e, (SummarizationRequestError, SummarizationParseError)):
        return 502
    return 500


@app.get("/health", tags=["meta"], description="Liveness endpoint for health checks.")
async def health():
    return {"status": "ok"}


@app.get("/metrics", tags=["meta"], include_in_schema=False)
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


async def _resolve_person_id(store: ReportStore, participant_id: str) -> str:
    """Match persons.person_no as given, then as a number when it looks like one."""
    variants: List[Any] = [participant_id]
    try:
        variants.append(int(participant_id))
    except ValueError:
        pass
    for variant in variants:
        try:
            row = await store.select_one("persons", columns="id", filters={"person_no": variant})
        except ReportError as e:
            log_event("person_lookup_failed", logging.WARNING, participantId=participant_id, error=str(e)[:512])
            continue
        if row and row.get("id"):
            return str(row["id"])
    return ""


@app.post(
    "/api/v1/conversations/start",
    tags=["conversations"],
    description="Create a conversation row for a person (by personId or participant number).",
)
async def conversations_start(body: Dict[str, Any] = Body(..., description="{ personId?, participantId?, channel?, avatarName? }")):
    store = _store()
    participant_id = str((body or {}).get("participantId") or "").strip()
    channel = str((body or {}).get("channel") or "web")
    avatar_name = str((body or {}).get("avatarName") or "Coach-Avatar v1")
    person_id = str((body or {}).get("personId") or "").strip()

    if not person_id and participant_id:
        person_id = await _resolve_person_id(store, participant_id)
    if not person_id:
        return _error("No person found for participant ID", 404)

    try:
        row = await store.insert("conversations", {
            "person_id": person_id,
            "channel": channel,
            "avatar_name": avatar_name,
            "started_at": _now_iso(),
        })
    except ReportError as e:
        log_event("conversation_start_failed", logging.ERROR, personId=person_id, error=str(e)[:512])
        return _error(str(e), 500)
    log_event("conversation_started", conversationId=row.get("id"), personId=person_id, channel=channel)
    return {"conversationId": row.get("id"), "personId": person_id}


def _valid_message_rows(conversation_id: str, messages: Any) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for msg in messages if isinstance(messages, list) else []:
        if not isinstance(msg, dict):
            continue
        seq = msg.get("seq")
        content = msg.get("content")
        if isinstance(seq, bool) or not isinstance(seq, int) or seq <= 0:
            continue
        if not isinstance(content, str) or not content.strip():
            continue
        rows.append({
            "conversation_id": conversation_id,
            "seq": seq,
            "sender": "avatar" if msg.get("sender") == "avatar" else "user",
            "content": content.strip(),
        })
    return rows


@app.post(
    "/api/v1/conversations/messages",
    tags=["conversations"],
    description="Persist transcript messages; duplicates on (conversation_id, seq) are ignored.",
)
async def conversations_messages(body: Dict[str, Any] = Body(..., description="{ conversationId, messages: [{ seq, sender, content }] }")):
    conversation_id = str((body or {}).get("conversationId") or "").strip()
    if not conversation_id:
        return _error("conversationId is required", 400)
    rows = _valid_message_rows(conversation_id, (body or {}).get("messages"))
    if not rows:
        return {"inserted": 0}
    try:
        await _store().upsert("conversation_messages", rows, on_conflict=("conversation_id", "seq"), ignore_duplicates=True)
    except ReportError as e:
        log_event("conversation_messages_failed", logging.ERROR, conversationId=conversation_id, error=str(e)[:512])
        return _error(str(e), 500)
    return {"inserted": len(rows)}


@app.post(
    "/api/v1/conversations/end",
    tags=["conversations"],
    description="Mark a conversation ended and generate its report; report failures do not fail the request.",
)
async def conversations_end(request: Request, body: Dict[str, Any] = Body(..., description="{ conversationId }")):
    conversation_id = str((body or {}).get("conversationId") or "").strip()
    if not conversation_id:
        return _error("conversationId is required", 400)
    try:
        await _store().update("conversations", {"ended_at": _now_iso()}, filters={"id": conversation_id})
    except ReportError as e:
        log_event("conversation_end_failed", logging.ERROR, conversationId=conversation_id, error=str(e)[:512])
        return _error(str(e), 500)

    report_generated = True
    report_error: Optional[str] = None
    try:
        await generate_and_store_conversation_report(
            conversation_id,
            store=_store(),
            client=get_report_client(model=_config().model),
            config=_config(),
            request_id=_request_id(request),
        )
    except Exception as e:
        report_generated = False
        report_error = str(e) or type(e).__name__
        log_event(
            "conversation_report_failed",
            logging.ERROR,
            conversationId=conversation_id,
            error=type(e).__name__,
            message=report_error[:512],
            requestId=_request_id(request),
        )
    return {"success": True, "reportGenerated": report_generated, "reportError": report_error}


@app.post(
    "/api/v1/conversations/{conversation_id}/report",
    tags=["reports"],
    description="(Re)generate the coaching report for a conversation.",
)
async def conversation_report_generate(conversation_id: str, request: Request):
    conversation_id = conversation_id.strip()
    if not conversation_id:
        return _error("conversationId is required", 400)
    try:
        result = await generate_and_store_conversation_report(
            conversation_id,
            store=_store(),
            client=get_report_client(model=_config().model),
            config=_config(),
            request_id=_request_id(request),
        )
    except ReportError as e:
        log_event(
            "report_generate_error",
            logging.ERROR,
            conversationId=conversation_id,
            error=type(e).__name__,
            message=str(e)[:512],
            requestId=_request_id(request),
        )
        return _error(type(e).__name__ if _report_error_status(e) >= 500 else str(e), _report_error_status(e))
    return result.to_dict()


@app.get(
    "/api/v1/conversations/{conversation_id}/report",
    tags=["reports"],
    description="Return the current report for a conversation with its most recent PDF location.",
)
async def conversation_report_get(conversation_id: str):
    store = _store()
    config = _config()
    try:
        report = await store.select_one(
            "conversation_reports",
            filters={"tenant_id": config.tenant_id, "entity_type": ENTITY_TYPE, "entity_id": conversation_id},
        )
        if not report:
            return _error("Report not found", 404)
        pdf = await store.select_one(
            "report_pdfs",
            columns="storage_bucket, storage_path, file_size_bytes, generated_at",
            filters={"report_id": report.get("id")},
            order="generated_at",
            descending=True,
        )
    except ReportError as e:
        log_event("report_get_failed", logging.ERROR, conversationId=conversation_id, error=str(e)[:512])
        return _error(str(e), 500)
    return {
        "conversationId": conversation_id,
        "reportId": report.get("id"),
        "status": report.get("report_status"),
        "generatedAt": report.get("bericht_generiert_am"),
        "text": report.get("report_text"),
        "report": report.get("report_json"),
        "pdf": pdf,
    }


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema["tags"] = [
        {"name": "meta", "description": "Service metadata and liveness"},
        {"name": "conversations", "description": "Conversation lifecycle and transcript persistence"},
        {"name": "reports", "description": "Coaching report generation and retrieval"},
    ]
    openapi_schema["servers"] = [
        {"url": "http://localhost:8000", "description": "Local dev"}
    ]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi  # type: ignore[assignment]

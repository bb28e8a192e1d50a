import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

from app.errors import SummarizationRequestError
from app.main import app
from app.providers.base import ReportClient
from app.providers.mock import MockReportClient


@pytest.fixture()
def client(store):
    app.state.store = store
    with TestClient(app) as c:
        yield c
    app.state.store = None


def test_health_and_request_id_echo(client: TestClient):
    r = client.get("/health", headers={"X-Request-Id": "abc-123"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-Id"] == "abc-123"
    assert client.get("/health").headers.get("X-Request-Id")


def test_start_with_person_id(client: TestClient, store):
    r = client.post("/api/v1/conversations/start", json={"personId": "p-1"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["personId"] == "p-1"
    row = next(c for c in store.rows("conversations") if c["id"] == body["conversationId"])
    assert row["channel"] == "web"
    assert row["avatar_name"] == "Coach-Avatar v1"
    assert row["started_at"].endswith("Z")


def test_start_resolves_participant_number(client: TestClient, store):
    store.rows("persons").append({"id": "p-num", "person_no": 2002})
    r = client.post("/api/v1/conversations/start", json={"participantId": "1001", "channel": "kiosk"})
    assert r.status_code == 200
    assert r.json()["personId"] == "p-1"
    r2 = client.post("/api/v1/conversations/start", json={"participantId": "2002"})
    assert r2.json()["personId"] == "p-num"


def test_start_unknown_participant_is_404(client: TestClient):
    r = client.post("/api/v1/conversations/start", json={"participantId": "9999"})
    assert r.status_code == 404
    assert "No person found" in r.json()["error"]


def test_messages_filters_and_ignores_duplicates(client: TestClient, store):
    payload = {
        "conversationId": "c-1",
        "messages": [
            {"seq": 3, "sender": "user", "content": "  Neue Frage  "},
            {"seq": 1, "sender": "user", "content": "Überschrieben?"},
            {"seq": 0, "sender": "user", "content": "ungültig"},
            {"seq": 4, "sender": "avatar", "content": "   "},
            {"seq": "5", "sender": "avatar", "content": "string seq"},
            {"seq": True, "sender": "avatar", "content": "bool seq"},
        ],
    }
    r = client.post("/api/v1/conversations/messages", json=payload)
    assert r.status_code == 200
    assert r.json() == {"inserted": 2}
    rows = sorted(store.rows("conversation_messages"), key=lambda m: m["seq"])
    assert [m["seq"] for m in rows] == [1, 2, 3]
    assert rows[0]["content"] == "Hallo"
    assert rows[2]["content"] == "Neue Frage"


def test_messages_requires_conversation_id(client: TestClient):
    assert client.post("/api/v1/conversations/messages", json={"messages": []}).status_code == 400
    assert client.post("/api/v1/conversations/messages", json={"conversationId": "c-1"}).json() == {"inserted": 0}


def test_end_generates_report(client: TestClient, store):
    with patch("app.main.get_report_client", return_value=MockReportClient()):
        r = client.post("/api/v1/conversations/end", json={"conversationId": "c-1"})
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "reportGenerated": True, "reportError": None}
    assert store.rows("conversations")[0]["ended_at"] != "2026-03-05T10:15:00Z"
    assert store.rows("conversation_reports")[0]["report_status"] == "pdf_generated"


def test_end_reports_generation_failure_without_failing(client: TestClient, store):
    class Down(ReportClient):
        provider_name = "down"

        async def complete_json(self, system, user, **kwargs):
            raise SummarizationRequestError("OpenAI summary request failed (503): overloaded")

    with patch("app.main.get_report_client", return_value=Down()):
        r = client.post("/api/v1/conversations/end", json={"conversationId": "c-1"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True and body["reportGenerated"] is False
    assert "overloaded" in body["reportError"]
    assert store.rows("summary_runs")[0]["status"] == "failed"


def test_end_unknown_conversation_reports_failure(client: TestClient, store):
    with patch("app.main.get_report_client", return_value=MockReportClient()):
        r = client.post("/api/v1/conversations/end", json={"conversationId": "nope"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True and body["reportGenerated"] is False
    assert "nope" in body["reportError"]
    assert store.rows("summary_runs") == []
    assert client.post("/api/v1/conversations/end", json={}).status_code == 400


def test_generate_and_fetch_report(client: TestClient):
    with patch("app.main.get_report_client", return_value=MockReportClient()):
        r = client.post("/api/v1/conversations/c-1/report")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["conversationId"] == "c-1"
    assert body["storagePath"].startswith("default/p-1/conversation/c-1/")

    g = client.get("/api/v1/conversations/c-1/report")
    assert g.status_code == 200
    report = g.json()
    assert report["status"] == "pdf_generated"
    assert report["text"].startswith("Gesprächsauswertung")
    assert report["pdf"]["storage_path"] == body["storagePath"]


def test_report_error_mapping(client: TestClient, store):
    assert client.post("/api/v1/conversations/missing/report").status_code == 404
    assert client.get("/api/v1/conversations/missing/report").status_code == 404

    store.tables["conversation_messages"] = []
    r = client.post("/api/v1/conversations/c-1/report")
    assert r.status_code == 422
    assert "transcript" in r.json()["error"]


def test_metrics_exposes_report_counters(client: TestClient):
    with patch("app.main.get_report_client", return_value=MockReportClient()):
        client.post("/api/v1/conversations/c-1/report")
    text = client.get("/metrics").text
    assert "avatarcoach_report_jobs_total" in text
    assert "avatarcoach_http_requests_total" in text


def test_metrics_label_report_routes_by_template(client: TestClient):
    client.get("/api/v1/conversations/metric-a/report")
    client.get("/api/v1/conversations/metric-b/report")
    client.get("/no/such/route-xyz")
    text = client.get("/metrics").text
    assert 'path="/api/v1/conversations/{conversation_id}/report"' in text
    assert "metric-a" not in text and "metric-b" not in text
    assert "route-xyz" not in text
    assert 'path="unmatched"' in text

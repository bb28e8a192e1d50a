import json
import types

import httpx
import pytest

import app.store.supabase as supabase_mod
from app.config import SupabaseSettings
from app.errors import ConfigurationError, PersistenceError
from app.store.supabase import SupabaseStore


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else (json.dumps(json_data) if json_data is not None else "")

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json


@pytest.fixture()
def fake_http(monkeypatch: pytest.MonkeyPatch):
    calls = []
    responses = []

    class FakeAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def request(self, method, url, params=None, headers=None, json=None, content=None):
            calls.append({"method": method, "url": url, "params": params or {}, "headers": headers or {}, "json": json, "content": content})
            nxt = responses.pop(0) if responses else FakeResponse(200, [])
            if isinstance(nxt, Exception):
                raise nxt
            return nxt

    monkeypatch.setattr(supabase_mod, "httpx", types.SimpleNamespace(AsyncClient=FakeAsyncClient, HTTPError=httpx.HTTPError))
    return types.SimpleNamespace(calls=calls, responses=responses)


@pytest.fixture()
def sb():
    return SupabaseStore(SupabaseSettings(url="https://proj.supabase.co/", key="service-key", timeout=5))


def test_requires_configuration():
    with pytest.raises(ConfigurationError):
        SupabaseStore(SupabaseSettings(url="", key=""))


@pytest.mark.asyncio
async def test_select_builds_postgrest_query(sb, fake_http):
    fake_http.responses.append(FakeResponse(200, [{"seq": 1}]))
    rows = await sb.select(
        "conversation_messages",
        columns="seq, sender, content",
        filters={"conversation_id": "c-1", "is_latest": True, "ended_at": None},
        order="seq",
        limit=5,
    )
    assert rows == [{"seq": 1}]
    call = fake_http.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://proj.supabase.co/rest/v1/conversation_messages"
    assert call["params"] == {
        "select": "seq, sender, content",
        "conversation_id": "eq.c-1",
        "is_latest": "eq.true",
        "ended_at": "is.null",
        "order": "seq.asc",
        "limit": "5",
    }
    assert call["headers"]["apikey"] == "service-key"
    assert call["headers"]["Authorization"] == "Bearer service-key"


@pytest.mark.asyncio
async def test_upsert_uses_on_conflict_and_resolution(sb, fake_http):
    fake_http.responses.append(FakeResponse(201, [{"id": "t-1"}]))
    rows = await sb.upsert("summary_targets", {"tenant_id": "default"}, on_conflict=("tenant_id", "person_id"))
    assert rows == [{"id": "t-1"}]
    call = fake_http.calls[0]
    assert call["method"] == "POST"
    assert call["params"] == {"on_conflict": "tenant_id,person_id"}
    assert call["headers"]["Prefer"] == "resolution=merge-duplicates,return=representation"

    await sb.upsert("conversation_messages", [{"seq": 1}], on_conflict=("conversation_id", "seq"), ignore_duplicates=True)
    assert fake_http.calls[1]["headers"]["Prefer"].startswith("resolution=ignore-duplicates")
    assert fake_http.calls[1]["json"] == [{"seq": 1}]


@pytest.mark.asyncio
async def test_insert_returns_first_row_and_requires_one(sb, fake_http):
    fake_http.responses.append(FakeResponse(201, [{"id": "r-1", "status": "processing"}]))
    row = await sb.insert("summary_runs", {"status": "processing"})
    assert row["id"] == "r-1"

    fake_http.responses.append(FakeResponse(201, []))
    with pytest.raises(PersistenceError, match="no row"):
        await sb.insert("summary_runs", {"status": "processing"})


@pytest.mark.asyncio
async def test_update_is_patch_with_filters(sb, fake_http):
    await sb.update("summary_runs", {"status": "failed"}, filters={"id": "r-1"})
    call = fake_http.calls[0]
    assert call["method"] == "PATCH"
    assert call["params"] == {"id": "eq.r-1"}
    assert call["json"] == {"status": "failed"}

    with pytest.raises(PersistenceError):
        await sb.update("summary_runs", {"status": "failed"}, filters={})


@pytest.mark.asyncio
async def test_upload_hits_storage_api(sb, fake_http):
    fake_http.responses.append(FakeResponse(200, {"Key": "reports/a/b.pdf"}))
    await sb.upload("reports", "default/p-1/conversation/c-1/x.pdf", b"%PDF-1.4", content_type="application/pdf")
    call = fake_http.calls[0]
    assert call["url"] == "https://proj.supabase.co/storage/v1/object/reports/default/p-1/conversation/c-1/x.pdf"
    assert call["content"] == b"%PDF-1.4"
    assert call["headers"]["Content-Type"] == "application/pdf"
    assert call["headers"]["x-upsert"] == "true"


@pytest.mark.asyncio
async def test_http_errors_become_persistence_errors(sb, fake_http):
    fake_http.responses.append(FakeResponse(409, {"message": "duplicate key value"}))
    with pytest.raises(PersistenceError, match="duplicate key value"):
        await sb.insert("summaries", {"x": 1})

    fake_http.responses.append(httpx.ConnectError("connection refused"))
    with pytest.raises(PersistenceError, match="ConnectError"):
        await sb.select("persons")

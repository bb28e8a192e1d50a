import sys
import os
from pathlib import Path

import pytest

# Ensure project root is on sys.path for `import app.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep provider selection deterministic unless a test opts in
os.environ.setdefault("AI_PROVIDER_REPORT", "mock")
os.environ.pop("SUPABASE_URL", None)

from app.reports.payload import ParticipantProfile  # noqa: E402
from app.store.memory import InMemoryStore  # noqa: E402


def _seeded_store(messages=None, *, ended_at="2026-03-05T10:15:00Z", with_company=True) -> InMemoryStore:
    """Conversation c-1 for person p-1 (Max Muster, Coach at ACME) with a two-line transcript."""
    if messages is None:
        messages = [
            {"conversation_id": "c-1", "seq": 2, "sender": "avatar", "content": "Guten Tag"},
            {"conversation_id": "c-1", "seq": 1, "sender": "user", "content": "Hallo"},
        ]
    tables = {
        "conversations": [
            {"id": "c-1", "person_id": "p-1", "started_at": "2026-03-05T09:50:00Z", "ended_at": ended_at},
        ],
        "conversation_messages": list(messages),
        "persons": [{"id": "p-1", "person_no": "1001", "first_name": "Max", "last_name": "Muster"}],
        "employments": [
            {"person_id": "p-1", "company_id": "co-old", "function_title": "Trainee", "valid_from": "2019-01-01"},
            {"person_id": "p-1", "company_id": "co-1", "function_title": "Coach", "valid_from": "2023-04-01"},
        ],
        "companies": [{"id": "co-1", "name": "ACME GmbH"}, {"id": "co-old", "name": "Old Corp"}] if with_company else [],
    }
    return InMemoryStore(tables)


@pytest.fixture()
def store() -> InMemoryStore:
    return _seeded_store()


@pytest.fixture()
def profile() -> ParticipantProfile:
    return ParticipantProfile(person_id="p-1", first_name="Max", last_name="Muster", role="", company="")


@pytest.fixture()
def make_store():
    return _seeded_store

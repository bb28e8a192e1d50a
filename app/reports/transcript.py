from typing import Any, Dict, List

from app.errors import EmptyTranscriptError, NotFoundError
from app.store.base import ReportStore


async def load_conversation(store: ReportStore, conversation_id: str) -> Dict[str, Any]:
    row = await store.select_one(
        "conversations",
        columns="id, person_id, started_at, ended_at",
        filters={"id": conversation_id},
    )
    if not row:
        raise NotFoundError(f"Conversation not found for report generation: {conversation_id}")
    return row


async def load_transcript(store: ReportStore, conversation_id: str) -> List[Dict[str, Any]]:
    """Messages ordered by ``seq`` ascending; an empty transcript is a hard failure."""
    messages = await store.select(
        "conversation_messages",
        columns="seq, sender, content",
        filters={"conversation_id": conversation_id},
        order="seq",
    )
    if not messages:
        raise EmptyTranscriptError("Cannot generate report without transcript messages")
    return messages

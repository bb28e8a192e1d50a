from __future__ import annotations

import abc
from typing import Any, Optional


class ReportClient(abc.ABC):
    """LLM client that answers a system+user prompt pair with a JSON value.

    Implementations raise ``SummarizationRequestError`` for transport/HTTP
    failures and ``SummarizationParseError`` when the answer is empty or not JSON.
    """

    provider_name: str = "unknown"

    def __init__(self, model: Optional[str] = None):
        self.model = model

    @abc.abstractmethod
    async def complete_json(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.2,
        request_id: Optional[str] = None,
    ) -> Any:
        ...

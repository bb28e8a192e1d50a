import json
import os
from typing import Any, Optional

import httpx

from app.errors import SummarizationParseError, SummarizationRequestError

from .base import ReportClient


class OpenAIReportClient(ReportClient):
    provider_name: str = "openai"

    def __init__(self, model: Optional[str] = None):
        super().__init__(model=model or os.getenv("AI_REPORT_MODEL") or "gpt-4o-mini")
        # A missing key is reported at request time so the failure lands on the run row
        self._api_key = os.getenv("OPENAI_API_KEY", "").strip()
        self._base_url = (os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1").strip().rstrip("/")
        try:
            self._timeout = float(os.getenv("OPENAI_TIMEOUT_SECONDS") or os.getenv("AI_HTTP_TIMEOUT_SECONDS") or 60)
        except ValueError:
            self._timeout = 60.0

    async def complete_json(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.2,
        request_id: Optional[str] = None,
    ) -> Any:
        if not self._api_key:
            raise SummarizationRequestError("OPENAI_API_KEY is not configured")
        url = f"{self._base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "User-Agent": "avatar-coach-reports/0.1.0",
        }
        if request_id:
            headers["X-Request-Id"] = request_id
        payload = {
            "model": self.model,
            "temperature": temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise SummarizationRequestError(f"OpenAI summary request failed: {type(e).__name__}: {e}") from e
        if resp.status_code >= 400:
            raise SummarizationRequestError(f"OpenAI summary request failed ({resp.status_code}): {resp.text}")

        try:
            completion = resp.json()
        except ValueError as e:
            raise SummarizationParseError(f"OpenAI completion body was not JSON: {e}") from e
        choices = (completion or {}).get("choices") if isinstance(completion, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else {}
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise SummarizationParseError("OpenAI summary response was empty")
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise SummarizationParseError(f"Failed to parse OpenAI summary JSON: {e}") from e

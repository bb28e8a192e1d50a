import os
from typing import Optional

from .base import ReportClient
from .mock import MockReportClient
from .openai import OpenAIReportClient


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def get_report_client(provider: Optional[str] = None, model: Optional[str] = None) -> ReportClient:
    """Return the report summarization client based on env or explicit overrides.

    Env precedence:
      - AI_PROVIDER_REPORT
      - AI_PROVIDER
      - 'openai' when OPENAI_API_KEY is set, else 'mock'
    Model from AI_REPORT_MODEL if not given.
    """
    default = "openai" if _env_str("OPENAI_API_KEY") else "mock"
    prov = (provider or _env_str("AI_PROVIDER_REPORT") or _env_str("AI_PROVIDER") or default).lower()
    mdl = model or _env_str("AI_REPORT_MODEL") or None

    if prov in ("mock", "test"):
        return MockReportClient(model=mdl)

    # Unknown providers go to OpenAI rather than silently producing mock reports
    return OpenAIReportClient(model=mdl)

import os
from dataclasses import dataclass, field

# Load environment variables from .env if available, but avoid during pytest to keep tests deterministic
from dotenv import load_dotenv

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ReportConfig:
    """Options for one report generation attempt.

    Passed explicitly into the pipeline entry point; nothing in the pipeline reads
    module globals for template, language or model selection.
    """

    template_key: str = "avatar_coaching_standard"
    template_version: str = "v1"
    language: str = "de"
    model: str = "gpt-4o-mini"
    prompt_version: str = "v1"
    tenant_id: str = "default"
    summary_type: str = "detailed"
    bucket: str = "reports"
    pdf_version: str = "v1"
    temperature: float = 0.2
    # processing runs older than this are treated as abandoned by the in-progress guard
    stale_run_seconds: int = 900

    @classmethod
    def from_env(cls) -> "ReportConfig":
        base = cls()
        return cls(
            template_key=_env_str("REPORT_TEMPLATE_KEY", base.template_key),
            template_version=_env_str("REPORT_TEMPLATE_VERSION", base.template_version),
            language=_env_str("REPORT_LANGUAGE", base.language),
            model=_env_str("AI_REPORT_MODEL", base.model),
            prompt_version=_env_str("REPORT_PROMPT_VERSION", base.prompt_version),
            tenant_id=_env_str("REPORT_TENANT_ID", base.tenant_id),
            summary_type=_env_str("REPORT_SUMMARY_TYPE", base.summary_type),
            bucket=_env_str("REPORT_BUCKET", base.bucket),
            pdf_version=_env_str("REPORT_PDF_VERSION", base.pdf_version),
            temperature=_env_float("REPORT_TEMPERATURE", base.temperature),
            stale_run_seconds=_env_int("REPORT_STALE_RUN_SECONDS", base.stale_run_seconds),
        )


@dataclass(frozen=True)
class SupabaseSettings:
    url: str = ""
    key: str = field(default="", repr=False)
    timeout: float = 10.0

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)

    @classmethod
    def from_env(cls) -> "SupabaseSettings":
        return cls(
            url=_env_str("SUPABASE_URL"),
            key=_env_str("SUPABASE_SERVICE_ROLE_KEY") or _env_str("SUPABASE_KEY"),
            timeout=_env_float("SUPABASE_TIMEOUT_SECONDS", _env_float("AI_HTTP_TIMEOUT_SECONDS", 10.0)),
        )

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).resolve().parent.parent

USER_AGENT = "Mozilla/5.0 (compatible; UptradeAuditBot/1.0)"
PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
DEFAULT_LLM_BASE_URL = "https://api.openai.com/v1"
DEFAULT_LLM_MODEL = "gpt-4o-mini"


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    pagespeed_api_key: str = ""
    openai_api_key: str = ""
    llm_model: str = DEFAULT_LLM_MODEL
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    supabase_url: str = ""
    supabase_service_key: str = ""
    api_token: str = ""
    pagespeed_timeout_seconds: float = 60.0
    html_timeout_seconds: float = 15.0
    llm_timeout_seconds: float = 30.0
    heartbeat_interval_seconds: float = 30.0
    stale_audit_seconds: float = 900.0
    output_dir: Path = ROOT_DIR / "outputs"

    @classmethod
    def from_env(cls) -> "Settings":
        # portal deploys use SUPABASE_URL, the marketing site NEXT_PUBLIC_SUPABASE_URL
        supabase_url = _env("SUPABASE_URL") or _env("NEXT_PUBLIC_SUPABASE_URL")
        return cls(
            pagespeed_api_key=_env("PAGESPEED_API_KEY"),
            openai_api_key=_env("OPENAI_API_KEY"),
            llm_model=_env("LLM_MODEL", DEFAULT_LLM_MODEL) or DEFAULT_LLM_MODEL,
            llm_base_url=(_env("LLM_BASE_URL", DEFAULT_LLM_BASE_URL) or DEFAULT_LLM_BASE_URL).rstrip("/"),
            supabase_url=supabase_url.rstrip("/"),
            supabase_service_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            api_token=_env("API_TOKEN"),
            pagespeed_timeout_seconds=_env_float("PAGESPEED_TIMEOUT_SECONDS", 60.0),
            html_timeout_seconds=_env_float("HTML_TIMEOUT_SECONDS", 15.0),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 30.0),
            heartbeat_interval_seconds=_env_float("HEARTBEAT_INTERVAL_SECONDS", 30.0),
            stale_audit_seconds=_env_float("STALE_AUDIT_SECONDS", 900.0),
            output_dir=Path(_env("OUTPUT_DIR") or str(ROOT_DIR / "outputs")),
        )

from __future__ import annotations

import json

from portal_audit import main as cli
from portal_audit.config import Settings
from portal_audit.engine.analyzer import AuditOutcome


def test_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("LLM_MODEL", raising=False)
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://proj.supabase.co/")
    monkeypatch.setenv("LLM_BASE_URL", "https://llm.internal/v1/")
    monkeypatch.setenv("HEARTBEAT_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("PAGESPEED_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))

    settings = Settings.from_env()

    assert settings.supabase_url == "https://proj.supabase.co"
    assert settings.llm_base_url == "https://llm.internal/v1"
    assert settings.llm_model == "gpt-4o-mini"
    assert settings.heartbeat_interval_seconds == 5.0
    assert settings.pagespeed_timeout_seconds == 60.0
    assert settings.output_dir == tmp_path


def test_cli_writes_summary(monkeypatch, tmp_path):
    summary = {
        "grade": "B",
        "metrics": {
            "overall": 84,
            "performance": 70,
            "seo": 92,
            "accessibility": 95,
            "security": 80,
            "bestPractices": 90,
            "pwa": 50,
        },
        "priorityActions": ["Enhance accessibility"],
        "insightsSummary": "Your website scored 84/100 overall (Grade: B).",
    }

    async def fake_run_audit(audit_id, store, **kwargs):
        await store.mark_complete(audit_id, {"summary": summary})
        return AuditOutcome(200, {"success": True, "auditId": audit_id, "grade": "B", "overall": 84})

    monkeypatch.setattr(cli, "run_audit", fake_run_audit)
    out = tmp_path / "summary.json"

    assert cli.main(["https://acme.test/", "--out", str(out)]) == 0
    assert json.loads(out.read_text(encoding="utf-8")) == summary


def test_cli_reports_failure(monkeypatch, tmp_path):
    async def fake_run_audit(audit_id, store, **kwargs):
        await store.mark_failed(audit_id, "PageSpeed analysis failed - site may be blocking automated requests")
        return AuditOutcome(500, {"error": "PageSpeed failed"})

    monkeypatch.setattr(cli, "run_audit", fake_run_audit)

    assert cli.main(["https://acme.test/", "--out", str(tmp_path / "never.json")]) == 1
    assert not (tmp_path / "never.json").exists()

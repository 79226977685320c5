from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
from fastapi.testclient import TestClient

from portal_audit.api import create_app
from portal_audit.config import Settings
from portal_audit.store import MemoryAuditStore


def _client(site_handler, tmp_path, store=None, **settings) -> tuple[TestClient, MemoryAuditStore]:
    store = store or MemoryAuditStore()
    app = create_app(
        store=store,
        settings=Settings(output_dir=tmp_path, **settings),
        transport=httpx.MockTransport(site_handler()),
    )
    return TestClient(app), store


def test_health(site_handler, tmp_path):
    client, _ = _client(site_handler, tmp_path)
    assert client.get("/health").json() == {"ok": True}


def test_run_requires_audit_id(site_handler, tmp_path):
    client, _ = _client(site_handler, tmp_path)
    response = client.post("/audits/run", json={"skipEmail": True})

    assert response.status_code == 400
    assert response.json() == {"error": "No audit ID"}


def test_run_without_body(site_handler, tmp_path):
    client, _ = _client(site_handler, tmp_path)
    response = client.post("/audits/run")

    assert response.status_code == 400
    assert response.json() == {"error": "No audit ID"}


def test_run_with_blank_audit_id(site_handler, tmp_path):
    client, _ = _client(site_handler, tmp_path)
    response = client.post("/audits/run", json={"auditId": "   "})

    assert response.status_code == 400


def test_run_accepts_numeric_audit_id(site_handler, tmp_path):
    client, store = _client(site_handler, tmp_path)
    store.create_audit("https://acme.test/", audit_id="123")

    response = client.post("/audits/run", json={"auditId": 123})

    assert response.status_code == 200
    assert response.json()["auditId"] == "123"
    assert store.row("123")["status"] == "complete"


def test_run_unknown_audit(site_handler, tmp_path):
    client, _ = _client(site_handler, tmp_path)
    response = client.post("/audits/run", json={"auditId": "nope"})

    assert response.status_code == 404
    assert response.json() == {"error": "Audit not found"}


def test_run_and_download_report(site_handler, tmp_path):
    client, store = _client(site_handler, tmp_path)
    audit_id = store.create_audit("https://acme.test/")

    response = client.post("/audits/run", json={"auditId": audit_id, "industry": "restaurant"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "auditId": audit_id, "grade": "D", "overall": 67}
    assert store.row(audit_id)["summary"]["industryComparison"]["industry"] == "restaurant"

    pdf = client.get(f"/audits/{audit_id}/report.pdf")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")


def test_report_for_unfinished_audit(site_handler, tmp_path):
    client, store = _client(site_handler, tmp_path)
    audit_id = store.create_audit("https://acme.test/")

    assert client.get(f"/audits/{audit_id}/report.pdf").status_code == 409
    assert client.get("/audits/missing/report.pdf").status_code == 404


def test_api_token_is_enforced_when_configured(site_handler, tmp_path):
    client, store = _client(site_handler, tmp_path, api_token="secret")
    audit_id = store.create_audit("https://acme.test/")

    assert client.post("/audits/run", json={"auditId": audit_id}).status_code == 401
    response = client.post("/audits/run", json={"auditId": audit_id}, headers={"X-API-Token": "secret"})
    assert response.status_code == 200


def test_reap_endpoint(site_handler, tmp_path):
    client, store = _client(site_handler, tmp_path)
    audit_id = store.create_audit("https://acme.test/")
    old = datetime.now(timezone.utc) - timedelta(hours=1)
    store.rows[audit_id].update(status="running", heartbeat_at=old.isoformat())

    response = client.post("/audits/reap")

    assert response.json() == {"reaped": [audit_id]}
    assert store.row(audit_id)["status"] == "failed"

from __future__ import annotations

import logging
from typing import Optional, Union

import httpx
from fastapi import Body, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, field_validator

from portal_audit.config import Settings
from portal_audit.engine.analyzer import reap_stale_audits, run_audit
from portal_audit.engine.report import build_pdf_report
from portal_audit.errors import StoreError
from portal_audit.store import AuditStore, SupabaseAuditStore

logger = logging.getLogger(__name__)


class RunAuditRequest(BaseModel):
    auditId: Optional[Union[str, int]] = None
    skipEmail: bool = False
    industry: Optional[str] = None

    @field_validator("auditId")
    @classmethod
    def normalize_audit_id(cls, value: Optional[Union[str, int]]) -> Optional[str]:
        if value is None:
            return None
        return str(value).strip() or None


def create_app(
    store: Optional[AuditStore] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the audit service.

    ``store`` defaults to the Supabase ``audits`` table; ``transport`` lets
    callers swap the outbound HTTP layer.
    """
    settings = settings or Settings.from_env()

    app = FastAPI(title="Portal Audit API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _validate_api_token(x_api_token: Optional[str]) -> None:
        if settings.api_token and x_api_token != settings.api_token:
            raise HTTPException(status_code=401, detail="invalid api token")

    def _store_for(client: httpx.AsyncClient) -> AuditStore:
        if store is not None:
            return store
        try:
            return SupabaseAuditStore(client, settings.supabase_url, settings.supabase_service_key)
        except StoreError as exc:
            raise HTTPException(status_code=500, detail=f"server misconfigured: {exc}") from exc

    @app.get("/health")
    def health() -> dict:
        return {"ok": True}

    @app.post("/audits/run")
    async def run_endpoint(
        req: Optional[RunAuditRequest] = Body(default=None),
        x_api_token: Optional[str] = Header(default=None, alias="X-API-Token"),
    ):
        _validate_api_token(x_api_token)
        req = req or RunAuditRequest()
        if not req.auditId:
            logger.error("No audit ID provided")
            return JSONResponse(status_code=400, content={"error": "No audit ID"})

        async with httpx.AsyncClient(transport=transport) as client:
            outcome = await run_audit(
                str(req.auditId),
                _store_for(client),
                settings=settings,
                client=client,
                industry=req.industry or "default",
                skip_email=req.skipEmail,
            )
        return JSONResponse(status_code=outcome.status_code, content=outcome.body)

    @app.post("/audits/reap")
    async def reap_endpoint(x_api_token: Optional[str] = Header(default=None, alias="X-API-Token")) -> dict:
        _validate_api_token(x_api_token)
        async with httpx.AsyncClient(transport=transport) as client:
            try:
                reaped = await reap_stale_audits(_store_for(client), settings.stale_audit_seconds)
            except StoreError as exc:
                raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"reaped": reaped}

    @app.get("/audits/{audit_id}/report.pdf")
    async def report_endpoint(
        audit_id: str,
        x_api_token: Optional[str] = Header(default=None, alias="X-API-Token"),
    ):
        _validate_api_token(x_api_token)
        async with httpx.AsyncClient(transport=transport) as client:
            try:
                job = await _store_for(client).fetch_audit(audit_id)
            except StoreError as exc:
                raise HTTPException(status_code=502, detail=str(exc)) from exc
        if job is None:
            raise HTTPException(status_code=404, detail="Audit not found")
        if job.status != "complete" or not job.summary:
            raise HTTPException(status_code=409, detail=f"Audit is {job.status}")

        filename = f"audit-{audit_id[:8]}.pdf"
        report_path = build_pdf_report(job, str(settings.output_dir / filename))
        return FileResponse(path=report_path, media_type="application/pdf", filename=filename)

    return app


def build_default_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return create_app()

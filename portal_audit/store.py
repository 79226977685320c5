from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from portal_audit.engine.models import AuditJob
from portal_audit.errors import StoreError

logger = logging.getLogger(__name__)

AUDITS_TABLE = "audits"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditStore:
    """Read and update audit rows by id.

    Subclasses implement the three primitives; the status transitions used by
    the pipeline are built on top of them.
    """

    async def fetch_audit(self, audit_id: str) -> Optional[AuditJob]:
        raise NotImplementedError

    async def update_audit(self, audit_id: str, fields: dict[str, Any]) -> None:
        raise NotImplementedError

    async def list_running(self) -> list[AuditJob]:
        raise NotImplementedError

    async def mark_running(self, audit_id: str) -> None:
        await self.update_audit(audit_id, {"status": "running"})
        # heartbeat_at is optional on the table; a rejected stamp leaves the job running
        try:
            await self.touch_heartbeat(audit_id)
        except StoreError as exc:
            logger.warning("Could not stamp heartbeat for %s: %s", audit_id, exc)

    async def touch_heartbeat(self, audit_id: str) -> None:
        await self.update_audit(audit_id, {"heartbeat_at": utc_now()})

    async def mark_failed(self, audit_id: str, message: str) -> None:
        await self.update_audit(audit_id, {"status": "failed", "error_message": message})

    async def mark_complete(self, audit_id: str, fields: dict[str, Any]) -> None:
        await self.update_audit(audit_id, {**fields, "status": "complete", "completed_at": utc_now()})


class MemoryAuditStore(AuditStore):
    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []

    def create_audit(self, target_url: str, audit_id: Optional[str] = None) -> str:
        audit_id = audit_id or str(uuid.uuid4())
        self.rows[audit_id] = {
            "id": audit_id,
            "target_url": target_url,
            "status": "pending",
            "created_at": utc_now(),
        }
        return audit_id

    def row(self, audit_id: str) -> dict[str, Any]:
        return self.rows[audit_id]

    async def fetch_audit(self, audit_id: str) -> Optional[AuditJob]:
        row = self.rows.get(audit_id)
        return AuditJob.from_row(row) if row else None

    async def update_audit(self, audit_id: str, fields: dict[str, Any]) -> None:
        if audit_id not in self.rows:
            raise StoreError(f"Audit not found: {audit_id}")
        self.updates.append((audit_id, copy.deepcopy(fields)))
        self.rows[audit_id].update(fields)

    async def list_running(self) -> list[AuditJob]:
        return [AuditJob.from_row(row) for row in self.rows.values() if row.get("status") == "running"]


class SupabaseAuditStore(AuditStore):
    """The portal's ``audits`` table through the PostgREST endpoint, using the service-role key."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, service_key: str, timeout_s: float = 15.0):
        if not base_url or not service_key:
            raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required")
        self.client = client
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{AUDITS_TABLE}"
        self.timeout_s = timeout_s
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, params: dict[str, str], **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                self.endpoint,
                params=params,
                headers={**self.headers, **kwargs.pop("headers", {})},
                timeout=self.timeout_s,
                **kwargs,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StoreError(f"Supabase returned status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise StoreError("Supabase request failed") from exc
        return response

    async def fetch_audit(self, audit_id: str) -> Optional[AuditJob]:
        response = await self._request("GET", {"id": f"eq.{audit_id}", "select": "*"})
        rows = response.json()
        if not rows:
            return None
        return AuditJob.from_row(rows[0])

    async def update_audit(self, audit_id: str, fields: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            {"id": f"eq.{audit_id}"},
            json=fields,
            headers={"Prefer": "return=minimal"},
        )

    async def list_running(self) -> list[AuditJob]:
        response = await self._request("GET", {"status": "eq.running", "select": "*"})
        return [AuditJob.from_row(row) for row in response.json()]

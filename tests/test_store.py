from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from portal_audit.errors import StoreError
from portal_audit.store import MemoryAuditStore, SupabaseAuditStore


def test_memory_store_lifecycle():
    store = MemoryAuditStore()
    audit_id = store.create_audit("https://acme.test/")

    async def scenario():
        job = await store.fetch_audit(audit_id)
        await store.mark_running(audit_id)
        running = await store.list_running()
        await store.mark_complete(audit_id, {"score_overall": 81, "summary": {"grade": "B"}})
        return job, running

    job, running = asyncio.run(scenario())
    row = store.row(audit_id)

    assert job.status == "pending" and job.target_url == "https://acme.test/"
    assert [j.id for j in running] == [audit_id]
    assert row["status"] == "complete"
    assert row["completed_at"] and row["heartbeat_at"]
    assert [sorted(fields) for _, fields in store.updates][:2] == [["status"], ["heartbeat_at"]]
    assert store.updates[-1][1]["status"] == "complete"


def test_memory_store_unknown_ids():
    store = MemoryAuditStore()

    assert asyncio.run(store.fetch_audit("nope")) is None
    with pytest.raises(StoreError):
        asyncio.run(store.update_audit("nope", {"status": "running"}))


def test_supabase_fetch_and_update(make_client):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=[{"id": "a1", "target_url": "https://acme.test/", "status": "pending"}])
        return httpx.Response(204)

    async def scenario():
        async with make_client(handler) as client:
            store = SupabaseAuditStore(client, "https://proj.supabase.co/", "service-key")
            job = await store.fetch_audit("a1")
            await store.mark_failed("a1", "boom")
            return job

    job = asyncio.run(scenario())

    assert job.id == "a1" and job.status == "pending"
    get, patch = calls
    assert get.url.path == "/rest/v1/audits"
    assert get.url.params["id"] == "eq.a1"
    assert get.headers["apikey"] == "service-key"
    assert get.headers["authorization"] == "Bearer service-key"
    assert patch.method == "PATCH"
    assert json.loads(patch.content) == {"status": "failed", "error_message": "boom"}


def test_supabase_running_survives_rejected_heartbeat(make_client):
    patches: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        patches.append(body)
        if "heartbeat_at" in body:
            return httpx.Response(400, json={"message": "column audits.heartbeat_at does not exist"})
        return httpx.Response(204)

    async def scenario():
        async with make_client(handler) as client:
            await SupabaseAuditStore(client, "https://proj.supabase.co", "k").mark_running("a1")

    asyncio.run(scenario())

    assert patches[0] == {"status": "running"}
    assert set(patches[1]) == {"heartbeat_at"}


def test_supabase_missing_row(make_client):
    async def scenario():
        async with make_client(lambda request: httpx.Response(200, json=[])) as client:
            return await SupabaseAuditStore(client, "https://proj.supabase.co", "k").fetch_audit("missing")

    assert asyncio.run(scenario()) is None


def test_supabase_errors_become_store_errors(make_client):
    async def scenario():
        async with make_client(lambda request: httpx.Response(401, json={"message": "bad key"})) as client:
            await SupabaseAuditStore(client, "https://proj.supabase.co", "k").update_audit("a1", {"status": "running"})

    with pytest.raises(StoreError, match="401"):
        asyncio.run(scenario())


def test_supabase_requires_credentials():
    with pytest.raises(StoreError):
        SupabaseAuditStore(httpx.AsyncClient(), "", "")

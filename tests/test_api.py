# tests/test_api.py

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from jobqueue.api.deps import get_dispatcher, get_health_monitor
from jobqueue.db.session import get_db_session
from jobqueue.health.monitor import HealthMonitor
from jobqueue.main import app
from jobqueue.utils.clock import utcnow
from jobqueue.worker.dispatcher import Dispatcher


@pytest_asyncio.fixture()
async def client(session_factory, registry):
    # Requests stamp jobs with the wall clock, so the dispatcher must use it too
    dispatcher = Dispatcher(session_factory=session_factory, registry=registry, clock=utcnow)

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_health_monitor] = lambda: HealthMonitor()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_liveness(client) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_create_and_fetch_job(client) -> None:
    resp = await client.post("/api/v1/jobs", json={"task_type": "echo", "payload": {"x": 1}})
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert body["attempts"] == 0
    assert body["max_attempts"] == 3
    assert body["payload"] == {"x": 1}

    resp = await client.get(f"/api/v1/jobs/{body['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == body["id"]

    resp = await client.get("/api/v1/jobs", params={"status": "pending"})
    assert [job["id"] for job in resp.json()] == [body["id"]]

    resp = await client.get("/api/v1/jobs", params={"status": "failed"})
    assert resp.json() == []


@pytest.mark.asyncio
async def test_create_job_validation(client) -> None:
    resp = await client.post("/api/v1/jobs", json={"task_type": "echo", "is_recurring": True})
    assert resp.status_code == 400
    assert "recurrence_interval_minutes" in resp.json()["detail"]

    resp = await client.post("/api/v1/jobs", json={"payload": {}})
    assert resp.status_code == 422

    resp = await client.post("/api/v1/jobs", json={"task_type": "echo", "max_attempts": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_job_is_404(client) -> None:
    resp = await client.get(f"/api/v1/jobs/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_trigger_runs_due_jobs(client, registry) -> None:
    registry.register("echo", lambda payload, ctx: {"echo": payload})

    created = (await client.post("/api/v1/jobs", json={"task_type": "echo", "payload": {"n": 7}})).json()
    future_at = (utcnow() + timedelta(hours=1)).isoformat()
    await client.post("/api/v1/jobs", json={"task_type": "echo", "run_at": future_at})

    resp = await client.post("/api/v1/worker/trigger")
    assert resp.status_code == 200
    summary = resp.json()
    assert summary["paused"] is False
    assert summary["run"]["status"] == "completed"
    assert summary["run"]["source"] == "cron"
    assert summary["run"]["processed"] == 1
    assert summary["run"]["succeeded"] == 1
    assert summary["results"][0]["id"] == created["id"]
    assert summary["results"][0]["outcome"] == "succeeded"

    job = (await client.get(f"/api/v1/jobs/{created['id']}")).json()
    assert job["status"] == "succeeded"
    assert job["output"] == {"echo": {"n": 7}}


@pytest.mark.asyncio
async def test_trigger_rejects_bad_timeout(client) -> None:
    resp = await client.post("/api/v1/worker/trigger", json={"timeout_seconds": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_admin_actions(client) -> None:
    job_id = (await client.post("/api/v1/jobs", json={"task_type": "echo"})).json()["id"]

    resp = await client.post("/api/v1/admin/actions", json={"job_id": job_id, "action": "cancel"})
    assert resp.status_code == 200
    assert resp.json()["job"]["status"] == "cancelled"

    resp = await client.post("/api/v1/admin/actions", json={"job_id": job_id, "action": "retry"})
    assert resp.status_code == 409

    resp = await client.post("/api/v1/admin/actions", json={"job_id": job_id, "action": "delete"})
    assert resp.status_code == 200
    assert resp.json()["deleted"] is True
    assert resp.json()["job"] is None

    resp = await client.post("/api/v1/admin/actions", json={"job_id": job_id, "action": "delete"})
    assert resp.status_code == 404

    resp = await client.post("/api/v1/admin/actions", json={"job_id": job_id, "action": "explode"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_processing_toggle_pauses_trigger(client, registry) -> None:
    registry.register("echo", lambda payload, ctx: None)
    await client.post("/api/v1/jobs", json={"task_type": "echo"})

    resp = await client.get("/api/v1/admin/processing")
    assert resp.json()["processing_enabled"] is True

    resp = await client.post("/api/v1/admin/processing", json={"enabled": False})
    assert resp.status_code == 200
    assert resp.json()["paused_reason"] == "Paused via admin console."

    summary = (await client.post("/api/v1/worker/trigger")).json()
    assert summary["paused"] is True
    assert summary["run"]["processed"] == 0

    summary = (await client.post("/api/v1/worker/trigger", json={"force": True})).json()
    assert summary["paused"] is False
    assert summary["run"]["processed"] == 1

    resp = await client.post("/api/v1/admin/processing", json={"enabled": True, "reason": "ignored"})
    assert resp.json()["processing_enabled"] is True
    assert resp.json()["paused_reason"] is None


@pytest.mark.asyncio
async def test_admin_health(client) -> None:
    # No handler registered, so the job fails on its first run
    await client.post("/api/v1/jobs", json={"task_type": "echo"})
    await client.post("/api/v1/worker/trigger", json={"source": "cron"})

    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    body = resp.json()
    assert set(body["queue_counts"]) == {"pending", "running", "succeeded", "failed", "cancelled"}
    assert body["queue_counts"]["failed"] == 1
    assert body["last_trigger"]["stale"] is False
    assert body["recent_worker_runs"][0]["source"] == "cron"
    assert len(body["recent_jobs"]) == 1


@pytest.mark.asyncio
async def test_metrics_endpoint(client) -> None:
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "job_enqueued_total" in resp.text


@pytest.mark.asyncio
async def test_bare_trigger_counts_as_cron_heartbeat(client) -> None:
    before = (await client.get("/api/v1/admin/health")).json()
    assert before["last_trigger"]["stale"] is True

    # What an external scheduler sends: no body at all
    summary = (await client.post("/api/v1/worker/trigger")).json()
    assert summary["run"]["source"] == "cron"

    after = (await client.get("/api/v1/admin/health")).json()
    assert after["last_trigger"]["stale"] is False
    assert after["last_trigger"]["age_minutes"] == 0

    # Operator kicks are recorded separately and do not count as the heartbeat
    summary = (await client.post("/api/v1/worker/trigger", json={"source": "manual"})).json()
    assert summary["run"]["source"] == "manual"


@pytest.mark.asyncio
async def test_list_payload_round_trips(client, registry) -> None:
    registry.register("echo", lambda payload, ctx: payload)

    created = (await client.post("/api/v1/jobs", json={"task_type": "echo", "payload": [1, "two", None]})).json()
    assert created["payload"] == [1, "two", None]

    await client.post("/api/v1/worker/trigger")
    job = (await client.get(f"/api/v1/jobs/{created['id']}")).json()
    assert job["status"] == "succeeded"
    assert job["output"] == [1, "two", None]


@pytest.mark.asyncio
async def test_enable_disable_actions(client) -> None:
    recurring = (await client.post(
        "/api/v1/jobs",
        json={"task_type": "echo", "is_recurring": True, "recurrence_interval_minutes": 5},
    )).json()
    assert recurring["enabled"] is True

    resp = await client.post("/api/v1/admin/actions", json={"job_id": recurring["id"], "action": "disable"})
    assert resp.status_code == 200
    assert resp.json()["job"]["enabled"] is False

    summary = (await client.post("/api/v1/worker/trigger")).json()
    assert summary["results"] == []

    resp = await client.post("/api/v1/admin/actions", json={"job_id": recurring["id"], "action": "enable"})
    assert resp.json()["job"]["enabled"] is True

    one_off = (await client.post("/api/v1/jobs", json={"task_type": "echo"})).json()
    resp = await client.post("/api/v1/admin/actions", json={"job_id": one_off["id"], "action": "disable"})
    assert resp.status_code == 400

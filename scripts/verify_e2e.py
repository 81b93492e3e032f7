#!/usr/bin/env python3
import asyncio
import httpx

API_URL = "http://localhost:8000"

async def verify():
    # 0. Wait for API Readiness
    print("Waiting for API to be ready...")
    async with httpx.AsyncClient(base_url=API_URL, timeout=5.0) as check_client:
        for i in range(30):
            try:
                resp = await check_client.get("/health")
                if resp.status_code == 200:
                    print("API is ready!")
                    break
            except Exception:
                pass
            await asyncio.sleep(1)
        else:
            print("API failed to become ready.")
            return

    async with httpx.AsyncClient(base_url=API_URL, timeout=30.0) as client:
        # 1. Submit a one-off job, a recurring job and one nobody can handle
        print("Submitting jobs...")
        created = {}
        for name, body in {
            "one_off": {"task_type": "echo", "payload": {"msg": "hello world"}},
            "recurring": {"task_type": "echo", "is_recurring": True, "recurrence_interval_minutes": 60},
            "unknown": {"task_type": "no_such_task"},
        }.items():
            resp = await client.post("/api/v1/jobs", json=body)
            if resp.status_code != 201:
                print(f"Failed to create {name} job: {resp.text}")
                return
            created[name] = resp.json()["id"]
            print(f"   {name}: {created[name]}")

        # 2. Run one dispatcher batch, the way cron would
        print("Triggering dispatcher...")
        resp = await client.post("/api/v1/worker/trigger", json={"source": "cron"})
        resp.raise_for_status()
        summary = resp.json()
        print(f"Run: {summary['run']['status']} ({summary['run']['message']})")

        # 3. Check status
        expected = {"one_off": "succeeded", "recurring": "pending", "unknown": "failed"}
        ok = True
        for name, job_id in created.items():
            job = (await client.get(f"/api/v1/jobs/{job_id}")).json()
            print(f"   {name}: status={job['status']} attempts={job['attempts']} output={job.get('output')}")
            if job["status"] != expected[name]:
                ok = False

        # 4. Health should see a fresh cron trigger
        health = (await client.get("/api/v1/admin/health")).json()
        print(f"Queue: {health['queue_counts']}  trigger stale: {health['last_trigger']['stale']}")
        if health["last_trigger"]["stale"]:
            ok = False

        if ok:
            print("SUCCESS: Jobs reached their expected states.")
        else:
            print("FAILURE: Unexpected job states.")

        # Leave the queue tidy
        await client.post("/api/v1/admin/actions", json={"job_id": created["recurring"], "action": "cancel"})

if __name__ == "__main__":
    asyncio.run(verify())

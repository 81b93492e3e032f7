#!/usr/bin/env python3
import asyncio
import httpx
from collections import Counter

API_URL = "http://localhost:8000"
JOB_COUNT = 25
TRIGGERS = 8

async def trigger(client, n):
    try:
        resp = await client.post("/api/v1/worker/trigger", json={"batch_size": 10}, timeout=60.0)
        if resp.status_code == 200:
            return resp.json()
        print(f"   trigger {n}: HTTP {resp.status_code}")
    except Exception as e:
        print(f"   trigger {n}: {e}")
    return None

async def verify_no_double_claim():
    async with httpx.AsyncClient(base_url=API_URL) as client:
        # 1. Create jobs
        print(f"1. Creating {JOB_COUNT} jobs...")
        job_ids = set()
        for i in range(JOB_COUNT):
            resp = await client.post("/api/v1/jobs", json={
                "task_type": "sleep",
                "payload": {"seconds": 0.2, "n": i}
            })
            resp.raise_for_status()
            job_ids.add(resp.json()["id"])

        # 2. Fire concurrent dispatcher invocations
        print(f"2. Firing {TRIGGERS} concurrent triggers...")
        summaries = await asyncio.gather(*(trigger(client, i) for i in range(TRIGGERS)))

    # 3. Analyze results
    executed = Counter()
    for summary in summaries:
        if summary is None:
            continue
        for result in summary["results"]:
            if result["id"] in job_ids:
                executed[result["id"]] += 1

    doubles = {job_id: n for job_id, n in executed.items() if n > 1}
    print(f"3. Results: {len(executed)} of {JOB_COUNT} jobs executed.")

    if doubles:
        print(f"FAILURE: {len(doubles)} job(s) executed more than once!")
        for job_id, n in doubles.items():
            print(f"   - {job_id}: {n} times")
    elif len(executed) != JOB_COUNT:
        print("WARNING: not every job ran (batch limits?); no double execution seen.")
    else:
        print("SUCCESS: Every job was leased exactly once.")

if __name__ == "__main__":
    asyncio.run(verify_no_double_claim())

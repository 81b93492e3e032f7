from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
JOBS_ENQUEUED = Counter('job_enqueued_total', 'Total jobs enqueued', ['task_type'])
JOB_OUTCOMES = Counter(
    'job_outcomes_total',
    'Job execution outcomes',
    ['task_type', 'outcome'] # succeeded|rescheduled|retried|failed|discarded
)
JOB_DURATION = Histogram('job_duration_seconds', 'Handler wall time per attempt', buckets=[0.1, 1.0, 5.0, 10.0, 60.0, 120.0, 300.0])
JOB_START_DELAY = Histogram('job_start_delay_seconds', 'Time from run_at to lease', buckets=[1.0, 10.0, 60.0, 300.0, 900.0, 3600.0])

WORKER_RUNS = Counter(
    "worker_runs_total",
    "Dispatcher invocations",
    ["source", "status"]
)

QUEUE_DEPTH = Gauge('job_queue_depth', 'Number of jobs per status (refreshed on health reads)', ['status'])

PROCESSING_ENABLED = Gauge(
    "job_processing_enabled",
    "Whether the dispatcher is allowed to lease jobs (1 enabled, 0 paused)"
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import OperationalError, ProgrammingError

from jobqueue.settings import settings
from jobqueue.api.v1.jobs import router as jobs_router
from jobqueue.api.v1.worker import router as worker_router
from jobqueue.api.v1.admin import router as admin_router
from jobqueue.api.v1.metrics import router as metrics_router

# Registers the smoke-test task types on the default registry
import jobqueue.tasks.builtin  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

async def bootstrap_store(attempts: int = 10, delay: float = 2.0) -> bool:
    """
    Ensures the settings row exists. Retries while migrations have not run yet
    on a fresh database.
    """
    from jobqueue.db.session import AsyncSessionLocal, Base, engine
    from jobqueue.commands.processing import ensure_settings_row

    for i in range(attempts):
        try:
            if settings.AUTO_CREATE_SCHEMA:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

            async with AsyncSessionLocal() as session:
                row = await ensure_settings_row(session)
                await session.commit()

            if row.processing_enabled:
                logger.info("BOOTSTRAP: job processing enabled.")
            else:
                logger.warning(f"BOOTSTRAP: job processing paused ({row.paused_reason}).")
            return True
        except (ProgrammingError, OperationalError) as e:
            logger.warning(f"Bootstrap: store not ready, retrying in {delay}s... ({i+1}/{attempts}): {e}")
            await asyncio.sleep(delay)

    logger.error("Bootstrap failed: job store unavailable.")
    return False

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    from jobqueue.api.deps import get_dispatcher
    from jobqueue.scheduler.service import SchedulerService

    await bootstrap_store()

    scheduler = None
    if settings.EMBEDDED_TRIGGER_INTERVAL_SECONDS > 0:
        scheduler = SchedulerService(get_dispatcher(), interval=settings.EMBEDDED_TRIGGER_INTERVAL_SECONDS)
        await scheduler.start()

    yield

    # Shutdown
    if scheduler:
        await scheduler.stop()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.include_router(jobs_router, prefix="/api/v1/jobs", tags=["jobs"])
app.include_router(worker_router, prefix="/api/v1/worker", tags=["worker"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.session import get_db_session
from jobqueue.health.monitor import HealthMonitor
from jobqueue.worker.dispatcher import Dispatcher

# Dependency for DB session
DbSession = Annotated[AsyncSession, Depends(get_db_session)]

@lru_cache
def get_dispatcher() -> Dispatcher:
    return Dispatcher()

@lru_cache
def get_health_monitor() -> HealthMonitor:
    return HealthMonitor()

DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
HealthMonitorDep = Annotated[HealthMonitor, Depends(get_health_monitor)]

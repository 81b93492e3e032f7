import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from jobqueue.db.models import QueueSettings, SETTINGS_ROW_ID
from jobqueue.api.v1.metrics import PROCESSING_ENABLED
from jobqueue.utils.clock import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAUSED_REASON = "Paused via admin console."

async def get_processing_settings(session: AsyncSession) -> QueueSettings:
    """
    Reads the operational switch straight from the store.
    A missing row means processing was never paused.
    """
    row = await session.get(QueueSettings, SETTINGS_ROW_ID, populate_existing=True)
    if row is None:
        return QueueSettings(
            id=SETTINGS_ROW_ID,
            processing_enabled=True,
            paused_reason=None,
            updated_at=utcnow(),
        )
    return row

async def ensure_settings_row(session: AsyncSession) -> QueueSettings:
    row = await session.get(QueueSettings, SETTINGS_ROW_ID)
    if row is None:
        row = QueueSettings(id=SETTINGS_ROW_ID, processing_enabled=True, updated_at=utcnow())
        session.add(row)
        await session.flush()
    return row

async def set_processing_enabled(
    session: AsyncSession,
    enabled: bool,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> QueueSettings:
    row = await ensure_settings_row(session)
    row.processing_enabled = enabled
    row.paused_reason = None if enabled else (reason or DEFAULT_PAUSED_REASON)
    row.updated_at = now or utcnow()
    await session.flush()

    PROCESSING_ENABLED.set(1 if enabled else 0)
    if enabled:
        logger.info("Job processing resumed")
    else:
        logger.warning("Job processing paused: %s", row.paused_reason)
    return row

from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update
from typing import Optional
import logging

from referral_ledger.models.fraud_scan_run import FraudScanRun, FRAUD_SCAN_LOCK
from referral_ledger.models.enums import ScanRunStatus

logger = logging.getLogger(__name__)

async def release_stale_lock(db: AsyncSession, *, started_before: datetime, now: datetime) -> int:
    """Marks a run that has held the lock since before the cutoff as failed. Does NOT commit."""
    stmt = (
        update(FraudScanRun)
        .where(FraudScanRun.lock_key == FRAUD_SCAN_LOCK, FraudScanRun.started_at < started_before)
        .values(lock_key=None, status=ScanRunStatus.FAILED, finished_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount:
        logger.warning(f"Released stale fraud scan lock held since before {started_before.isoformat()}")
    return result.rowcount

async def get_latest_run(db: AsyncSession) -> Optional[FraudScanRun]:
    # populate_existing: runs are finished with bulk UPDATEs that bypass the identity map
    result = await db.execute(
        select(FraudScanRun).order_by(FraudScanRun.id.desc()).limit(1).execution_options(populate_existing=True)
    )
    return result.scalars().first()

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from referral_ledger import models, schemas, services
from referral_ledger.db.session import get_db
from referral_ledger.dependencies import require_admin
from referral_ledger.models.enums import FraudFlagStatus, FraudSeverity, FraudType

router = APIRouter(
    dependencies=[Depends(require_admin)]
)

@router.post("/scan", response_model=schemas.fraud.ScanResult)
async def run_fraud_scan(
    db: AsyncSession = Depends(get_db),
    current_admin: models.Account = Depends(require_admin),
):
    """Run the referral fraud rules now. 409 if a scan is already running."""
    return await services.fraud_service.scan(db, triggered_by=current_admin.id)

@router.get("/stats", response_model=schemas.fraud.FraudDashboardStats)
async def get_fraud_stats(db: AsyncSession = Depends(get_db)):
    return await services.fraud_service.get_dashboard_stats(db)

@router.get("/flags", response_model=schemas.fraud.FraudFlagList)
async def list_fraud_flags(
    status: Optional[FraudFlagStatus] = None,
    severity: Optional[FraudSeverity] = None,
    fraud_type: Optional[FraudType] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List fraud flags, newest first, with optional filters."""
    return await services.fraud_service.list_flags(
        db, status=status, severity=severity, fraud_type=fraud_type, skip=skip, limit=limit
    )

@router.post("/flags/{flag_id}/resolve", response_model=schemas.fraud.FlagResolution)
async def resolve_fraud_flag(
    flag_id: int,
    resolve_in: schemas.fraud.FlagResolve,
    db: AsyncSession = Depends(get_db),
    current_admin: models.Account = Depends(require_admin),
):
    """Confirm (reverses the referral reward) or dismiss a pending flag."""
    return await services.fraud_service.resolve_flag(
        db,
        flag_id=flag_id,
        outcome=resolve_in.outcome,
        admin=current_admin,
        admin_notes=resolve_in.admin_notes,
    )

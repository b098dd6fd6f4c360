from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models, schemas, services
from referral_ledger.db.session import get_db
from referral_ledger.dependencies import get_current_account, require_admin

router = APIRouter()


async def _change_response(db: AsyncSession, entry: models.LedgerEntry) -> schemas.ledger.PointsChangeResponse:
    account = await crud.crud_account.get_account_by_id(db, account_id=entry.account_id)
    return schemas.ledger.PointsChangeResponse(
        entry=schemas.ledger.LedgerEntry.model_validate(entry),
        new_balance=entry.balance_after,
        account=schemas.account.AccountSimple.model_validate(account),
    )

# --- Self-service ---

@router.get("/me", response_model=schemas.ledger.PointsBalance)
async def get_my_balance(
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    balance = await services.ledger_service.get_balance(db, current_account.id)
    return schemas.ledger.PointsBalance(account_id=current_account.id, balance=balance)

@router.get("/me/history", response_model=schemas.ledger.LedgerHistory)
async def get_my_history(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    """Ledger entries for the current account, newest first."""
    return await services.ledger_service.get_history(db, account_id=current_account.id, skip=skip, limit=limit)

@router.post("/redeem", response_model=schemas.ledger.PointsChangeResponse)
async def redeem_points(
    redeem_in: schemas.ledger.PointsRedeem,
    db: AsyncSession = Depends(get_db),
    current_account: models.Account = Depends(get_current_account),
):
    entry = await services.ledger_service.redeem_points(
        db, account=current_account, points=redeem_in.points, reference=redeem_in.reference
    )
    return await _change_response(db, entry)

# --- Admin ---

@router.get("/{account_id}", response_model=schemas.ledger.AccountPointsSummary, dependencies=[Depends(require_admin)])
async def get_account_points(account_id: int, db: AsyncSession = Depends(get_db)):
    """Balance, reconciliation and recent entries for any account."""
    return await services.ledger_service.get_account_points_summary(db, account_id=account_id)

@router.post("/award", response_model=schemas.ledger.PointsChangeResponse)
async def award_points(
    award_in: schemas.ledger.PointsAward,
    db: AsyncSession = Depends(get_db),
    current_admin: models.Account = Depends(require_admin),
):
    entry = await services.ledger_service.award_points(
        db,
        account_id=award_in.account_id,
        points=award_in.points,
        reason=award_in.reason,
        admin=current_admin,
        metadata=award_in.metadata,
    )
    return await _change_response(db, entry)

@router.post("/adjust", response_model=schemas.ledger.PointsChangeResponse)
async def adjust_points(
    adjust_in: schemas.ledger.PointsAdjust,
    db: AsyncSession = Depends(get_db),
    current_admin: models.Account = Depends(require_admin),
):
    """Signed manual correction; a deduction cannot take the balance below zero."""
    entry = await services.ledger_service.adjust_points(
        db,
        account_id=adjust_in.account_id,
        points_change=adjust_in.points_change,
        reason=adjust_in.reason,
        admin=current_admin,
        metadata=adjust_in.metadata,
    )
    return await _change_response(db, entry)

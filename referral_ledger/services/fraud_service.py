"""
Referral fraud scanner and the admin review workflow around its flags.

A scan walks referrals in id order, one batch per transaction, and records at
most one flag per (referral, rule). Runs never overlap: the run row holds the
unique ``FRAUD_SCAN_LOCK`` key until it finishes, and a lock older than
``FRAUD_SCAN_LOCK_TTL_MINUTES`` is treated as abandoned.

Thresholds are settings and still await confirmation from the business.
"""
import asyncio
import bisect
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger import crud, models
from referral_ledger.core.config import settings
from referral_ledger.core.errors import Conflict, NotFound, ScanInProgress
from referral_ledger.models.enums import (
    FlagOutcome, FraudFlagStatus, FraudSeverity, FraudType, LedgerReason, NotificationType,
    ReferralStatus, RewardStatus, ScanRunStatus,
)
from referral_ledger.schemas.fraud import (
    FlagResolution, FraudDashboardStats, FraudFlag as FraudFlagSchema, FraudFlagList,
    FraudFlagWithReferral, ScanResult, ScanRun,
)
from referral_ledger.schemas.referral import Referral as ReferralSchema
from referral_ledger.schemas.reward import Pagination
from referral_ledger.utils.dates import utcnow
from . import notification_service, reward_service

logger = logging.getLogger(__name__)

SCANNED_STATUSES = (ReferralStatus.PENDING, ReferralStatus.QUALIFIED, ReferralStatus.REWARDED)

# (fraud_type, severity, evidence_summary, evidence)
Finding = Tuple[FraudType, FraudSeverity, str, dict]


def _check_shared_fingerprint(referral: models.Referral) -> Optional[Finding]:
    referrer, referred = referral.referrer, referral.referred_account
    if referrer is None or referred is None:
        return None
    matches = {}
    if referrer.device_fingerprint and referrer.device_fingerprint == referred.device_fingerprint:
        matches["device_fingerprint"] = referrer.device_fingerprint
    if referrer.signup_ip and referrer.signup_ip == referred.signup_ip:
        matches["signup_ip"] = referrer.signup_ip
    if not matches:
        return None
    return (
        FraudType.SHARED_FINGERPRINT,
        FraudSeverity.HIGH,
        f"Referrer and referred account share {' and '.join(sorted(matches))}",
        {"referrer_id": referrer.id, "referred_account_id": referred.id, "matches": matches},
    )


def _check_velocity(referral: models.Referral, qualification_times: List[datetime]) -> Optional[Finding]:
    if referral.qualified_at is None:
        return None
    window_end = referral.qualified_at
    window_start = window_end - timedelta(hours=1)
    count = bisect.bisect_right(qualification_times, window_end) - bisect.bisect_left(qualification_times, window_start)
    if count <= settings.FRAUD_VELOCITY_MAX_PER_HOUR:
        return None
    return (
        FraudType.REFERRAL_VELOCITY,
        FraudSeverity.MEDIUM,
        f"{count} referrals by the same referrer qualified within one hour",
        {
            "referrer_id": referral.referrer_id,
            "qualifications_in_window": count,
            "threshold": settings.FRAUD_VELOCITY_MAX_PER_HOUR,
            "window_start": window_start.isoformat(),
            "window_end": window_end.isoformat(),
        },
    )


def _check_rapid_qualification(referral: models.Referral) -> Optional[Finding]:
    referred = referral.referred_account
    if referral.qualified_at is None or referred is None or referred.created_at is None:
        return None
    elapsed = referral.qualified_at - referred.created_at
    if elapsed >= timedelta(minutes=settings.FRAUD_MIN_QUALIFY_MINUTES):
        return None
    minutes = round(elapsed.total_seconds() / 60, 1)
    return (
        FraudType.RAPID_QUALIFICATION,
        FraudSeverity.MEDIUM,
        f"Referred account qualified {minutes} minutes after signup",
        {
            "referred_account_id": referred.id,
            "account_created_at": referred.created_at.isoformat(),
            "qualified_at": referral.qualified_at.isoformat(),
            "minutes_to_qualify": minutes,
            "threshold_minutes": settings.FRAUD_MIN_QUALIFY_MINUTES,
        },
    )


async def _evaluate(
    db: AsyncSession, referral: models.Referral, velocity_cache: Dict[int, List[datetime]]
) -> List[Finding]:
    if referral.referrer_id not in velocity_cache:
        velocity_cache[referral.referrer_id] = await crud.crud_referral.get_qualification_times(
            db, referrer_id=referral.referrer_id
        )
    findings = [
        _check_shared_fingerprint(referral),
        _check_velocity(referral, velocity_cache[referral.referrer_id]),
        _check_rapid_qualification(referral),
    ]
    return [f for f in findings if f is not None]


async def _acquire_lock(db: AsyncSession, *, triggered_by: Optional[int]) -> models.FraudScanRun:
    now = utcnow()
    await crud.crud_fraud_scan.release_stale_lock(
        db, started_before=now - timedelta(minutes=settings.FRAUD_SCAN_LOCK_TTL_MINUTES), now=now
    )
    run = models.FraudScanRun(
        lock_key=models.FRAUD_SCAN_LOCK,
        status=ScanRunStatus.RUNNING,
        triggered_by=triggered_by,
        started_at=now,
        summary={},
    )
    db.add(run)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Fraud scan requested by {triggered_by} while another run holds the lock")
        raise ScanInProgress() from e
    return run


async def _finish_run(
    db: AsyncSession, *, run_id: int, status: ScanRunStatus, scanned: int, created: int, summary: dict
) -> None:
    await db.execute(
        update(models.FraudScanRun)
        .where(models.FraudScanRun.id == run_id)
        .values(
            lock_key=None,
            status=status,
            finished_at=utcnow(),
            referrals_scanned=scanned,
            flags_created=created,
            summary=summary,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def scan(
    db: AsyncSession, *, triggered_by: Optional[int] = None, cancel_event: Optional[asyncio.Event] = None
) -> ScanResult:
    """
    Run every rule over pending, qualified and rewarded referrals.

    Flags are committed per batch, so a cancelled or failed run keeps what it
    already found and a later run only adds what is new. Raises
    ``ScanInProgress`` if another run holds the lock.
    """
    run = await _acquire_lock(db, triggered_by=triggered_by)
    run_id = run.id
    logger.info(f"Fraud scan {run_id} started (triggered by {triggered_by})")

    summary = {fraud_type.value: 0 for fraud_type in FraudType}
    scanned = created = 0
    cancelled = False
    after_id = 0
    velocity_cache: Dict[int, List[datetime]] = {}

    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            batch = await crud.crud_referral.get_scan_batch(
                db, after_id=after_id, limit=settings.FRAUD_SCAN_BATCH_SIZE, statuses=SCANNED_STATUSES
            )
            if not batch:
                break

            existing = await crud.crud_fraud_flag.get_existing_pairs(db, referral_ids=[r.id for r in batch])
            batch_summary = {fraud_type.value: 0 for fraud_type in FraudType}
            for referral in batch:
                for fraud_type, severity, evidence_summary, evidence in await _evaluate(db, referral, velocity_cache):
                    if (referral.id, fraud_type) in existing:
                        continue
                    db.add(models.FraudFlag(
                        referral_id=referral.id,
                        account_id=referral.referrer_id,
                        fraud_type=fraud_type,
                        severity=severity,
                        status=FraudFlagStatus.PENDING_REVIEW,
                        evidence=evidence,
                        evidence_summary=evidence_summary,
                    ))
                    existing.add((referral.id, fraud_type))
                    batch_summary[fraud_type.value] += 1

            after_id = batch[-1].id
            run.referrals_scanned = scanned + len(batch)
            run.flags_created = created + sum(batch_summary.values())
            run.summary = {k: summary[k] + batch_summary[k] for k in summary}
            db.add(run)
            await db.commit()

            scanned, created, summary = run.referrals_scanned, run.flags_created, dict(run.summary)
            logger.debug(f"Fraud scan {run_id}: {scanned} referrals scanned, {created} flags so far")
    except Exception as e:
        await db.rollback()
        logger.error(f"Fraud scan {run_id} failed after {scanned} referrals: {e}", exc_info=True)
        await _finish_run(db, run_id=run_id, status=ScanRunStatus.FAILED, scanned=scanned, created=created, summary=summary)
        raise

    status = ScanRunStatus.CANCELLED if cancelled else ScanRunStatus.COMPLETED
    await _finish_run(db, run_id=run_id, status=status, scanned=scanned, created=created, summary=summary)
    logger.info(f"Fraud scan {run_id} {status.value}: {scanned} referrals scanned, {created} flags created {summary}")
    return ScanResult(
        run_id=run_id, flags_created=created, referrals_scanned=scanned, cancelled=cancelled, summary=summary
    )


async def get_dashboard_stats(db: AsyncSession) -> FraudDashboardStats:
    by_status = await crud.crud_fraud_flag.count_grouped(db, models.FraudFlag.status)
    by_severity = await crud.crud_fraud_flag.count_grouped(db, models.FraudFlag.severity)
    by_type = await crud.crud_fraud_flag.count_grouped(db, models.FraudFlag.fraud_type)
    referrals_by_status = await crud.crud_referral.count_by_status(db)
    reward_totals = await crud.crud_reward.totals_by_status(db, reason=LedgerReason.REFERRAL_REWARD)
    issued_count, issued_amount = reward_totals.get(RewardStatus.ISSUED, (0, 0))
    reversed_count, reversed_amount = reward_totals.get(RewardStatus.REVERSED, (0, 0))
    last_run = await crud.crud_fraud_scan.get_latest_run(db)

    return FraudDashboardStats(
        total_flags=sum(by_status.values()),
        pending_review=by_status.get(FraudFlagStatus.PENDING_REVIEW.value, 0),
        confirmed=by_status.get(FraudFlagStatus.CONFIRMED.value, 0),
        false_positive=by_status.get(FraudFlagStatus.FALSE_POSITIVE.value, 0),
        by_severity={s.value: by_severity.get(s.value, 0) for s in FraudSeverity},
        by_type={t.value: by_type.get(t.value, 0) for t in FraudType},
        referrals_by_status={s.value: referrals_by_status.get(s.value, 0) for s in ReferralStatus},
        flagged_referrals=referrals_by_status.get(ReferralStatus.FRAUD_FLAGGED.value, 0),
        # Reversed rewards were issued first, so they count towards both totals
        rewards_issued=issued_count + reversed_count,
        points_issued=issued_amount + reversed_amount,
        points_reversed=reversed_amount,
        last_scan=ScanRun.model_validate(last_run) if last_run else None,
    )


async def list_flags(
    db: AsyncSession,
    *,
    status: Optional[FraudFlagStatus] = None,
    severity: Optional[FraudSeverity] = None,
    fraud_type: Optional[FraudType] = None,
    skip: int = 0,
    limit: int = 50,
) -> FraudFlagList:
    flags = await crud.crud_fraud_flag.get_flags(
        db, status=status, severity=severity, fraud_type=fraud_type, skip=skip, limit=limit
    )
    total = await crud.crud_fraud_flag.count_flags(db, status=status, severity=severity, fraud_type=fraud_type)
    return FraudFlagList(
        flags=[FraudFlagWithReferral.model_validate(f) for f in flags],
        pagination=Pagination(total=total, limit=limit, offset=skip, has_more=skip + limit < total),
    )


async def resolve_flag(
    db: AsyncSession,
    *,
    flag_id: int,
    outcome: FlagOutcome,
    admin: models.Account,
    admin_notes: Optional[str] = None,
) -> FlagResolution:
    """
    Review a pending flag.

    ``confirm`` marks the referral fraud_flagged and reverses its issued
    referral reward plus the referred account's welcome bonus in the same
    transaction; ``dismiss`` records a false positive and leaves the referral
    alone. Already-reviewed flags raise ``Conflict``.
    """
    flag = await crud.crud_fraud_flag.fraud_flag.get(db, flag_id, for_update=True)
    if flag is None:
        raise NotFound(f"Fraud flag {flag_id} not found")
    if flag.status != FraudFlagStatus.PENDING_REVIEW:
        await db.commit()
        raise Conflict(f"Fraud flag {flag_id} was already reviewed ({FraudFlagStatus(flag.status).value})")

    now = utcnow()
    referral = None
    reversed_reward = None
    reversal_entry = None
    reversed_bonus = None
    try:
        if flag.referral_id is not None:
            referral = await crud.crud_referral.referral.get(db, flag.referral_id, for_update=True)

        if outcome == FlagOutcome.CONFIRM:
            if referral is not None:
                reversed_reward = await crud.crud_reward.get_issued_referral_reward(
                    db, referral_id=referral.id, for_update=True
                )
                if reversed_reward is not None:
                    reversal_entry = await reward_service.reverse(
                        db, reward=reversed_reward, reason=f"Fraud flag {flag.id} confirmed", performed_by=admin.id
                    )
                reversed_bonus = await crud.crud_reward.get_issued_referral_reward(
                    db, referral_id=referral.id, reason=LedgerReason.REFERRAL_BONUS, for_update=True
                )
                if reversed_bonus is not None:
                    await reward_service.reverse(
                        db, reward=reversed_bonus, reason=f"Fraud flag {flag.id} confirmed", performed_by=admin.id
                    )
                if referral.can_transition(ReferralStatus.FRAUD_FLAGGED):
                    referral.status = ReferralStatus.FRAUD_FLAGGED
                    referral.flagged_at = now
                    db.add(referral)
            flag.status = FraudFlagStatus.CONFIRMED
        else:
            flag.status = FraudFlagStatus.FALSE_POSITIVE

        flag.reviewed_by = admin.id
        flag.reviewed_at = now
        flag.admin_notes = admin_notes
        db.add(flag)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        f"Admin {admin.email} resolved fraud flag {flag.id} as {FraudFlagStatus(flag.status).value}"
        + (f"; reversed reward {reversed_reward.id} with entry {reversal_entry.id}" if reversal_entry else "")
    )

    resolution = FlagResolution(
        flag=FraudFlagSchema.model_validate(flag),
        referral=ReferralSchema.model_validate(referral) if referral else None,
        reversal_entry_id=reversal_entry.id if reversal_entry else None,
    )
    if reversal_entry is not None:
        await notification_service.notify(
            db,
            account_id=reversed_reward.beneficiary_id,
            type=NotificationType.REWARD_REVERSED,
            message=f"{reversed_reward.amount} referral points were reversed after a fraud review",
            reference=f"reward:{reversed_reward.id}",
        )
    if reversed_bonus is not None:
        await notification_service.notify(
            db,
            account_id=reversed_bonus.beneficiary_id,
            type=NotificationType.REWARD_REVERSED,
            message=f"{reversed_bonus.amount} referral bonus points were reversed after a fraud review",
            reference=f"reward:{reversed_bonus.id}",
        )
    return resolution

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from staff_attendance.audit import log_audit
from staff_attendance.errors import ApiError
from staff_attendance.models import (
    AuditActorType,
    Holiday,
    LeaveAdjustmentType,
    LeaveApplication,
    LeaveBalance,
    LeaveBalanceAdjustment,
    LeaveStatus,
    LeaveType,
    LopMode,
    Officer,
)
from staff_attendance.schemas import LeaveApplicationCreate
from staff_attendance.services.overtime import round2
from staff_attendance.services.periods import month_bounds, normalize_ts
from staff_attendance.settings import get_settings

logger = logging.getLogger("staff_attendance.leaves")


@dataclass(frozen=True, slots=True)
class DaySplit:
    paid_days: float
    lop_days: float

    @property
    def is_lop(self) -> bool:
        return self.lop_days > 0


@dataclass(frozen=True, slots=True)
class WorkingDays:
    total_calendar_days: int
    holidays_in_range: int
    working_days: int


@dataclass(frozen=True, slots=True)
class LedgerMonth:
    month: int
    monthly_credit: float
    additional_credit: float
    used: float
    carried_forward: float = 0.0
    balance_remaining: float = 0.0


def compute_balance(
    monthly_credit: float,
    carried_forward: float,
    used: float,
    additional_credit: float = 0.0,
) -> float:
    """Remaining paid leave for a month, floored at zero."""
    if used < 0:
        raise ValueError("used days must be >= 0")
    if monthly_credit < 0 or carried_forward < 0 or additional_credit < 0:
        raise ValueError("leave credits must be >= 0")
    return round2(max(0.0, monthly_credit + additional_credit + carried_forward - used))


def split_requested_days(requested_days: float, balance_remaining: float) -> DaySplit:
    """Partition requested days into paid days covered by the balance and LOP days."""
    if requested_days < 0:
        raise ValueError("requested_days must be >= 0")
    available = max(0.0, balance_remaining)
    paid_days = min(requested_days, available)
    return DaySplit(paid_days=paid_days, lop_days=requested_days - paid_days)


def apply_lop_decision(
    total_days: float,
    mode: LopMode | str,
    paid_days_override: float | None = None,
) -> DaySplit:
    """Approver override of the automatic split.

    ``complete`` makes every day LOP whatever the balance. ``partial`` pays the
    override clamped to ``[0, total_days]`` and makes the rest LOP.
    """
    if total_days < 0:
        raise ValueError("total_days must be >= 0")
    resolved = LopMode(mode)
    if resolved == LopMode.COMPLETE:
        return DaySplit(paid_days=0.0, lop_days=total_days)

    if paid_days_override is None:
        raise ValueError("paid_days_override is required for a partial LOP decision")
    paid_days = min(max(0.0, paid_days_override), total_days)
    return DaySplit(paid_days=paid_days, lop_days=total_days - paid_days)


def compute_working_days_excluding_holidays(
    start_date: date,
    end_date: date,
    holiday_dates: Iterable[date],
) -> WorkingDays:
    # Weekends count as leave days; only holidays are excluded.
    if end_date < start_date:
        raise ValueError("end_date must be greater than or equal to start_date")
    total_calendar_days = (end_date - start_date).days + 1
    holidays_in_range = len({day for day in holiday_dates if start_date <= day <= end_date})
    return WorkingDays(
        total_calendar_days=total_calendar_days,
        holidays_in_range=holidays_in_range,
        working_days=max(0, total_calendar_days - holidays_in_range),
    )


def carry_forward_from(previous_balance_remaining: float, max_carry_forward: float | None = None) -> float:
    carried = max(0.0, previous_balance_remaining)
    if max_carry_forward is not None:
        carried = min(carried, max(0.0, max_carry_forward))
    return round2(carried)


def roll_forward_year(
    months: Sequence[LedgerMonth],
    *,
    opening_carry_forward: float,
    max_carry_forward: float | None = None,
) -> list[LedgerMonth]:
    """Recompute carry-forward and remaining balance across consecutive months.

    The first month keeps ``opening_carry_forward``; every later month carries
    the previous month's remaining balance.
    """
    rolled: list[LedgerMonth] = []
    carried = opening_carry_forward
    for entry in months:
        if rolled and entry.month != rolled[-1].month + 1:
            raise ValueError("ledger months must be consecutive")
        if rolled:
            carried = carry_forward_from(rolled[-1].balance_remaining, max_carry_forward)
        remaining = compute_balance(entry.monthly_credit, carried, entry.used, entry.additional_credit)
        rolled.append(replace(entry, carried_forward=carried, balance_remaining=remaining))
    return rolled


def available_paid_days(balance: LeaveBalance, max_per_month: float | None = None) -> float:
    available = balance.balance_remaining
    if max_per_month is not None:
        available = min(available, max_per_month - balance.total_used)
    return max(0.0, available)


def list_holiday_dates(
    db: Session,
    institution_id: int | None,
    start_date: date,
    end_date: date,
) -> list[date]:
    stmt = select(Holiday.holiday_date).where(
        Holiday.holiday_date >= start_date,
        Holiday.holiday_date <= end_date,
    )
    if institution_id is None:
        stmt = stmt.where(Holiday.institution_id.is_(None))
    else:
        stmt = stmt.where(or_(Holiday.institution_id.is_(None), Holiday.institution_id == institution_id))
    return sorted(set(db.scalars(stmt).all()))


def _require_officer(db: Session, applicant_id: int) -> Officer:
    officer = db.get(Officer, applicant_id)
    if officer is None:
        raise ApiError(status_code=404, code="OFFICER_NOT_FOUND", message="Officer not found.")
    return officer


def _validate_month(year: int, month: int) -> None:
    if not 1 <= month <= 12 or not 1900 <= year <= 9999:
        raise ApiError(status_code=422, code="INVALID_MONTH", message="year/month is out of range.")


def _select_balance(db: Session, applicant_id: int, year: int, month: int, *, lock: bool = False) -> LeaveBalance | None:
    stmt = select(LeaveBalance).where(
        LeaveBalance.applicant_id == applicant_id,
        LeaveBalance.year == year,
        LeaveBalance.month == month,
    )
    if lock:
        stmt = stmt.with_for_update()
    return db.scalar(stmt)


def _previous_month(year: int, month: int) -> tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def _opening_carry_forward(db: Session, applicant_id: int, year: int, month: int) -> float:
    settings = get_settings()
    if month == 1 and settings.leave_reset_in_january:
        return 0.0

    prev_year, prev_month = _previous_month(year, month)
    if prev_year == year:
        previous = _ensure_monthly_balance(db, applicant_id, prev_year, prev_month)
    else:
        previous = _select_balance(db, applicant_id, prev_year, prev_month)
    if previous is None:
        return 0.0
    return carry_forward_from(previous.balance_remaining, settings.leave_max_carry_forward)


def _ensure_monthly_balance(
    db: Session,
    applicant_id: int,
    year: int,
    month: int,
    *,
    lock: bool = False,
) -> LeaveBalance:
    existing = _select_balance(db, applicant_id, year, month, lock=lock)
    if existing is not None:
        return existing

    monthly_credit = get_settings().leave_monthly_credit
    carried_forward = _opening_carry_forward(db, applicant_id, year, month)
    balance = LeaveBalance(
        applicant_id=applicant_id,
        year=year,
        month=month,
        monthly_credit=monthly_credit,
        carried_forward=carried_forward,
        additional_credit=0.0,
        sick_leave_used=0.0,
        casual_leave_used=0.0,
        lop_days=0.0,
        balance_remaining=compute_balance(monthly_credit, carried_forward, 0.0),
    )
    db.add(balance)
    db.flush()
    logger.info(
        "leave_balance_initialized",
        extra={
            "applicant_id": applicant_id,
            "year": year,
            "month": month,
            "carried_forward": carried_forward,
        },
    )
    return balance


def _initialise_balance(
    db: Session,
    applicant_id: int,
    year: int,
    month: int,
    *,
    lock: bool = False,
    on_retry: Callable[[], object] | None = None,
) -> LeaveBalance:
    """Load or lazily create a month, retrying once when another request created it first.

    The rollback discards everything pending in the session; ``on_retry`` reloads
    whatever the caller must hold again before the second attempt.
    """
    try:
        return _ensure_monthly_balance(db, applicant_id, year, month, lock=lock)
    except IntegrityError as exc:
        db.rollback()
        logger.info(
            "leave_balance_initialization_race",
            extra={"applicant_id": applicant_id, "year": year, "month": month, "error": str(exc)},
        )

    if on_retry is not None:
        on_retry()
    try:
        return _ensure_monthly_balance(db, applicant_id, year, month, lock=lock)
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(
            status_code=409,
            code="LEAVE_BALANCE_CONFLICT",
            message="Leave balance was modified concurrently. Retry the operation.",
        ) from exc


def get_or_create_monthly_balance(db: Session, applicant_id: int, year: int, month: int) -> LeaveBalance:
    _validate_month(year, month)
    _require_officer(db, applicant_id)
    balance = _initialise_balance(db, applicant_id, year, month)
    try:
        db.commit()
    except IntegrityError:
        # Another request initialised the month first.
        db.rollback()
        balance = _select_balance(db, applicant_id, year, month)
        if balance is None:
            raise
    db.refresh(balance)
    return balance


def _ledger_month(balance: LeaveBalance) -> LedgerMonth:
    return LedgerMonth(
        month=balance.month,
        monthly_credit=balance.monthly_credit,
        additional_credit=balance.additional_credit,
        used=balance.total_used,
        carried_forward=balance.carried_forward,
        balance_remaining=balance.balance_remaining,
    )


def _roll_year_from(db: Session, balance: LeaveBalance, max_carry_forward: float | None) -> list[LeaveBalance]:
    later = db.scalars(
        select(LeaveBalance)
        .where(
            LeaveBalance.applicant_id == balance.applicant_id,
            LeaveBalance.year == balance.year,
            LeaveBalance.month > balance.month,
        )
        .order_by(LeaveBalance.month.asc())
        .with_for_update()
    ).all()
    chain = [balance]
    for row in later:
        if row.month != chain[-1].month + 1:
            break
        chain.append(row)

    rolled = roll_forward_year(
        [_ledger_month(row) for row in chain],
        opening_carry_forward=balance.carried_forward,
        max_carry_forward=max_carry_forward,
    )
    for row, entry in zip(chain, rolled):
        row.carried_forward = entry.carried_forward
        row.balance_remaining = entry.balance_remaining
    return chain


def _propagate_carry_forward(db: Session, balance: LeaveBalance) -> list[LeaveBalance]:
    """Recompute carry-forward for the existing consecutive months after ``balance``.

    December only feeds the next January when the yearly reset is off.
    """
    settings = get_settings()
    propagated: list[LeaveBalance] = []
    current = balance
    while True:
        chain = _roll_year_from(db, current, settings.leave_max_carry_forward)
        propagated.extend(chain[1:])
        last = chain[-1]
        if last.month != 12 or settings.leave_reset_in_january:
            break
        january = _select_balance(db, current.applicant_id, last.year + 1, 1, lock=True)
        if january is None:
            break
        january.carried_forward = carry_forward_from(last.balance_remaining, settings.leave_max_carry_forward)
        january.balance_remaining = compute_balance(
            january.monthly_credit,
            january.carried_forward,
            january.total_used,
            january.additional_credit,
        )
        propagated.append(january)
        current = january
    return propagated


def _commit_balance_change(db: Session, *, context: dict[str, object]) -> None:
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        logger.warning("leave_balance_conflict", extra={**context, "error": str(exc)})
        raise ApiError(
            status_code=409,
            code="LEAVE_BALANCE_CONFLICT",
            message="Leave balance was modified concurrently. Retry the operation.",
        ) from exc
    except SQLAlchemyError:
        db.rollback()
        raise


def submit_leave_application(db: Session, payload: LeaveApplicationCreate) -> LeaveApplication:
    officer = _require_officer(db, payload.applicant_id)
    if payload.end_date < payload.start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be greater than or equal to start_date",
        )

    institution_id = payload.institution_id or officer.institution_id
    holidays = list_holiday_dates(db, institution_id, payload.start_date, payload.end_date)
    span = compute_working_days_excluding_holidays(payload.start_date, payload.end_date, holidays)
    if span.working_days == 0:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="Requested range contains only holidays.",
        )

    balance = _initialise_balance(db, officer.id, payload.start_date.year, payload.start_date.month)
    split = split_requested_days(
        span.working_days,
        available_paid_days(balance, get_settings().leave_max_per_month),
    )

    application = LeaveApplication(
        applicant_id=officer.id,
        institution_id=institution_id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        total_days=float(span.working_days),
        holidays_excluded=span.holidays_in_range,
        paid_days=split.paid_days,
        lop_days=split.lop_days,
        is_lop=split.is_lop,
        status=LeaveStatus.PENDING,
        reason=payload.reason,
    )
    db.add(application)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(application)
    logger.info(
        "leave_application_submitted",
        extra={
            "leave_application_id": application.id,
            "applicant_id": officer.id,
            "total_days": application.total_days,
            "provisional_lop_days": application.lop_days,
        },
    )
    return application


def list_leave_applications(
    db: Session,
    *,
    applicant_id: int | None = None,
    status: LeaveStatus | None = None,
    year: int | None = None,
    month: int | None = None,
) -> list[LeaveApplication]:
    if (year is None) != (month is None):
        raise ApiError(
            status_code=422,
            code="INVALID_MONTH",
            message="year and month must be provided together",
        )

    stmt = select(LeaveApplication).order_by(LeaveApplication.start_date.asc(), LeaveApplication.id.asc())
    if applicant_id is not None:
        stmt = stmt.where(LeaveApplication.applicant_id == applicant_id)
    if status is not None:
        stmt = stmt.where(LeaveApplication.status == status)
    if year is not None and month is not None:
        _validate_month(year, month)
        start, end = month_bounds(year, month)
        stmt = stmt.where(
            LeaveApplication.start_date <= end,
            LeaveApplication.end_date >= start,
        )
    return list(db.scalars(stmt).all())


def _load_pending_application(db: Session, application_id: int) -> LeaveApplication:
    application = db.scalar(
        select(LeaveApplication).where(LeaveApplication.id == application_id).with_for_update()
    )
    if application is None:
        raise ApiError(status_code=404, code="LEAVE_NOT_FOUND", message="Leave application not found.")
    if application.status != LeaveStatus.PENDING:
        raise ApiError(
            status_code=409,
            code="LEAVE_NOT_PENDING",
            message=f"Leave application is already {application.status.value}.",
        )
    return application


def _book_days(balance: LeaveBalance, leave_type: LeaveType, split: DaySplit) -> None:
    if leave_type == LeaveType.SICK:
        balance.sick_leave_used = round2(balance.sick_leave_used + split.paid_days)
    else:
        # Casual and earned leave both draw on the casual column.
        balance.casual_leave_used = round2(balance.casual_leave_used + split.paid_days)
    balance.lop_days = round2(balance.lop_days + split.lop_days)
    balance.balance_remaining = compute_balance(
        balance.monthly_credit,
        balance.carried_forward,
        balance.total_used,
        balance.additional_credit,
    )


def approve_leave_application(
    db: Session,
    application_id: int,
    *,
    decided_by: str,
    comment: str | None = None,
    lop_decision: LopMode | str | None = None,
    paid_days_override: float | None = None,
    now_utc: datetime | None = None,
) -> LeaveApplication:
    application = _load_pending_application(db, application_id)
    start = application.start_date
    balance = _initialise_balance(
        db,
        application.applicant_id,
        start.year,
        start.month,
        lock=True,
        on_retry=lambda: _load_pending_application(db, application_id),
    )

    if lop_decision is not None:
        try:
            split = apply_lop_decision(application.total_days, lop_decision, paid_days_override)
        except ValueError as exc:
            db.rollback()
            raise ApiError(status_code=422, code="INVALID_LOP_DECISION", message=str(exc)) from exc
        decision = LopMode(lop_decision)
    else:
        split = split_requested_days(
            application.total_days,
            available_paid_days(balance, get_settings().leave_max_per_month),
        )
        decision = None

    _book_days(balance, application.leave_type, split)
    propagated = _propagate_carry_forward(db, balance)

    application.paid_days = split.paid_days
    application.lop_days = split.lop_days
    application.is_lop = split.is_lop
    application.lop_decision = decision
    application.status = LeaveStatus.APPROVED
    application.decided_by = decided_by
    application.decided_at = normalize_ts(now_utc)
    application.decision_comment = comment

    context = {
        "leave_application_id": application.id,
        "applicant_id": application.applicant_id,
        "leave_balance_id": balance.id,
    }
    _commit_balance_change(db, context=context)
    db.refresh(application)

    logger.info(
        "leave_application_approved",
        extra={
            **context,
            "paid_days": split.paid_days,
            "lop_days": split.lop_days,
            "lop_decision": decision.value if decision else None,
            "propagated_months": [f"{row.year}-{row.month:02d}" for row in propagated],
        },
    )
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=decided_by,
        action="LEAVE_APPROVED",
        success=True,
        entity_type="leave_application",
        entity_id=str(application.id),
        details={
            "paid_days": split.paid_days,
            "lop_days": split.lop_days,
            "lop_decision": decision.value if decision else None,
        },
    )
    return application


def _close_application(
    db: Session,
    application_id: int,
    *,
    status: LeaveStatus,
    actor_type: AuditActorType,
    decided_by: str,
    comment: str | None,
    now_utc: datetime | None,
) -> LeaveApplication:
    application = _load_pending_application(db, application_id)
    application.status = status
    application.decided_by = decided_by
    application.decided_at = normalize_ts(now_utc)
    application.decision_comment = comment
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(application)

    logger.info(
        f"leave_application_{status.value}",
        extra={"leave_application_id": application.id, "applicant_id": application.applicant_id},
    )
    log_audit(
        db,
        actor_type=actor_type,
        actor_id=decided_by,
        action=f"LEAVE_{status.value.upper()}",
        success=True,
        entity_type="leave_application",
        entity_id=str(application.id),
        details={"comment": comment} if comment else None,
    )
    return application


def reject_leave_application(
    db: Session,
    application_id: int,
    *,
    decided_by: str,
    comment: str | None = None,
    now_utc: datetime | None = None,
) -> LeaveApplication:
    return _close_application(
        db,
        application_id,
        status=LeaveStatus.REJECTED,
        actor_type=AuditActorType.ADMIN,
        decided_by=decided_by,
        comment=comment,
        now_utc=now_utc,
    )


def cancel_leave_application(
    db: Session,
    application_id: int,
    *,
    cancelled_by: str,
    comment: str | None = None,
    now_utc: datetime | None = None,
) -> LeaveApplication:
    return _close_application(
        db,
        application_id,
        status=LeaveStatus.CANCELLED,
        actor_type=AuditActorType.OFFICER,
        decided_by=cancelled_by,
        comment=comment,
        now_utc=now_utc,
    )


def get_year_ledger(db: Session, applicant_id: int, year: int) -> list[LeaveBalance]:
    _validate_month(year, 1)
    _require_officer(db, applicant_id)
    return list(
        db.scalars(
            select(LeaveBalance)
            .where(LeaveBalance.applicant_id == applicant_id, LeaveBalance.year == year)
            .order_by(LeaveBalance.month.asc())
        ).all()
    )


def adjust_carried_forward(
    db: Session,
    balance_id: int,
    *,
    new_value: float,
    adjustment_type: LeaveAdjustmentType | str,
    reason: str,
    adjusted_by: str,
    now_utc: datetime | None = None,
) -> LeaveBalance:
    if new_value < 0:
        raise ApiError(status_code=422, code="INVALID_ADJUSTMENT", message="Carried-forward value must be >= 0.")
    if not (reason or "").strip():
        raise ApiError(status_code=422, code="INVALID_ADJUSTMENT", message="An adjustment reason is required.")

    balance = db.scalar(select(LeaveBalance).where(LeaveBalance.id == balance_id).with_for_update())
    if balance is None:
        raise ApiError(status_code=404, code="LEAVE_BALANCE_NOT_FOUND", message="Leave balance not found.")

    now = normalize_ts(now_utc)
    previous_value = balance.carried_forward
    new_value = round2(new_value)
    balance.carried_forward = new_value
    balance.adjustment_reason = reason.strip()
    balance.adjusted_at = now
    balance.balance_remaining = compute_balance(
        balance.monthly_credit,
        balance.carried_forward,
        balance.total_used,
        balance.additional_credit,
    )
    db.add(
        LeaveBalanceAdjustment(
            leave_balance_id=balance.id,
            applicant_id=balance.applicant_id,
            adjustment_type=LeaveAdjustmentType(adjustment_type),
            previous_value=previous_value,
            new_value=new_value,
            adjustment_amount=round2(new_value - previous_value),
            reason=reason.strip(),
            adjusted_by=adjusted_by,
            created_at=now,
        )
    )
    propagated = _propagate_carry_forward(db, balance)

    context = {"leave_balance_id": balance.id, "applicant_id": balance.applicant_id}
    _commit_balance_change(db, context=context)
    db.refresh(balance)

    logger.info(
        "leave_carried_forward_adjusted",
        extra={
            **context,
            "previous_value": previous_value,
            "new_value": new_value,
            "propagated_months": [f"{row.year}-{row.month:02d}" for row in propagated],
        },
    )
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=adjusted_by,
        action="LEAVE_CARRIED_FORWARD_ADJUSTED",
        success=True,
        entity_type="leave_balance",
        entity_id=str(balance.id),
        details={"previous_value": previous_value, "new_value": new_value, "reason": reason.strip()},
    )
    return balance


def list_balance_adjustments(db: Session, balance_id: int) -> list[LeaveBalanceAdjustment]:
    return list(
        db.scalars(
            select(LeaveBalanceAdjustment)
            .where(LeaveBalanceAdjustment.leave_balance_id == balance_id)
            .order_by(LeaveBalanceAdjustment.created_at.asc(), LeaveBalanceAdjustment.id.asc())
        ).all()
    )

from datetime import date

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from staff_attendance.db import get_db
from staff_attendance.errors import ApiError
from staff_attendance.models import LeaveStatus
from staff_attendance.schemas import (
    CarriedForwardAdjustRequest,
    LeaveApplicationCreate,
    LeaveApplicationRead,
    LeaveApproveRequest,
    LeaveBalanceAdjustmentRead,
    LeaveBalanceRead,
    LeaveDecisionRequest,
    WorkingDaysRead,
)
from staff_attendance.services.leaves import (
    adjust_carried_forward,
    approve_leave_application,
    cancel_leave_application,
    compute_working_days_excluding_holidays,
    get_or_create_monthly_balance,
    get_year_ledger,
    list_balance_adjustments,
    list_holiday_dates,
    list_leave_applications,
    reject_leave_application,
    submit_leave_application,
)

router = APIRouter(prefix="/leave", tags=["leave"])


@router.post("/applications", response_model=LeaveApplicationRead, status_code=status.HTTP_201_CREATED)
def submit_application(
    payload: LeaveApplicationCreate,
    request: Request,
    db: Session = Depends(get_db),
) -> LeaveApplicationRead:
    request.state.actor = "officer"
    request.state.actor_id = str(payload.applicant_id)
    application = submit_leave_application(db, payload)
    return LeaveApplicationRead.model_validate(application)


@router.get("/applications", response_model=list[LeaveApplicationRead])
def list_applications(
    applicant_id: int | None = Query(default=None, ge=1),
    status_filter: LeaveStatus | None = Query(default=None, alias="status"),
    year: int | None = Query(default=None),
    month: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[LeaveApplicationRead]:
    applications = list_leave_applications(
        db,
        applicant_id=applicant_id,
        status=status_filter,
        year=year,
        month=month,
    )
    return [LeaveApplicationRead.model_validate(item) for item in applications]


@router.post("/applications/{application_id}/approve", response_model=LeaveApplicationRead)
def approve_application(
    application_id: int,
    payload: LeaveApproveRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> LeaveApplicationRead:
    request.state.actor = "admin"
    request.state.actor_id = payload.decided_by
    application = approve_leave_application(
        db,
        application_id,
        decided_by=payload.decided_by,
        comment=payload.comment,
        lop_decision=payload.lop_mode,
        paid_days_override=payload.paid_days_override,
    )
    return LeaveApplicationRead.model_validate(application)


@router.post("/applications/{application_id}/reject", response_model=LeaveApplicationRead)
def reject_application(
    application_id: int,
    payload: LeaveDecisionRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> LeaveApplicationRead:
    request.state.actor = "admin"
    request.state.actor_id = payload.decided_by
    application = reject_leave_application(
        db,
        application_id,
        decided_by=payload.decided_by,
        comment=payload.comment,
    )
    return LeaveApplicationRead.model_validate(application)


@router.post("/applications/{application_id}/cancel", response_model=LeaveApplicationRead)
def cancel_application(
    application_id: int,
    payload: LeaveDecisionRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> LeaveApplicationRead:
    request.state.actor = "officer"
    request.state.actor_id = payload.decided_by
    application = cancel_leave_application(
        db,
        application_id,
        cancelled_by=payload.decided_by,
        comment=payload.comment,
    )
    return LeaveApplicationRead.model_validate(application)


@router.get("/balances/{applicant_id}/{year}/{month}", response_model=LeaveBalanceRead)
def monthly_balance(
    applicant_id: int,
    year: int,
    month: int,
    db: Session = Depends(get_db),
) -> LeaveBalanceRead:
    balance = get_or_create_monthly_balance(db, applicant_id, year, month)
    return LeaveBalanceRead.model_validate(balance)


@router.get("/ledger/{applicant_id}/{year}", response_model=list[LeaveBalanceRead])
def year_ledger(
    applicant_id: int,
    year: int,
    db: Session = Depends(get_db),
) -> list[LeaveBalanceRead]:
    return [LeaveBalanceRead.model_validate(item) for item in get_year_ledger(db, applicant_id, year)]


@router.post("/balances/{balance_id}/carried-forward", response_model=LeaveBalanceRead)
def adjust_balance_carried_forward(
    balance_id: int,
    payload: CarriedForwardAdjustRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> LeaveBalanceRead:
    request.state.actor = "admin"
    request.state.actor_id = payload.adjusted_by
    balance = adjust_carried_forward(
        db,
        balance_id,
        new_value=payload.new_value,
        adjustment_type=payload.adjustment_type,
        reason=payload.reason,
        adjusted_by=payload.adjusted_by,
    )
    return LeaveBalanceRead.model_validate(balance)


@router.get("/balances/{balance_id}/adjustments", response_model=list[LeaveBalanceAdjustmentRead])
def balance_adjustments(balance_id: int, db: Session = Depends(get_db)) -> list[LeaveBalanceAdjustmentRead]:
    return [LeaveBalanceAdjustmentRead.model_validate(item) for item in list_balance_adjustments(db, balance_id)]


@router.get("/working-days", response_model=WorkingDaysRead)
def working_days(
    start_date: date,
    end_date: date,
    institution_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> WorkingDaysRead:
    if end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be greater than or equal to start_date",
        )
    holidays = list_holiday_dates(db, institution_id, start_date, end_date)
    span = compute_working_days_excluding_holidays(start_date, end_date, holidays)
    return WorkingDaysRead(
        start_date=start_date,
        end_date=end_date,
        total_calendar_days=span.total_calendar_days,
        holidays_in_range=span.holidays_in_range,
        working_days=span.working_days,
    )

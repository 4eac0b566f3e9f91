from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from staff_attendance.db import get_db
from staff_attendance.errors import ApiError
from staff_attendance.models import OvertimeStatus
from staff_attendance.schemas import OfficerPayrollSummaryRead, OvertimeRequestRead
from staff_attendance.services.overtime import list_overtime_requests
from staff_attendance.services.payroll import build_officer_payroll_summary
from staff_attendance.services.periods import parse_month

router = APIRouter(prefix="/payroll", tags=["payroll"])


def _parse_month_or_422(month: str) -> tuple[int, int]:
    try:
        return parse_month(month)
    except ValueError as exc:
        raise ApiError(status_code=422, code="INVALID_MONTH", message=str(exc)) from exc


@router.get("/officers/{officer_id}/summary", response_model=OfficerPayrollSummaryRead)
def officer_summary(
    officer_id: int,
    month: str = Query(min_length=7, max_length=7),
    db: Session = Depends(get_db),
) -> OfficerPayrollSummaryRead:
    year, month_value = _parse_month_or_422(month)
    summary = build_officer_payroll_summary(db, officer_id, year, month_value)
    return OfficerPayrollSummaryRead.model_validate(summary)


@router.get("/officers/{officer_id}/overtime", response_model=list[OvertimeRequestRead])
def officer_overtime(
    officer_id: int,
    month: str = Query(min_length=7, max_length=7),
    status_filter: OvertimeStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[OvertimeRequestRead]:
    year, month_value = _parse_month_or_422(month)
    requests = list_overtime_requests(
        db,
        officer_id=officer_id,
        year=year,
        month=month_value,
        status=status_filter,
    )
    return [OvertimeRequestRead.model_validate(item) for item in requests]

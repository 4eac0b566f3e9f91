from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from staff_attendance.models import (
    Officer,
    OfficerAttendance,
    OvertimeRequest,
    OvertimeSource,
    OvertimeStatus,
)
from staff_attendance.services.periods import month_bounds
from staff_attendance.settings import get_settings

logger = logging.getLogger("staff_attendance.overtime")

OVERTIME_TOLERANCE_MINUTES = 15
OVERTIME_TOLERANCE_HOURS = OVERTIME_TOLERANCE_MINUTES / 60
AUTO_OVERTIME_REASON = "Auto-generated: Extended work hours beyond tolerance"


@dataclass(frozen=True, slots=True)
class OvertimeDerivation:
    hours_worked: float
    overtime_hours: float
    has_overtime: bool


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def derive_overtime(hours_worked: float, normal_working_hours: float) -> OvertimeDerivation:
    if hours_worked < 0:
        raise ValueError("hours_worked must be >= 0")
    overtime_hours = max(0.0, hours_worked - normal_working_hours - OVERTIME_TOLERANCE_HOURS)
    return OvertimeDerivation(
        hours_worked=hours_worked,
        overtime_hours=overtime_hours,
        has_overtime=overtime_hours > 0,
    )


def resolve_overtime_rate(officer: Officer) -> float:
    if officer.overtime_rate_multiplier:
        return float(officer.overtime_rate_multiplier)
    return get_settings().default_overtime_rate_multiplier


def calculate_overtime_pay(requested_hours: float, hourly_rate: float, overtime_rate: float) -> float:
    return round2(requested_hours * hourly_rate * overtime_rate)


def create_auto_overtime_request(
    db: Session,
    *,
    officer: Officer,
    attendance: OfficerAttendance,
    overtime_hours: float,
) -> OvertimeRequest:
    existing = db.scalar(
        select(OvertimeRequest).where(OvertimeRequest.attendance_id == attendance.id)
    )
    if existing is not None:
        return existing

    requested_hours = round2(overtime_hours)
    overtime_rate = resolve_overtime_rate(officer)
    request = OvertimeRequest(
        officer_id=officer.id,
        user_id=officer.user_id,
        institution_id=attendance.institution_id,
        request_date=attendance.attendance_date,
        requested_hours=requested_hours,
        reason=AUTO_OVERTIME_REASON,
        status=OvertimeStatus.PENDING,
        overtime_rate=overtime_rate,
        calculated_pay=calculate_overtime_pay(requested_hours, officer.hourly_rate or 0.0, overtime_rate),
        source=OvertimeSource.AUTO_GENERATED,
        attendance_id=attendance.id,
    )
    db.add(request)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(request)
    logger.info(
        "overtime_request_created",
        extra={
            "officer_id": officer.id,
            "attendance_id": attendance.id,
            "requested_hours": requested_hours,
            "calculated_pay": request.calculated_pay,
        },
    )
    return request


def list_overtime_requests(
    db: Session,
    *,
    officer_id: int | None = None,
    year: int | None = None,
    month: int | None = None,
    status: OvertimeStatus | None = None,
) -> list[OvertimeRequest]:
    stmt = select(OvertimeRequest).order_by(OvertimeRequest.request_date.asc(), OvertimeRequest.id.asc())
    if officer_id is not None:
        stmt = stmt.where(OvertimeRequest.officer_id == officer_id)
    if status is not None:
        stmt = stmt.where(OvertimeRequest.status == status)
    if year is not None and month is not None:
        start, end = month_bounds(year, month)
        stmt = stmt.where(
            OvertimeRequest.request_date >= start,
            OvertimeRequest.request_date <= end,
        )
    return list(db.scalars(stmt).all())

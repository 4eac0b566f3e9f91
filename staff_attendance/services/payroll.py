from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from staff_attendance.errors import ApiError
from staff_attendance.models import (
    LeaveBalance,
    Officer,
    OfficerAttendance,
    OvertimeStatus,
)
from staff_attendance.services.overtime import list_overtime_requests, round2
from staff_attendance.services.periods import month_bounds
from staff_attendance.settings import get_settings


@dataclass(frozen=True)
class MonthlyAttendanceSummary:
    days_present: int
    days_completed: int
    validated_check_ins: int
    unverified_check_ins: int
    gps_skipped_check_ins: int
    total_hours_worked: float
    total_overtime_hours: float


@dataclass(frozen=True)
class OfficerPayrollSummary:
    officer_id: int
    year: int
    month: int
    monthly_salary: float
    per_day_salary: float
    lop_days: float
    lop_deduction: float
    approved_overtime_pay: float
    pending_overtime_pay: float
    net_salary: float
    attendance: MonthlyAttendanceSummary


def calculate_per_day_salary(monthly_salary: float, standard_days: int | None = None) -> float:
    days = standard_days if standard_days is not None else get_settings().payroll_standard_days_per_month
    if days <= 0:
        raise ValueError("standard_days must be > 0")
    if monthly_salary <= 0:
        return 0.0
    return round2(monthly_salary / days)


def calculate_lop_deduction(monthly_salary: float, lop_days: float, standard_days: int | None = None) -> float:
    if lop_days < 0:
        raise ValueError("lop_days must be >= 0")
    return round2(calculate_per_day_salary(monthly_salary, standard_days) * lop_days)


def summarize_monthly_attendance(records: Iterable[OfficerAttendance]) -> MonthlyAttendanceSummary:
    days_present = 0
    days_completed = 0
    validated = 0
    unverified = 0
    skipped = 0
    total_hours = 0.0
    total_overtime = 0.0

    for record in records:
        if record.check_in_time is None:
            continue
        days_present += 1
        if record.check_out_time is not None:
            days_completed += 1
        if record.check_in_validated is None:
            skipped += 1
        elif record.check_in_validated:
            validated += 1
        else:
            unverified += 1
        total_hours += record.total_hours_worked or 0.0
        total_overtime += record.overtime_hours or 0.0

    return MonthlyAttendanceSummary(
        days_present=days_present,
        days_completed=days_completed,
        validated_check_ins=validated,
        unverified_check_ins=unverified,
        gps_skipped_check_ins=skipped,
        total_hours_worked=round2(total_hours),
        total_overtime_hours=round2(total_overtime),
    )


def build_officer_payroll_summary(db: Session, officer_id: int, year: int, month: int) -> OfficerPayrollSummary:
    officer = db.get(Officer, officer_id)
    if officer is None:
        raise ApiError(status_code=404, code="OFFICER_NOT_FOUND", message="Officer not found.")

    start, end = month_bounds(year, month)
    records = db.scalars(
        select(OfficerAttendance).where(
            OfficerAttendance.officer_id == officer_id,
            OfficerAttendance.attendance_date >= start,
            OfficerAttendance.attendance_date <= end,
        )
    ).all()
    attendance = summarize_monthly_attendance(records)

    # Missing balance row means no leave was approved for the month.
    balance = db.scalar(
        select(LeaveBalance).where(
            LeaveBalance.applicant_id == officer_id,
            LeaveBalance.year == year,
            LeaveBalance.month == month,
        )
    )
    lop_days = balance.lop_days if balance is not None else 0.0

    approved_pay = 0.0
    pending_pay = 0.0
    for request in list_overtime_requests(db, officer_id=officer_id, year=year, month=month):
        if request.status == OvertimeStatus.APPROVED:
            approved_pay += request.calculated_pay
        elif request.status == OvertimeStatus.PENDING:
            pending_pay += request.calculated_pay

    monthly_salary = officer.monthly_salary or 0.0
    lop_deduction = calculate_lop_deduction(monthly_salary, lop_days)
    return OfficerPayrollSummary(
        officer_id=officer_id,
        year=year,
        month=month,
        monthly_salary=monthly_salary,
        per_day_salary=calculate_per_day_salary(monthly_salary),
        lop_days=lop_days,
        lop_deduction=lop_deduction,
        approved_overtime_pay=round2(approved_pay),
        pending_overtime_pay=round2(pending_pay),
        net_salary=round2(max(0.0, monthly_salary - lop_deduction) + approved_pay),
        attendance=attendance,
    )

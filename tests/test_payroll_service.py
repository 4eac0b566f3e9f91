from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from staff_attendance.db import Base
from staff_attendance.errors import ApiError
from staff_attendance.models import (
    AttendanceStatus,
    Institution,
    LeaveBalance,
    Officer,
    OfficerAttendance,
    OvertimeRequest,
    OvertimeSource,
    OvertimeStatus,
)
from staff_attendance.services.payroll import (
    build_officer_payroll_summary,
    calculate_lop_deduction,
    calculate_per_day_salary,
    summarize_monthly_attendance,
)


def _attendance(day: int, *, validated: bool | None, hours: float | None, overtime: float | None = 0.0):  # type: ignore[no-untyped-def]
    checked_out = hours is not None
    return OfficerAttendance(
        officer_id=10,
        institution_id=1,
        attendance_date=date(2026, 3, day),
        check_in_time=datetime(2026, 3, day, 3, 30, tzinfo=timezone.utc),
        check_in_validated=validated,
        check_out_time=datetime(2026, 3, day, 12, 0, tzinfo=timezone.utc) if checked_out else None,
        total_hours_worked=hours,
        overtime_hours=overtime if checked_out else None,
        status=AttendanceStatus.CHECKED_OUT if checked_out else AttendanceStatus.CHECKED_IN,
    )


class PayrollCalculationTests(unittest.TestCase):
    def test_per_day_salary_uses_thirty_day_month(self) -> None:
        self.assertEqual(calculate_per_day_salary(30000), 1000.0)

    def test_per_day_salary_rounds_half_up(self) -> None:
        self.assertEqual(calculate_per_day_salary(25000), 833.33)

    def test_zero_salary_has_no_per_day_value(self) -> None:
        self.assertEqual(calculate_per_day_salary(0), 0.0)

    def test_lop_deduction(self) -> None:
        self.assertEqual(calculate_lop_deduction(30000, 2.5), 2500.0)

    def test_negative_lop_days_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            calculate_lop_deduction(30000, -1)

    def test_invalid_standard_days_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            calculate_per_day_salary(30000, standard_days=0)

    def test_summarize_monthly_attendance(self) -> None:
        summary = summarize_monthly_attendance(
            [
                _attendance(2, validated=True, hours=8.5, overtime=0.25),
                _attendance(3, validated=False, hours=9.0, overtime=0.75),
                _attendance(4, validated=None, hours=None),
            ]
        )

        self.assertEqual(summary.days_present, 3)
        self.assertEqual(summary.days_completed, 2)
        self.assertEqual(summary.validated_check_ins, 1)
        self.assertEqual(summary.unverified_check_ins, 1)
        self.assertEqual(summary.gps_skipped_check_ins, 1)
        self.assertEqual(summary.total_hours_worked, 17.5)
        self.assertEqual(summary.total_overtime_hours, 1.0)


class OfficerPayrollSummaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=True)()

    def tearDown(self) -> None:
        self.db.close()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_summary_combines_attendance_lop_and_overtime(self) -> None:
        self.db.add_all(
            [
                Institution(id=1, name="Central"),
                Officer(id=10, full_name="Asha Rao", hourly_rate=200.0, monthly_salary=30000.0, is_active=True),
            ]
        )
        self.db.flush()
        first_day = _attendance(2, validated=True, hours=10.75, overtime=2.5)
        second_day = _attendance(3, validated=True, hours=8.0)
        self.db.add_all([first_day, second_day])
        self.db.flush()
        self.db.add_all(
            [
                LeaveBalance(applicant_id=10, year=2026, month=3, monthly_credit=1.0, lop_days=2.0),
                OvertimeRequest(
                    officer_id=10,
                    institution_id=1,
                    request_date=date(2026, 3, 2),
                    requested_hours=2.5,
                    status=OvertimeStatus.APPROVED,
                    overtime_rate=1.5,
                    calculated_pay=750.0,
                    source=OvertimeSource.AUTO_GENERATED,
                    attendance_id=first_day.id,
                ),
                OvertimeRequest(
                    officer_id=10,
                    institution_id=1,
                    request_date=date(2026, 3, 20),
                    requested_hours=1.0,
                    status=OvertimeStatus.PENDING,
                    overtime_rate=1.5,
                    calculated_pay=300.0,
                    source=OvertimeSource.MANUAL,
                ),
            ]
        )
        self.db.commit()

        summary = build_officer_payroll_summary(self.db, 10, 2026, 3)

        self.assertEqual(summary.per_day_salary, 1000.0)
        self.assertEqual(summary.lop_days, 2.0)
        self.assertEqual(summary.lop_deduction, 2000.0)
        self.assertEqual(summary.approved_overtime_pay, 750.0)
        self.assertEqual(summary.pending_overtime_pay, 300.0)
        self.assertEqual(summary.net_salary, 28750.0)
        self.assertEqual(summary.attendance.days_present, 2)
        self.assertEqual(summary.attendance.total_overtime_hours, 2.5)

    def test_summary_without_balance_has_no_lop(self) -> None:
        self.db.add(Officer(id=12, full_name="Ravi", monthly_salary=15000.0, is_active=True))
        self.db.commit()

        summary = build_officer_payroll_summary(self.db, 12, 2026, 3)

        self.assertEqual(summary.lop_days, 0.0)
        self.assertEqual(summary.net_salary, 15000.0)
        self.assertEqual(summary.attendance.days_present, 0)

    def test_unknown_officer_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            build_officer_payroll_summary(self.db, 999, 2026, 3)
        self.assertEqual(ctx.exception.code, "OFFICER_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()

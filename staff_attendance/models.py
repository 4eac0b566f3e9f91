from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staff_attendance.db import Base


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [str(member.value) for member in enum_cls]


class AttendanceStatus(str, enum.Enum):
    NOT_CHECKED_IN = "not_checked_in"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"


class OvertimeStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OvertimeSource(str, enum.Enum):
    AUTO_GENERATED = "auto_generated"
    MANUAL = "manual"


class LeaveType(str, enum.Enum):
    SICK = "sick"
    CASUAL = "casual"
    EARNED = "earned"


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class LopMode(str, enum.Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"


class LeaveAdjustmentType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    CORRECTION = "correction"


class AuditActorType(str, enum.Enum):
    ADMIN = "ADMIN"
    OFFICER = "OFFICER"
    SYSTEM = "SYSTEM"


class Institution(Base):
    __tablename__ = "institutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    gps_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    gps_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    attendance_radius_m: Mapped[int | None] = mapped_column(Integer, nullable=True)
    check_in_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    check_out_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    normal_working_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    attendance_records: Mapped[list[OfficerAttendance]] = relationship(back_populates="institution")
    holidays: Mapped[list[Holiday]] = relationship(back_populates="institution")


class Officer(Base):
    __tablename__ = "officers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    institution_id: Mapped[int | None] = mapped_column(
        ForeignKey("institutions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    overtime_rate_multiplier: Mapped[float | None] = mapped_column(Float, nullable=True)
    monthly_salary: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    attendance_records: Mapped[list[OfficerAttendance]] = relationship(back_populates="officer")
    overtime_requests: Mapped[list[OvertimeRequest]] = relationship(back_populates="officer")
    leave_applications: Mapped[list[LeaveApplication]] = relationship(back_populates="applicant")
    leave_balances: Mapped[list[LeaveBalance]] = relationship(back_populates="applicant")


class OfficerAttendance(Base):
    __tablename__ = "officer_attendance"
    __table_args__ = (
        UniqueConstraint(
            "officer_id",
            "institution_id",
            "attendance_date",
            name="uq_officer_attendance_officer_institution_date",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    officer_id: Mapped[int] = mapped_column(
        ForeignKey("officers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    institution_id: Mapped[int] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    check_in_distance_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_validated: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    check_out_distance_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_validated: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    total_hours_worked: Mapped[float | None] = mapped_column(Float, nullable=True)
    overtime_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    overtime_auto_generated: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(AttendanceStatus, name="attendance_status", values_callable=_enum_values),
        nullable=False,
        default=AttendanceStatus.NOT_CHECKED_IN,
    )
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    officer: Mapped[Officer] = relationship(back_populates="attendance_records")
    institution: Mapped[Institution] = relationship(back_populates="attendance_records")
    overtime_request: Mapped[OvertimeRequest | None] = relationship(
        back_populates="attendance",
        uselist=False,
    )


class OvertimeRequest(Base):
    __tablename__ = "overtime_requests"
    __table_args__ = (
        UniqueConstraint("attendance_id", name="uq_overtime_requests_attendance"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    officer_id: Mapped[int] = mapped_column(
        ForeignKey("officers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    institution_id: Mapped[int] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    request_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    requested_hours: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[OvertimeStatus] = mapped_column(
        Enum(OvertimeStatus, name="overtime_status", values_callable=_enum_values),
        nullable=False,
        default=OvertimeStatus.PENDING,
    )
    overtime_rate: Mapped[float] = mapped_column(Float, nullable=False)
    calculated_pay: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[OvertimeSource] = mapped_column(
        Enum(OvertimeSource, name="overtime_source", values_callable=_enum_values),
        nullable=False,
        default=OvertimeSource.MANUAL,
    )
    attendance_id: Mapped[int | None] = mapped_column(
        ForeignKey("officer_attendance.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    officer: Mapped[Officer] = relationship(back_populates="overtime_requests")
    attendance: Mapped[OfficerAttendance | None] = relationship(back_populates="overtime_request")


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (
        UniqueConstraint("institution_id", "holiday_date", name="uq_holidays_institution_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL institution means a company-wide holiday.
    institution_id: Mapped[int | None] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    institution: Mapped[Institution | None] = relationship(back_populates="holidays")


class LeaveBalance(Base):
    __tablename__ = "leave_balances"
    __table_args__ = (
        UniqueConstraint("applicant_id", "year", "month", name="uq_leave_balances_applicant_year_month"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    applicant_id: Mapped[int] = mapped_column(
        ForeignKey("officers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_credit: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    carried_forward: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    additional_credit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    sick_leave_used: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    casual_leave_used: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    lop_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    balance_remaining: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    adjustment_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    adjusted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    applicant: Mapped[Officer] = relationship(back_populates="leave_balances")
    adjustments: Mapped[list[LeaveBalanceAdjustment]] = relationship(
        back_populates="balance",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_used(self) -> float:
        return (self.sick_leave_used or 0.0) + (self.casual_leave_used or 0.0)


class LeaveBalanceAdjustment(Base):
    __tablename__ = "leave_balance_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    leave_balance_id: Mapped[int] = mapped_column(
        ForeignKey("leave_balances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    applicant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    adjustment_type: Mapped[LeaveAdjustmentType] = mapped_column(
        Enum(LeaveAdjustmentType, name="leave_adjustment_type", values_callable=_enum_values),
        nullable=False,
    )
    previous_value: Mapped[float] = mapped_column(Float, nullable=False)
    new_value: Mapped[float] = mapped_column(Float, nullable=False)
    adjustment_amount: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    adjusted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    balance: Mapped[LeaveBalance] = relationship(back_populates="adjustments")


class LeaveApplication(Base):
    __tablename__ = "leave_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    applicant_id: Mapped[int] = mapped_column(
        ForeignKey("officers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    institution_id: Mapped[int | None] = mapped_column(
        ForeignKey("institutions.id", ondelete="SET NULL"),
        nullable=True,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        Enum(LeaveType, name="leave_type", values_callable=_enum_values),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_days: Mapped[float] = mapped_column(Float, nullable=False)
    holidays_excluded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    lop_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_lop: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lop_decision: Mapped[LopMode | None] = mapped_column(
        Enum(LopMode, name="lop_mode", values_callable=_enum_values),
        nullable=True,
    )
    status: Mapped[LeaveStatus] = mapped_column(
        Enum(LeaveStatus, name="leave_status", values_callable=_enum_values),
        nullable=False,
        default=LeaveStatus.PENDING,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decision_comment: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    applicant: Mapped[Officer] = relationship(back_populates="leave_applications")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

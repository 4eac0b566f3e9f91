from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from staff_attendance.models import (
    AttendanceStatus,
    LeaveAdjustmentType,
    LeaveStatus,
    LeaveType,
    LopMode,
    OvertimeSource,
    OvertimeStatus,
)


class AttendancePunchRequest(BaseModel):
    officer_id: int = Field(ge=1)
    institution_id: int = Field(ge=1)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    skip_gps: bool = False


class CheckInRequest(AttendancePunchRequest):
    pass


class CheckOutRequest(AttendancePunchRequest):
    normal_working_hours: float | None = Field(default=None, ge=0, le=24)


class DegradedStepRead(BaseModel):
    step: str
    error: str

    model_config = ConfigDict(from_attributes=True)


class AttendanceRecordRead(BaseModel):
    id: int
    officer_id: int
    institution_id: int
    attendance_date: date
    check_in_time: datetime | None
    check_in_latitude: float | None
    check_in_longitude: float | None
    check_in_address: str | None
    check_in_distance_meters: float | None
    check_in_validated: bool | None
    check_out_time: datetime | None
    check_out_latitude: float | None
    check_out_longitude: float | None
    check_out_address: str | None
    check_out_distance_meters: float | None
    check_out_validated: bool | None
    total_hours_worked: float | None
    overtime_hours: float | None
    overtime_auto_generated: bool
    status: AttendanceStatus
    notes: str | None

    model_config = ConfigDict(from_attributes=True)


class CheckInResponse(BaseModel):
    success: bool
    validated: bool | None
    distance: float
    record: AttendanceRecordRead | None = None
    degraded: list[DegradedStepRead] = Field(default_factory=list)


class CheckOutResponse(CheckInResponse):
    hours_worked: float
    overtime_hours: float


class GeofenceConfigRead(BaseModel):
    institution_id: int
    latitude: float | None
    longitude: float | None
    radius_m: float
    check_in_time: str
    check_out_time: str
    normal_working_hours: float
    gps_configured: bool


class OvertimeRequestRead(BaseModel):
    id: int
    officer_id: int
    institution_id: int
    request_date: date
    requested_hours: float
    reason: str | None
    status: OvertimeStatus
    overtime_rate: float
    calculated_pay: float
    source: OvertimeSource
    attendance_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaveApplicationCreate(BaseModel):
    applicant_id: int = Field(ge=1)
    institution_id: int | None = Field(default=None, ge=1)
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=2000)


class LeaveApplicationRead(BaseModel):
    id: int
    applicant_id: int
    institution_id: int | None
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: float
    holidays_excluded: int
    paid_days: float
    lop_days: float
    is_lop: bool
    lop_decision: LopMode | None
    status: LeaveStatus
    reason: str | None
    decided_by: str | None
    decided_at: datetime | None
    decision_comment: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaveDecisionRequest(BaseModel):
    decided_by: str = Field(min_length=1, max_length=255)
    comment: str | None = Field(default=None, max_length=1000)


class LeaveApproveRequest(LeaveDecisionRequest):
    lop_mode: LopMode | None = None
    paid_days_override: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_lop_decision(self) -> "LeaveApproveRequest":
        if self.lop_mode == LopMode.PARTIAL and self.paid_days_override is None:
            raise ValueError("paid_days_override is required for a partial LOP decision.")
        if self.lop_mode is None and self.paid_days_override is not None:
            raise ValueError("paid_days_override requires lop_mode.")
        return self


class LeaveBalanceRead(BaseModel):
    id: int
    applicant_id: int
    year: int
    month: int
    monthly_credit: float
    carried_forward: float
    additional_credit: float
    sick_leave_used: float
    casual_leave_used: float
    total_used: float
    lop_days: float
    balance_remaining: float
    adjustment_reason: str | None
    adjusted_at: datetime | None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CarriedForwardAdjustRequest(BaseModel):
    new_value: float = Field(ge=0)
    adjustment_type: LeaveAdjustmentType = LeaveAdjustmentType.CORRECTION
    reason: str = Field(min_length=1, max_length=1000)
    adjusted_by: str = Field(min_length=1, max_length=255)


class LeaveBalanceAdjustmentRead(BaseModel):
    id: int
    leave_balance_id: int
    applicant_id: int
    adjustment_type: LeaveAdjustmentType
    previous_value: float
    new_value: float
    adjustment_amount: float
    reason: str
    adjusted_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WorkingDaysRead(BaseModel):
    start_date: date
    end_date: date
    total_calendar_days: int
    holidays_in_range: int
    working_days: int


class MonthlyAttendanceSummaryRead(BaseModel):
    days_present: int
    days_completed: int
    validated_check_ins: int
    unverified_check_ins: int
    gps_skipped_check_ins: int
    total_hours_worked: float
    total_overtime_hours: float

    model_config = ConfigDict(from_attributes=True)


class OfficerPayrollSummaryRead(BaseModel):
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
    attendance: MonthlyAttendanceSummaryRead

    model_config = ConfigDict(from_attributes=True)

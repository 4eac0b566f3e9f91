from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from staff_attendance.db import get_db
from staff_attendance.errors import ApiError, api_error_from_failure
from staff_attendance.schemas import (
    AttendanceRecordRead,
    CheckInRequest,
    CheckInResponse,
    CheckOutRequest,
    CheckOutResponse,
    DegradedStepRead,
    GeofenceConfigRead,
)
from staff_attendance.services.attendance import (
    get_all_today_attendance,
    get_institution_monthly_attendance,
    get_officer_monthly_attendance,
    get_officer_today_attendance,
    record_check_in,
    record_check_out,
)
from staff_attendance.services.location import GeofenceConfig, get_institution_geofence_config

router = APIRouter(prefix="/attendance", tags=["attendance"])


def _require_geofence_config(db: Session, institution_id: int) -> GeofenceConfig:
    config = get_institution_geofence_config(db, institution_id)
    if config is None:
        raise ApiError(status_code=404, code="INSTITUTION_NOT_FOUND", message="Institution not found.")
    return config


def _month_records(loader, db: Session, entity_id: int, month: str):  # type: ignore[no-untyped-def]
    try:
        return loader(db, entity_id, month)
    except ValueError as exc:
        raise ApiError(status_code=422, code="INVALID_MONTH", message=str(exc)) from exc


def _degraded(items) -> list[DegradedStepRead]:  # type: ignore[no-untyped-def]
    return [DegradedStepRead(step=item.step, error=item.error) for item in items]


@router.post("/check-in", response_model=CheckInResponse)
def check_in(
    payload: CheckInRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> CheckInResponse:
    request.state.actor = "officer"
    request.state.actor_id = str(payload.officer_id)
    config = _require_geofence_config(db, payload.institution_id)
    result = record_check_in(
        db,
        officer_id=payload.officer_id,
        institution_id=payload.institution_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        config=config,
        skip_gps=payload.skip_gps,
    )
    request.state.degraded = [item.step for item in result.degraded] or None
    if not result.success:
        raise api_error_from_failure(result.error_code, result.error)

    request.state.attendance_id = result.record.id if result.record is not None else None
    return CheckInResponse(
        success=True,
        validated=result.validated,
        distance=result.distance,
        record=AttendanceRecordRead.model_validate(result.record) if result.record is not None else None,
        degraded=_degraded(result.degraded),
    )


@router.post("/check-out", response_model=CheckOutResponse)
def check_out(
    payload: CheckOutRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> CheckOutResponse:
    request.state.actor = "officer"
    request.state.actor_id = str(payload.officer_id)
    config = _require_geofence_config(db, payload.institution_id)
    result = record_check_out(
        db,
        officer_id=payload.officer_id,
        institution_id=payload.institution_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        config=config,
        normal_working_hours=payload.normal_working_hours,
        skip_gps=payload.skip_gps,
    )
    request.state.degraded = [item.step for item in result.degraded] or None
    if not result.success:
        raise api_error_from_failure(result.error_code, result.error)

    request.state.attendance_id = result.record.id if result.record is not None else None
    return CheckOutResponse(
        success=True,
        validated=result.validated,
        distance=result.distance,
        hours_worked=result.hours_worked,
        overtime_hours=result.overtime_hours,
        record=AttendanceRecordRead.model_validate(result.record) if result.record is not None else None,
        degraded=_degraded(result.degraded),
    )


@router.get("/officers/{officer_id}/today", response_model=AttendanceRecordRead | None)
def officer_today(
    officer_id: int,
    institution_id: int = Query(ge=1),
    db: Session = Depends(get_db),
) -> AttendanceRecordRead | None:
    record = get_officer_today_attendance(db, officer_id, institution_id)
    if record is None:
        return None
    return AttendanceRecordRead.model_validate(record)


@router.get("/officers/{officer_id}/monthly", response_model=list[AttendanceRecordRead])
def officer_monthly(
    officer_id: int,
    month: str = Query(min_length=7, max_length=7),
    db: Session = Depends(get_db),
) -> list[AttendanceRecordRead]:
    records = _month_records(get_officer_monthly_attendance, db, officer_id, month)
    return [AttendanceRecordRead.model_validate(item) for item in records]


@router.get("/institutions/{institution_id}/monthly", response_model=list[AttendanceRecordRead])
def institution_monthly(
    institution_id: int,
    month: str = Query(min_length=7, max_length=7),
    db: Session = Depends(get_db),
) -> list[AttendanceRecordRead]:
    records = _month_records(get_institution_monthly_attendance, db, institution_id, month)
    return [AttendanceRecordRead.model_validate(item) for item in records]


@router.get("/today", response_model=list[AttendanceRecordRead])
def all_today(db: Session = Depends(get_db)) -> list[AttendanceRecordRead]:
    return [AttendanceRecordRead.model_validate(item) for item in get_all_today_attendance(db)]


@router.get("/institutions/{institution_id}/geofence", response_model=GeofenceConfigRead)
def institution_geofence(institution_id: int, db: Session = Depends(get_db)) -> GeofenceConfigRead:
    config = _require_geofence_config(db, institution_id)
    return GeofenceConfigRead(
        institution_id=config.institution_id,
        latitude=config.latitude,
        longitude=config.longitude,
        radius_m=config.radius_m,
        check_in_time=config.check_in_time,
        check_out_time=config.check_out_time,
        normal_working_hours=config.normal_working_hours,
        gps_configured=config.has_coordinate,
    )

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from staff_attendance.models import AttendanceStatus, Officer, OfficerAttendance
from staff_attendance.services.geocoding import reverse_geocode
from staff_attendance.services.location import GeofenceCheck, GeofenceConfig, evaluate_geofence
from staff_attendance.services.outcomes import (
    CheckInResult,
    CheckOutResult,
    DegradedStep,
    run_best_effort,
)
from staff_attendance.services.overtime import create_auto_overtime_request, derive_overtime, round2
from staff_attendance.services.periods import local_day, month_bounds, normalize_ts, parse_month

logger = logging.getLogger("staff_attendance.attendance")

Geocoder = Callable[[float, float], str | None]

_NATURAL_KEY = ("officer_id", "institution_id", "attendance_date")
_CHECK_IN_COLUMNS = (
    "check_in_time",
    "check_in_latitude",
    "check_in_longitude",
    "check_in_address",
    "check_in_distance_meters",
    "check_in_validated",
    "status",
    "updated_at",
)


class _PositionRejected(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _evaluate_position(
    config: GeofenceConfig,
    latitude: float | None,
    longitude: float | None,
    skip_gps: bool,
) -> GeofenceCheck | None:
    if skip_gps:
        return None
    if latitude is None or longitude is None:
        raise _PositionRejected("LOCATION_REQUIRED", "Latitude and longitude are required unless GPS is skipped.")
    if not config.has_coordinate:
        raise _PositionRejected(
            "GPS_NOT_CONFIGURED",
            "Institution GPS location is not configured. Retry with GPS skipped.",
        )
    return evaluate_geofence(config, latitude, longitude)


def _lookup_address(
    geocoder: Geocoder | None,
    check: GeofenceCheck | None,
    latitude: float | None,
    longitude: float | None,
    *,
    degraded: list[DegradedStep],
    context: dict[str, Any],
) -> str | None:
    if check is None:
        return None
    return run_best_effort(
        "reverse_geocode",
        geocoder or reverse_geocode,
        latitude,
        longitude,
        degraded=degraded,
        logger=logger,
        context=context,
    )


def _resolve_active_officer(db: Session, officer_id: int) -> Officer | None:
    officer = db.get(Officer, officer_id)
    if officer is None or not officer.is_active:
        return None
    return officer


def _load_day_record(
    db: Session,
    *,
    officer_id: int,
    institution_id: int,
    day: date,
) -> OfficerAttendance | None:
    return db.scalar(
        select(OfficerAttendance)
        .where(
            OfficerAttendance.officer_id == officer_id,
            OfficerAttendance.institution_id == institution_id,
            OfficerAttendance.attendance_date == day,
        )
        .execution_options(populate_existing=True)
    )


def _check_in_upsert(db: Session, values: dict[str, Any]):  # type: ignore[no-untyped-def]
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        stmt = postgresql.insert(OfficerAttendance).values(**values)
    elif dialect_name == "sqlite":
        stmt = sqlite.insert(OfficerAttendance).values(**values)
    else:
        raise RuntimeError(f"attendance upsert is not supported on {dialect_name}")

    # A finished day is never reopened; the conflict update is skipped instead.
    return stmt.on_conflict_do_update(
        index_elements=list(_NATURAL_KEY),
        set_={column: stmt.excluded[column] for column in _CHECK_IN_COLUMNS},
        where=OfficerAttendance.status != AttendanceStatus.CHECKED_OUT,
    )


def record_check_in(
    db: Session,
    *,
    officer_id: int,
    institution_id: int,
    latitude: float | None,
    longitude: float | None,
    config: GeofenceConfig,
    skip_gps: bool = False,
    now_utc: datetime | None = None,
    geocoder: Geocoder | None = None,
) -> CheckInResult:
    now = normalize_ts(now_utc)
    day = local_day(now)
    context: dict[str, Any] = {"officer_id": officer_id, "institution_id": institution_id, "date": day.isoformat()}

    try:
        officer = _resolve_active_officer(db, officer_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("check_in_store_failed", extra=context)
        return CheckInResult(success=False, validated=None, distance=0.0, error=str(exc), error_code="STORE_ERROR")

    if officer is None:
        return CheckInResult(
            success=False,
            validated=None,
            distance=0.0,
            error="Officer not found or inactive.",
            error_code="OFFICER_NOT_FOUND",
        )

    try:
        check = _evaluate_position(config, latitude, longitude, skip_gps)
    except _PositionRejected as exc:
        return CheckInResult(success=False, validated=None, distance=0.0, error=exc.message, error_code=exc.code)

    degraded: list[DegradedStep] = []
    address = _lookup_address(geocoder, check, latitude, longitude, degraded=degraded, context=context)
    validated = check.validated if check is not None else None
    distance = check.distance_m if check is not None else 0.0

    values: dict[str, Any] = {
        "officer_id": officer_id,
        "institution_id": institution_id,
        "attendance_date": day,
        "check_in_time": now,
        "check_in_latitude": latitude if check is not None else None,
        "check_in_longitude": longitude if check is not None else None,
        "check_in_address": address,
        "check_in_distance_meters": distance if check is not None else None,
        "check_in_validated": validated,
        "status": AttendanceStatus.CHECKED_IN,
        "updated_at": now,
    }
    try:
        db.execute(_check_in_upsert(db, values))
        db.commit()
        record = _load_day_record(db, officer_id=officer_id, institution_id=institution_id, day=day)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("check_in_store_failed", extra=context)
        return CheckInResult(
            success=False,
            validated=validated,
            distance=distance,
            error=str(exc),
            error_code="STORE_ERROR",
            degraded=degraded,
        )

    if record is None or record.status != AttendanceStatus.CHECKED_IN:
        return CheckInResult(
            success=False,
            validated=validated,
            distance=distance,
            record=record,
            error="Attendance for today is already checked out.",
            error_code="ALREADY_CHECKED_OUT",
            degraded=degraded,
        )

    logger.info(
        "check_in_recorded",
        extra={
            **context,
            "attendance_id": record.id,
            "validated": validated,
            "distance_m": distance,
            "skip_gps": skip_gps,
        },
    )
    return CheckInResult(
        success=True,
        validated=validated,
        distance=distance,
        record=record,
        degraded=degraded,
    )


def record_check_out(
    db: Session,
    *,
    officer_id: int,
    institution_id: int,
    latitude: float | None,
    longitude: float | None,
    config: GeofenceConfig,
    normal_working_hours: float | None = None,
    skip_gps: bool = False,
    now_utc: datetime | None = None,
    geocoder: Geocoder | None = None,
) -> CheckOutResult:
    now = normalize_ts(now_utc)
    day = local_day(now)
    context: dict[str, Any] = {"officer_id": officer_id, "institution_id": institution_id, "date": day.isoformat()}

    try:
        officer = _resolve_active_officer(db, officer_id)
        existing = (
            _load_day_record(db, officer_id=officer_id, institution_id=institution_id, day=day)
            if officer is not None
            else None
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("check_out_store_failed", extra=context)
        return CheckOutResult(success=False, validated=None, distance=0.0, error=str(exc), error_code="STORE_ERROR")

    if officer is None:
        return CheckOutResult(
            success=False,
            validated=None,
            distance=0.0,
            error="Officer not found or inactive.",
            error_code="OFFICER_NOT_FOUND",
        )

    if existing is None or existing.status != AttendanceStatus.CHECKED_IN or existing.check_in_time is None:
        return CheckOutResult(
            success=False,
            validated=None,
            distance=0.0,
            error="No check-in record found for today",
            error_code="CHECKIN_REQUIRED",
        )

    elapsed = now - normalize_ts(existing.check_in_time)
    if elapsed < timedelta(0):
        logger.error(
            "check_out_before_check_in",
            extra={**context, "attendance_id": existing.id, "elapsed_seconds": elapsed.total_seconds()},
        )
        return CheckOutResult(
            success=False,
            validated=None,
            distance=0.0,
            error="Check-out time is earlier than the recorded check-in time.",
            error_code="CHECKOUT_BEFORE_CHECKIN",
        )

    try:
        check = _evaluate_position(config, latitude, longitude, skip_gps)
    except _PositionRejected as exc:
        return CheckOutResult(success=False, validated=None, distance=0.0, error=exc.message, error_code=exc.code)

    baseline = config.normal_working_hours if normal_working_hours is None else normal_working_hours
    derivation = derive_overtime(elapsed.total_seconds() / 3600, baseline)
    hours_worked = round2(derivation.hours_worked)
    overtime_hours = round2(derivation.overtime_hours)

    degraded: list[DegradedStep] = []
    address = _lookup_address(geocoder, check, latitude, longitude, degraded=degraded, context=context)
    validated = check.validated if check is not None else None
    distance = check.distance_m if check is not None else 0.0

    stmt = (
        update(OfficerAttendance)
        .where(
            OfficerAttendance.id == existing.id,
            OfficerAttendance.status == AttendanceStatus.CHECKED_IN,
        )
        .values(
            check_out_time=now,
            check_out_latitude=latitude if check is not None else None,
            check_out_longitude=longitude if check is not None else None,
            check_out_address=address,
            check_out_distance_meters=distance if check is not None else None,
            check_out_validated=validated,
            total_hours_worked=hours_worked,
            overtime_hours=overtime_hours,
            overtime_auto_generated=derivation.has_overtime,
            status=AttendanceStatus.CHECKED_OUT,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        if result.rowcount == 0:
            db.rollback()
            return CheckOutResult(
                success=False,
                validated=None,
                distance=0.0,
                error="No check-in record found for today",
                error_code="CHECKIN_REQUIRED",
                degraded=degraded,
            )
        db.commit()
        record = db.get(OfficerAttendance, existing.id, populate_existing=True)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("check_out_store_failed", extra=context)
        return CheckOutResult(
            success=False,
            validated=validated,
            distance=distance,
            error=str(exc),
            error_code="STORE_ERROR",
            degraded=degraded,
        )

    if derivation.has_overtime and record is not None:
        run_best_effort(
            "overtime_request",
            create_auto_overtime_request,
            db,
            degraded=degraded,
            logger=logger,
            context={**context, "attendance_id": record.id},
            officer=officer,
            attendance=record,
            overtime_hours=derivation.overtime_hours,
        )

    logger.info(
        "check_out_recorded",
        extra={
            **context,
            "attendance_id": existing.id,
            "validated": validated,
            "distance_m": distance,
            "hours_worked": hours_worked,
            "overtime_hours": overtime_hours,
            "degraded_steps": [item.step for item in degraded],
        },
    )
    return CheckOutResult(
        success=True,
        validated=validated,
        distance=distance,
        hours_worked=hours_worked,
        overtime_hours=overtime_hours,
        record=record,
        degraded=degraded,
    )


def get_officer_today_attendance(
    db: Session,
    officer_id: int,
    institution_id: int,
    *,
    now_utc: datetime | None = None,
) -> OfficerAttendance | None:
    return _load_day_record(
        db,
        officer_id=officer_id,
        institution_id=institution_id,
        day=local_day(now_utc),
    )


def get_officer_monthly_attendance(db: Session, officer_id: int, month: str) -> list[OfficerAttendance]:
    start, end = month_bounds(*parse_month(month))
    return list(
        db.scalars(
            select(OfficerAttendance)
            .where(
                OfficerAttendance.officer_id == officer_id,
                OfficerAttendance.attendance_date >= start,
                OfficerAttendance.attendance_date <= end,
            )
            .order_by(OfficerAttendance.attendance_date.asc(), OfficerAttendance.id.asc())
        ).all()
    )


def get_institution_monthly_attendance(db: Session, institution_id: int, month: str) -> list[OfficerAttendance]:
    start, end = month_bounds(*parse_month(month))
    return list(
        db.scalars(
            select(OfficerAttendance)
            .where(
                OfficerAttendance.institution_id == institution_id,
                OfficerAttendance.attendance_date >= start,
                OfficerAttendance.attendance_date <= end,
            )
            .order_by(OfficerAttendance.attendance_date.asc(), OfficerAttendance.id.asc())
        ).all()
    )


def get_all_today_attendance(db: Session, *, now_utc: datetime | None = None) -> list[OfficerAttendance]:
    return list(
        db.scalars(
            select(OfficerAttendance)
            .where(OfficerAttendance.attendance_date == local_day(now_utc))
            .order_by(OfficerAttendance.check_in_time.asc(), OfficerAttendance.id.asc())
        ).all()
    )

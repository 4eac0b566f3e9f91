from __future__ import annotations

import math
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from staff_attendance.db import Base
from staff_attendance.models import (
    AttendanceStatus,
    Institution,
    Officer,
    OfficerAttendance,
    OvertimeRequest,
    OvertimeSource,
    OvertimeStatus,
)
from staff_attendance.services.attendance import (
    get_all_today_attendance,
    get_institution_monthly_attendance,
    get_officer_monthly_attendance,
    get_officer_today_attendance,
    record_check_in,
    record_check_out,
)
from staff_attendance.services.location import EARTH_RADIUS_M, get_institution_geofence_config

CENTER_LAT = 12.9716
CENTER_LON = 77.5946
# 03:30 UTC is 09:00 in Asia/Kolkata.
MORNING_UTC = datetime(2026, 3, 10, 3, 30, tzinfo=timezone.utc)


def _north_of_center(meters: float) -> float:
    return CENTER_LAT + math.degrees(meters / EARTH_RADIUS_M)


def _failing_geocoder(_lat: float, _lon: float) -> str:
    raise TimeoutError("geocoder timed out")


def _store_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is unavailable"))


class AttendanceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.db = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=True)()

        self.db.add_all(
            [
                Institution(id=1, name="Central", gps_latitude=CENTER_LAT, gps_longitude=CENTER_LON),
                Institution(id=2, name="Remote Site", gps_latitude=None, gps_longitude=None),
                Officer(id=10, full_name="Asha Rao", user_id="u-10", hourly_rate=200.0, is_active=True),
                Officer(id=11, full_name="Inactive", hourly_rate=100.0, is_active=False),
            ]
        )
        self.db.commit()
        self.config = get_institution_geofence_config(self.db, 1)
        self.remote_config = get_institution_geofence_config(self.db, 2)

    def tearDown(self) -> None:
        self.db.close()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _check_in(self, *, now_utc=MORNING_UTC, latitude=CENTER_LAT, longitude=CENTER_LON, **kwargs):  # type: ignore[no-untyped-def]
        return record_check_in(
            self.db,
            officer_id=kwargs.pop("officer_id", 10),
            institution_id=kwargs.pop("institution_id", 1),
            latitude=latitude,
            longitude=longitude,
            config=kwargs.pop("config", self.config),
            now_utc=now_utc,
            geocoder=kwargs.pop("geocoder", lambda _lat, _lon: "MG Road, Bengaluru"),
            **kwargs,
        )

    def _check_out(self, *, now_utc, latitude=CENTER_LAT, longitude=CENTER_LON, **kwargs):  # type: ignore[no-untyped-def]
        return record_check_out(
            self.db,
            officer_id=kwargs.pop("officer_id", 10),
            institution_id=kwargs.pop("institution_id", 1),
            latitude=latitude,
            longitude=longitude,
            config=kwargs.pop("config", self.config),
            now_utc=now_utc,
            geocoder=kwargs.pop("geocoder", lambda _lat, _lon: "MG Road, Bengaluru"),
            **kwargs,
        )

    def _attendance_count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(OfficerAttendance)) or 0

    def _overtime_count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(OvertimeRequest)) or 0

    def test_check_in_inside_radius_is_validated(self) -> None:
        result = self._check_in(latitude=_north_of_center(1500))

        self.assertTrue(result.success)
        self.assertTrue(result.validated)
        self.assertEqual(result.distance, 1500.0)
        self.assertEqual(result.record.status, AttendanceStatus.CHECKED_IN)
        self.assertEqual(result.record.check_in_distance_meters, 1500.0)
        self.assertTrue(result.record.check_in_validated)
        self.assertEqual(result.record.check_in_address, "MG Road, Bengaluru")
        self.assertEqual(result.record.attendance_date.isoformat(), "2026-03-10")
        self.assertEqual(result.degraded, [])

    def test_check_in_outside_radius_is_recorded_unvalidated(self) -> None:
        result = self._check_in(latitude=_north_of_center(1501))

        self.assertTrue(result.success)
        self.assertFalse(result.validated)
        self.assertEqual(result.record.check_in_distance_meters, 1501.0)
        self.assertFalse(result.record.check_in_validated)

    def test_repeated_check_in_same_day_keeps_one_record(self) -> None:
        first = self._check_in()
        second = self._check_in(now_utc=MORNING_UTC + timedelta(minutes=20), latitude=_north_of_center(200))

        self.assertTrue(first.success)
        self.assertTrue(second.success)
        self.assertEqual(self._attendance_count(), 1)
        self.assertEqual(second.record.id, first.record.id)
        self.assertEqual(second.record.check_in_distance_meters, 200.0)

    def test_local_day_decides_attendance_date(self) -> None:
        # 20:00 UTC on the 10th is already the 11th in Asia/Kolkata.
        result = self._check_in(now_utc=datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc))

        self.assertEqual(result.record.attendance_date.isoformat(), "2026-03-11")

    def test_skip_gps_stores_no_position(self) -> None:
        result = self._check_in(latitude=None, longitude=None, skip_gps=True)

        self.assertTrue(result.success)
        self.assertIsNone(result.validated)
        self.assertEqual(result.distance, 0.0)
        self.assertIsNone(result.record.check_in_latitude)
        self.assertIsNone(result.record.check_in_distance_meters)
        self.assertIsNone(result.record.check_in_validated)
        self.assertIsNone(result.record.check_in_address)

    def test_missing_position_requires_skip_gps(self) -> None:
        result = self._check_in(latitude=None, longitude=None)

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "LOCATION_REQUIRED")
        self.assertEqual(self._attendance_count(), 0)

    def test_institution_without_coordinate_requires_skip_gps(self) -> None:
        result = self._check_in(institution_id=2, config=self.remote_config)

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "GPS_NOT_CONFIGURED")

        skipped = self._check_in(institution_id=2, config=self.remote_config, skip_gps=True)
        self.assertTrue(skipped.success)

    def test_inactive_officer_is_rejected(self) -> None:
        result = self._check_in(officer_id=11)

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "OFFICER_NOT_FOUND")
        self.assertEqual(self._attendance_count(), 0)

    def test_geocode_failure_degrades_but_check_in_succeeds(self) -> None:
        result = self._check_in(geocoder=_failing_geocoder)

        self.assertTrue(result.success)
        self.assertIsNone(result.record.check_in_address)
        self.assertEqual([item.step for item in result.degraded], ["reverse_geocode"])
        self.assertIn("timed out", result.degraded[0].error)

    def test_check_out_without_check_in_fails_and_writes_nothing(self) -> None:
        result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=8))

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "CHECKIN_REQUIRED")
        self.assertEqual(self._attendance_count(), 0)

    def test_check_out_derives_hours_and_creates_overtime_request(self) -> None:
        self._check_in()

        result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=8, minutes=30))

        self.assertTrue(result.success)
        self.assertEqual(result.hours_worked, 8.5)
        self.assertEqual(result.overtime_hours, 0.25)
        self.assertEqual(result.record.status, AttendanceStatus.CHECKED_OUT)
        self.assertEqual(result.record.total_hours_worked, 8.5)
        self.assertTrue(result.record.overtime_auto_generated)

        request = self.db.scalar(select(OvertimeRequest))
        self.assertIsNotNone(request)
        self.assertEqual(request.attendance_id, result.record.id)
        self.assertEqual(request.status, OvertimeStatus.PENDING)
        self.assertEqual(request.source, OvertimeSource.AUTO_GENERATED)
        self.assertEqual(request.requested_hours, 0.25)
        self.assertEqual(request.overtime_rate, 1.5)
        self.assertEqual(request.calculated_pay, 75.0)

    def test_check_out_within_tolerance_creates_no_overtime(self) -> None:
        self._check_in()

        result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=8, minutes=14))

        self.assertTrue(result.success)
        self.assertEqual(result.overtime_hours, 0.0)
        self.assertFalse(result.record.overtime_auto_generated)
        self.assertEqual(self._overtime_count(), 0)

    def test_second_check_out_is_rejected(self) -> None:
        self._check_in()
        first = self._check_out(now_utc=MORNING_UTC + timedelta(hours=9))

        second = self._check_out(now_utc=MORNING_UTC + timedelta(hours=10))

        self.assertTrue(first.success)
        self.assertFalse(second.success)
        self.assertEqual(second.error_code, "CHECKIN_REQUIRED")
        self.assertEqual(self._overtime_count(), 1)
        record = self.db.scalar(select(OfficerAttendance))
        self.assertEqual(record.total_hours_worked, 9.0)

    def test_check_out_before_check_in_is_rejected(self) -> None:
        self._check_in()

        result = self._check_out(now_utc=MORNING_UTC - timedelta(minutes=5))

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "CHECKOUT_BEFORE_CHECKIN")
        record = self.db.scalar(select(OfficerAttendance))
        self.assertEqual(record.status, AttendanceStatus.CHECKED_IN)
        self.assertIsNone(record.check_out_time)

    def test_check_in_after_check_out_does_not_reopen_day(self) -> None:
        self._check_in()
        self._check_out(now_utc=MORNING_UTC + timedelta(hours=8))

        result = self._check_in(now_utc=MORNING_UTC + timedelta(hours=9))

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "ALREADY_CHECKED_OUT")
        self.assertEqual(result.record.status, AttendanceStatus.CHECKED_OUT)
        self.assertEqual(result.record.total_hours_worked, 8.0)

    def test_overtime_failure_does_not_fail_check_out(self) -> None:
        self._check_in()

        with patch(
            "staff_attendance.services.attendance.create_auto_overtime_request",
            side_effect=RuntimeError("overtime store unavailable"),
        ):
            result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=10))

        self.assertTrue(result.success)
        self.assertEqual(result.record.status, AttendanceStatus.CHECKED_OUT)
        self.assertEqual([item.step for item in result.degraded], ["overtime_request"])
        self.assertEqual(self._overtime_count(), 0)

    def _fail_statements(self, attribute: str):  # type: ignore[no-untyped-def]
        real_execute = self.db.execute

        def _execute(statement, *args, **kwargs):  # type: ignore[no-untyped-def]
            if getattr(statement, attribute, False):
                raise _store_down()
            return real_execute(statement, *args, **kwargs)

        return patch.object(self.db, "execute", side_effect=_execute)

    def test_check_in_read_failure_returns_store_error(self) -> None:
        with patch.object(self.db, "get", side_effect=_store_down()):
            result = self._check_in()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "STORE_ERROR")
        self.assertIn("database is unavailable", result.error)
        self.assertEqual(self._attendance_count(), 0)

    def test_check_in_write_failure_returns_store_error(self) -> None:
        with self._fail_statements("is_insert"):
            result = self._check_in()

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "STORE_ERROR")
        self.assertTrue(result.validated)
        self.assertEqual(self._attendance_count(), 0)

    def test_check_out_read_failure_returns_store_error(self) -> None:
        self._check_in()

        with patch.object(self.db, "get", side_effect=_store_down()):
            result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=8))

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "STORE_ERROR")
        record = self.db.scalar(select(OfficerAttendance))
        self.assertEqual(record.status, AttendanceStatus.CHECKED_IN)

    def test_check_out_write_failure_returns_store_error(self) -> None:
        self._check_in()

        with self._fail_statements("is_update"):
            result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=10))

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "STORE_ERROR")
        self.assertEqual(self._overtime_count(), 0)
        record = self.db.scalar(select(OfficerAttendance))
        self.assertEqual(record.status, AttendanceStatus.CHECKED_IN)
        self.assertIsNone(record.check_out_time)

    def test_explicit_normal_hours_override_institution(self) -> None:
        self._check_in()

        result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=7), normal_working_hours=6.0)

        self.assertEqual(result.overtime_hours, 0.75)

    def test_check_out_skip_gps(self) -> None:
        self._check_in()

        result = self._check_out(now_utc=MORNING_UTC + timedelta(hours=4), latitude=None, longitude=None, skip_gps=True)

        self.assertTrue(result.success)
        self.assertIsNone(result.validated)
        self.assertIsNone(result.record.check_out_validated)
        self.assertIsNone(result.record.check_out_distance_meters)

    def test_queries(self) -> None:
        self._check_in()
        self._check_in(now_utc=MORNING_UTC + timedelta(days=1))
        self._check_in(now_utc=MORNING_UTC + timedelta(days=25))

        today = get_officer_today_attendance(self.db, 10, 1, now_utc=MORNING_UTC)
        march = get_officer_monthly_attendance(self.db, 10, "2026-03")
        april = get_officer_monthly_attendance(self.db, 10, "2026-04")
        institution = get_institution_monthly_attendance(self.db, 1, "2026-03")
        everyone = get_all_today_attendance(self.db, now_utc=MORNING_UTC)

        self.assertIsNotNone(today)
        self.assertEqual(today.attendance_date.isoformat(), "2026-03-10")
        self.assertEqual([item.attendance_date.day for item in march], [10, 11])
        self.assertEqual([item.attendance_date.day for item in april], [4])
        self.assertEqual(len(institution), 2)
        self.assertEqual(len(everyone), 1)

    def test_invalid_month_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            get_officer_monthly_attendance(self.db, 10, "2026-13")


if __name__ == "__main__":
    unittest.main()

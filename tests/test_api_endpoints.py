import unittest
from collections.abc import Generator
from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from staff_attendance.db import Base, get_db
from staff_attendance.main import app
from staff_attendance.models import Holiday, Institution, Officer, OfficerAttendance


def override_get_db(session_factory):  # type: ignore[no-untyped-def]
    def _override() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    return _override


class ApiEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=True)
        with self.session_factory() as db:
            db.add_all(
                [
                    Institution(id=1, name="Central", gps_latitude=12.9716, gps_longitude=77.5946),
                    Officer(id=10, full_name="Asha Rao", institution_id=1, monthly_salary=30000.0, is_active=True),
                ]
            )
            db.flush()
            db.add(Holiday(institution_id=None, holiday_date=date(2026, 3, 4), name="Festival"))
            db.commit()
        app.dependency_overrides[get_db] = override_get_db(self.session_factory)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def test_check_in_without_gps_creates_record(self) -> None:
        response = self.client.post(
            "/attendance/check-in",
            json={"officer_id": 10, "institution_id": 1, "skip_gps": True},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertIsNone(body["validated"])
        self.assertEqual(body["distance"], 0.0)
        self.assertEqual(body["record"]["status"], "checked_in")
        self.assertIsNone(body["record"]["check_in_latitude"])
        self.assertEqual(body["degraded"], [])
        self.assertIn("X-Request-Id", response.headers)

        with self.session_factory() as db:
            self.assertEqual(db.query(OfficerAttendance).count(), 1)

    def test_check_in_outside_radius_is_recorded_unvalidated(self) -> None:
        response = self.client.post(
            "/attendance/check-in",
            json={"officer_id": 10, "institution_id": 1, "latitude": 13.0827, "longitude": 80.2707},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["validated"])
        self.assertGreater(body["distance"], 1500)

    def test_check_out_without_check_in_returns_error_envelope(self) -> None:
        response = self.client.post(
            "/attendance/check-out",
            json={"officer_id": 10, "institution_id": 1, "skip_gps": True},
            headers={"X-Request-Id": "req-checkout-1"},
        )

        self.assertEqual(response.status_code, 409)
        error = response.json()["error"]
        self.assertEqual(error["code"], "CHECKIN_REQUIRED")
        self.assertEqual(error["request_id"], "req-checkout-1")

    def test_unknown_institution_is_not_found(self) -> None:
        response = self.client.post(
            "/attendance/check-in",
            json={"officer_id": 10, "institution_id": 99, "skip_gps": True},
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "INSTITUTION_NOT_FOUND")

    def test_geofence_uses_defaults_for_unset_fields(self) -> None:
        response = self.client.get("/attendance/institutions/1/geofence")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["radius_m"], 1500)
        self.assertEqual(body["check_in_time"], "09:00")
        self.assertEqual(body["normal_working_hours"], 8.0)
        self.assertTrue(body["gps_configured"])

    def test_invalid_month_query_is_rejected(self) -> None:
        response = self.client.get("/attendance/officers/10/monthly", params={"month": "2026-13"})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INVALID_MONTH")

    def test_leave_submit_and_approve(self) -> None:
        submitted = self.client.post(
            "/leave/applications",
            json={
                "applicant_id": 10,
                "institution_id": 1,
                "leave_type": "casual",
                "start_date": "2026-03-03",
                "end_date": "2026-03-05",
                "reason": "Family function",
            },
        )

        self.assertEqual(submitted.status_code, 201)
        application = submitted.json()
        self.assertEqual(application["status"], "pending")
        self.assertEqual(application["total_days"], 2.0)
        self.assertEqual(application["holidays_excluded"], 1)

        approved = self.client.post(
            f"/leave/applications/{application['id']}/approve",
            json={"decided_by": "admin@example.com"},
        )

        self.assertEqual(approved.status_code, 200)
        body = approved.json()
        self.assertEqual(body["status"], "approved")
        self.assertEqual(body["paid_days"] + body["lop_days"], 2.0)

        second = self.client.post(
            f"/leave/applications/{application['id']}/reject",
            json={"decided_by": "admin@example.com"},
        )
        self.assertEqual(second.status_code, 409)
        self.assertEqual(second.json()["error"]["code"], "LEAVE_NOT_PENDING")

        listed = self.client.get("/leave/applications", params={"applicant_id": 10, "status": "approved"})
        self.assertEqual(listed.status_code, 200)
        self.assertEqual([item["id"] for item in listed.json()], [application["id"]])

    def test_partial_lop_without_override_is_a_validation_error(self) -> None:
        response = self.client.post(
            "/leave/applications/1/approve",
            json={"decided_by": "admin@example.com", "lop_mode": "partial"},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_carried_forward_adjustment_is_listed(self) -> None:
        balance = self.client.get("/leave/balances/10/2026/3")
        self.assertEqual(balance.status_code, 200)
        balance_body = balance.json()
        self.assertEqual(balance_body["carried_forward"], 2.0)
        self.assertEqual(balance_body["balance_remaining"], 3.0)

        adjusted = self.client.post(
            f"/leave/balances/{balance_body['id']}/carried-forward",
            json={"new_value": 5, "reason": "Opening balance migrated", "adjusted_by": "hr@example.com"},
        )
        self.assertEqual(adjusted.status_code, 200)
        self.assertEqual(adjusted.json()["balance_remaining"], 6.0)

        trail = self.client.get(f"/leave/balances/{balance_body['id']}/adjustments")
        self.assertEqual(trail.status_code, 200)
        entries = trail.json()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]["previous_value"], 2.0)
        self.assertEqual(entries[0]["adjustment_amount"], 3.0)
        self.assertEqual(entries[0]["adjustment_type"], "correction")

    def test_working_days_excludes_holidays(self) -> None:
        response = self.client.get(
            "/leave/working-days",
            params={"start_date": "2026-03-01", "end_date": "2026-03-07", "institution_id": 1},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total_calendar_days"], 7)
        self.assertEqual(body["holidays_in_range"], 1)
        self.assertEqual(body["working_days"], 6)

    def test_working_days_rejects_inverted_range(self) -> None:
        response = self.client.get(
            "/leave/working-days",
            params={"start_date": "2026-03-07", "end_date": "2026-03-01"},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "INVALID_DATE_RANGE")

    def test_payroll_summary(self) -> None:
        response = self.client.get("/payroll/officers/10/summary", params={"month": "2026-03"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["per_day_salary"], 1000.0)
        self.assertEqual(body["lop_days"], 0.0)
        self.assertEqual(body["net_salary"], 30000.0)
        self.assertEqual(body["attendance"]["days_present"], 0)

    def test_routing_errors_use_error_envelope(self) -> None:
        missing = self.client.get("/attendance/unknown-route", headers={"X-Request-Id": "req-404"})
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"]["code"], "NOT_FOUND")
        self.assertEqual(missing.json()["error"]["request_id"], "req-404")

        wrong_method = self.client.get("/attendance/check-in")
        self.assertEqual(wrong_method.status_code, 405)
        self.assertEqual(wrong_method.json()["error"]["code"], "METHOD_NOT_ALLOWED")

    def test_payroll_summary_for_unknown_officer(self) -> None:
        response = self.client.get("/payroll/officers/404/summary", params={"month": "2026-03"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "OFFICER_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()

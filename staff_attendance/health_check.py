#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from staff_attendance.settings import get_settings

EXPECTED_HEAD = "0002_leave_ledger"

REQUIRED_BY_REVISION = {
    "0001+": ["institutions", "officers", "officer_attendance", "overtime_requests", "audit_logs"],
    "0002+": ["holidays", "leave_balances", "leave_balance_adjustments", "leave_applications"],
}


def run(engine: Engine | None = None) -> dict:
    settings = get_settings()
    if engine is None:
        engine = create_engine(settings.database_url)

    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(inspect(conn).get_table_names())

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing = {
            rev: [table for table in required if table not in tables]
            for rev, required in REQUIRED_BY_REVISION.items()
        }
        missing = {rev: tables_ for rev, tables_ in missing.items() if tables_}
        add("missing_tables_by_revision", "warn" if missing else "ok", missing)

        if {"officer_attendance", "institutions"} <= tables:
            flag_mismatch = conn.execute(
                text(
                    """
                    select a.id
                    from officer_attendance a
                    join institutions i on i.id = a.institution_id
                    where a.check_in_validated = true
                      and a.check_in_distance_meters > coalesce(i.attendance_radius_m, :default_radius)
                    limit 20
                    """
                ),
                {"default_radius": settings.default_attendance_radius_m},
            ).fetchall()
            add(
                "attendance_validated_outside_radius",
                "fail" if flag_mismatch else "ok",
                {"sample_ids": [row[0] for row in flag_mismatch]},
            )

            negative_hours = conn.execute(
                text(
                    """
                    select id
                    from officer_attendance
                    where total_hours_worked < 0 or overtime_hours < 0
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_negative_hours",
                "fail" if negative_hours else "ok",
                {"sample_ids": [row[0] for row in negative_hours]},
            )

        if "leave_balances" in tables:
            drifted_balances = conn.execute(
                text(
                    """
                    select id
                    from leave_balances
                    where abs(
                        balance_remaining - case
                            when monthly_credit + additional_credit + carried_forward
                                - sick_leave_used - casual_leave_used > 0
                            then monthly_credit + additional_credit + carried_forward
                                - sick_leave_used - casual_leave_used
                            else 0
                        end
                    ) > 0.01
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "leave_balance_drift",
                "fail" if drifted_balances else "ok",
                {"sample_ids": [row[0] for row in drifted_balances]},
            )

        if "leave_applications" in tables:
            unbalanced_split = conn.execute(
                text(
                    """
                    select id
                    from leave_applications
                    where status = 'approved'
                      and abs(paid_days + lop_days - total_days) > 0.01
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "leave_split_mismatch",
                "fail" if unbalanced_split else "ok",
                {"sample_ids": [row[0] for row in unbalanced_split]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "institutions": {"id", "gps_latitude", "gps_longitude", "attendance_radius_m"},
    "officers": {"id", "hourly_rate", "overtime_rate_multiplier", "monthly_salary"},
    "officer_attendance": {
        "id",
        "officer_id",
        "institution_id",
        "attendance_date",
        "check_in_time",
        "check_in_distance_meters",
        "check_in_validated",
        "check_out_time",
        "total_hours_worked",
        "overtime_hours",
        "status",
    },
    "overtime_requests": {"id", "attendance_id", "requested_hours", "calculated_pay", "source"},
    "holidays": {"id", "institution_id", "holiday_date"},
    "leave_balances": {"id", "applicant_id", "year", "month", "carried_forward", "balance_remaining", "version_id"},
    "leave_applications": {"id", "applicant_id", "total_days", "paid_days", "lop_days", "status"},
    "alembic_version": {"version_num"},
}

# Idempotent writes rely on these; a missing one would allow duplicates.
REQUIRED_UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {
    "officer_attendance": ("officer_id", "institution_id", "attendance_date"),
    "overtime_requests": ("attendance_id",),
    "leave_balances": ("applicant_id", "year", "month"),
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "attendance_status": {"not_checked_in", "checked_in", "checked_out"},
    "leave_status": {"pending", "approved", "rejected", "cancelled"},
}


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except (SQLAlchemyError, KeyError) as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, unique_columns in REQUIRED_UNIQUE_COLUMNS.items():
        try:
            constraints = inspector.get_unique_constraints(table_name) or []
        except (SQLAlchemyError, KeyError, NotImplementedError) as exc:
            warnings.append(f"UNIQUE_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue

        found = {tuple(item.get("column_names") or ()) for item in constraints}
        if tuple(unique_columns) not in found:
            issues.append(f"MISSING_UNIQUE:{table_name}:{','.join(unique_columns)}")

    try:
        enums = inspector.get_enums() or []
    except (AttributeError, NotImplementedError, SQLAlchemyError) as exc:
        # Only PostgreSQL exposes named enum types.
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        enums = []

    enum_values_by_name: dict[str, set[str]] = {}
    for enum_item in enums:
        name = str(enum_item.get("name") or "").strip()
        if not name:
            continue
        labels = enum_item.get("labels")
        if isinstance(labels, list):
            enum_values_by_name[name] = {str(label) for label in labels}

    if enums:
        for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
            if enum_name not in enum_values_by_name:
                warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
                continue
            missing_values = sorted(item for item in required_values if item not in enum_values_by_name[enum_name])
            if missing_values:
                issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing_values)}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
    except SQLAlchemyError as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )

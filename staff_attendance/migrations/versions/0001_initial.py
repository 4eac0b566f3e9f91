"""Initial attendance and overtime schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-09-14 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

attendance_status = postgresql.ENUM(
    "not_checked_in",
    "checked_in",
    "checked_out",
    name="attendance_status",
    create_type=False,
)
overtime_status = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    name="overtime_status",
    create_type=False,
)
overtime_source = postgresql.ENUM(
    "auto_generated",
    "manual",
    name="overtime_source",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "ADMIN",
    "OFFICER",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    attendance_status.create(bind, checkfirst=True)
    overtime_status.create(bind, checkfirst=True)
    overtime_source.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "institutions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("gps_latitude", sa.Float(), nullable=True),
        sa.Column("gps_longitude", sa.Float(), nullable=True),
        sa.Column("attendance_radius_m", sa.Integer(), nullable=True),
        sa.Column("check_in_time", sa.String(length=5), nullable=True),
        sa.Column("check_out_time", sa.String(length=5), nullable=True),
        sa.Column("normal_working_hours", sa.Float(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint("attendance_radius_m IS NULL OR attendance_radius_m >= 0", name="ck_institutions_radius"),
    )

    op.create_table(
        "officers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=True),
        sa.Column("hourly_rate", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_rate_multiplier", sa.Float(), nullable=True),
        sa.Column("monthly_salary", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_officers_user_id", "officers", ["user_id"], unique=False)
    op.create_index("ix_officers_institution_id", "officers", ["institution_id"], unique=False)

    op.create_table(
        "officer_attendance",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("officer_id", sa.Integer(), nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_latitude", sa.Float(), nullable=True),
        sa.Column("check_in_longitude", sa.Float(), nullable=True),
        sa.Column("check_in_address", sa.String(length=1000), nullable=True),
        sa.Column("check_in_distance_meters", sa.Float(), nullable=True),
        sa.Column("check_in_validated", sa.Boolean(), nullable=True),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_latitude", sa.Float(), nullable=True),
        sa.Column("check_out_longitude", sa.Float(), nullable=True),
        sa.Column("check_out_address", sa.String(length=1000), nullable=True),
        sa.Column("check_out_distance_meters", sa.Float(), nullable=True),
        sa.Column("check_out_validated", sa.Boolean(), nullable=True),
        sa.Column("total_hours_worked", sa.Float(), nullable=True),
        sa.Column("overtime_hours", sa.Float(), nullable=True),
        sa.Column("overtime_auto_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "status",
            attendance_status,
            nullable=False,
            server_default=sa.text("'not_checked_in'"),
        ),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["officer_id"], ["officers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "officer_id",
            "institution_id",
            "attendance_date",
            name="uq_officer_attendance_officer_institution_date",
        ),
    )
    op.create_index("ix_officer_attendance_officer_id", "officer_attendance", ["officer_id"], unique=False)
    op.create_index("ix_officer_attendance_institution_id", "officer_attendance", ["institution_id"], unique=False)
    op.create_index("ix_officer_attendance_attendance_date", "officer_attendance", ["attendance_date"], unique=False)

    op.create_table(
        "overtime_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("officer_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("institution_id", sa.Integer(), nullable=False),
        sa.Column("request_date", sa.Date(), nullable=False),
        sa.Column("requested_hours", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("status", overtime_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("overtime_rate", sa.Float(), nullable=False),
        sa.Column("calculated_pay", sa.Float(), nullable=False),
        sa.Column("source", overtime_source, nullable=False, server_default=sa.text("'manual'")),
        sa.Column("attendance_id", sa.Integer(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["officer_id"], ["officers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["attendance_id"], ["officer_attendance.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("attendance_id", name="uq_overtime_requests_attendance"),
    )
    op.create_index("ix_overtime_requests_officer_id", "overtime_requests", ["officer_id"], unique=False)
    op.create_index("ix_overtime_requests_institution_id", "overtime_requests", ["institution_id"], unique=False)
    op.create_index("ix_overtime_requests_request_date", "overtime_requests", ["request_date"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", sa.JSON(), nullable=False),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_overtime_requests_request_date", table_name="overtime_requests")
    op.drop_index("ix_overtime_requests_institution_id", table_name="overtime_requests")
    op.drop_index("ix_overtime_requests_officer_id", table_name="overtime_requests")
    op.drop_table("overtime_requests")
    op.drop_index("ix_officer_attendance_attendance_date", table_name="officer_attendance")
    op.drop_index("ix_officer_attendance_institution_id", table_name="officer_attendance")
    op.drop_index("ix_officer_attendance_officer_id", table_name="officer_attendance")
    op.drop_table("officer_attendance")
    op.drop_index("ix_officers_institution_id", table_name="officers")
    op.drop_index("ix_officers_user_id", table_name="officers")
    op.drop_table("officers")
    op.drop_table("institutions")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    overtime_source.drop(bind, checkfirst=True)
    overtime_status.drop(bind, checkfirst=True)
    attendance_status.drop(bind, checkfirst=True)

"""Add holidays, leave balances and leave applications

Revision ID: 0002_leave_ledger
Revises: 0001_initial
Create Date: 2026-09-15 00:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_leave_ledger"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

leave_type = postgresql.ENUM(
    "sick",
    "casual",
    "earned",
    name="leave_type",
    create_type=False,
)
leave_status = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    "cancelled",
    name="leave_status",
    create_type=False,
)
lop_mode = postgresql.ENUM(
    "complete",
    "partial",
    name="lop_mode",
    create_type=False,
)
leave_adjustment_type = postgresql.ENUM(
    "credit",
    "debit",
    "correction",
    name="leave_adjustment_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    leave_type.create(bind, checkfirst=True)
    leave_status.create(bind, checkfirst=True)
    lop_mode.create(bind, checkfirst=True)
    leave_adjustment_type.create(bind, checkfirst=True)

    op.create_table(
        "holidays",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=True),
        sa.Column("holiday_date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("institution_id", "holiday_date", name="uq_holidays_institution_date"),
    )
    op.create_index("ix_holidays_institution_id", "holidays", ["institution_id"], unique=False)
    op.create_index("ix_holidays_holiday_date", "holidays", ["holiday_date"], unique=False)

    op.create_table(
        "leave_balances",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("applicant_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("monthly_credit", sa.Float(), nullable=False, server_default=sa.text("1")),
        sa.Column("carried_forward", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("additional_credit", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("sick_leave_used", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("casual_leave_used", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("lop_days", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_remaining", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("adjustment_reason", sa.String(length=1000), nullable=True),
        sa.Column("adjusted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
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
        sa.ForeignKeyConstraint(["applicant_id"], ["officers.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("applicant_id", "year", "month", name="uq_leave_balances_applicant_year_month"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_leave_balances_month"),
        sa.CheckConstraint("balance_remaining >= 0", name="ck_leave_balances_remaining_non_negative"),
    )
    op.create_index("ix_leave_balances_applicant_id", "leave_balances", ["applicant_id"], unique=False)

    op.create_table(
        "leave_balance_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("leave_balance_id", sa.Integer(), nullable=False),
        sa.Column("applicant_id", sa.Integer(), nullable=False),
        sa.Column("adjustment_type", leave_adjustment_type, nullable=False),
        sa.Column("previous_value", sa.Float(), nullable=False),
        sa.Column("new_value", sa.Float(), nullable=False),
        sa.Column("adjustment_amount", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=False),
        sa.Column("adjusted_by", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["leave_balance_id"], ["leave_balances.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_leave_balance_adjustments_leave_balance_id",
        "leave_balance_adjustments",
        ["leave_balance_id"],
        unique=False,
    )
    op.create_index(
        "ix_leave_balance_adjustments_applicant_id",
        "leave_balance_adjustments",
        ["applicant_id"],
        unique=False,
    )

    op.create_table(
        "leave_applications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("applicant_id", sa.Integer(), nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=True),
        sa.Column("leave_type", leave_type, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("total_days", sa.Float(), nullable=False),
        sa.Column("holidays_excluded", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_days", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("lop_days", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_lop", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("lop_decision", lop_mode, nullable=True),
        sa.Column("status", leave_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("decided_by", sa.String(length=255), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_comment", sa.String(length=1000), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["applicant_id"], ["officers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_applications_date_range"),
    )
    op.create_index("ix_leave_applications_applicant_id", "leave_applications", ["applicant_id"], unique=False)
    op.create_index("ix_leave_applications_start_date", "leave_applications", ["start_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_leave_applications_start_date", table_name="leave_applications")
    op.drop_index("ix_leave_applications_applicant_id", table_name="leave_applications")
    op.drop_table("leave_applications")
    op.drop_index("ix_leave_balance_adjustments_applicant_id", table_name="leave_balance_adjustments")
    op.drop_index("ix_leave_balance_adjustments_leave_balance_id", table_name="leave_balance_adjustments")
    op.drop_table("leave_balance_adjustments")
    op.drop_index("ix_leave_balances_applicant_id", table_name="leave_balances")
    op.drop_table("leave_balances")
    op.drop_index("ix_holidays_holiday_date", table_name="holidays")
    op.drop_index("ix_holidays_institution_id", table_name="holidays")
    op.drop_table("holidays")

    bind = op.get_bind()
    leave_adjustment_type.drop(bind, checkfirst=True)
    lop_mode.drop(bind, checkfirst=True)
    leave_status.drop(bind, checkfirst=True)
    leave_type.drop(bind, checkfirst=True)

"""Create scheduled report and execution tables.

Revision ID: 001_scheduled_reports
Revises:
Create Date: 2026-10-19 09:00:00
"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_scheduled_reports"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Upgrade database schema - Add scheduled_reports and report_executions."""
    op.create_table(
        "scheduled_reports",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("report_type", sa.String(length=50), nullable=False),
        sa.Column("schedule_type", sa.String(length=50), nullable=False),
        sa.Column("cron_expression", sa.String(length=100), nullable=True),
        sa.Column("interval_minutes", sa.Integer(), nullable=True),
        sa.Column("recipients", JSONType, nullable=False),
        sa.Column("cc_recipients", JSONType, nullable=False, server_default="[]"),
        sa.Column("filters", JSONType, nullable=False, server_default="{}"),
        sa.Column("email_subject", sa.String(length=500), nullable=True),
        sa.Column("email_body", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "needs_attention", sa.Boolean(), nullable=False, server_default="false"
        ),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_scheduled_reports"),
    )
    op.create_index(
        "ix_scheduled_reports_company_id", "scheduled_reports", ["company_id"]
    )
    # Due-schedule scans
    op.create_index(
        "ix_scheduled_reports_active_next_run",
        "scheduled_reports",
        ["is_active", "next_run"],
    )

    op.create_table(
        "report_executions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column(
            "trigger_source",
            sa.String(length=20),
            nullable=False,
            server_default="schedule",
        ),
        sa.Column("execution_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("tickets_count", sa.Integer(), nullable=True),
        sa.Column("recipients_count", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(
            ["schedule_id"],
            ["scheduled_reports.id"],
            name="fk_report_executions_schedule_id",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_report_executions"),
    )
    op.create_index(
        "ix_report_executions_company_id", "report_executions", ["company_id"]
    )
    op.create_index("ix_report_executions_status", "report_executions", ["status"])
    # Per-schedule history, newest first
    op.create_index(
        "ix_report_executions_schedule_time",
        "report_executions",
        ["schedule_id", "execution_time"],
    )


def downgrade() -> None:
    """Downgrade database schema - Remove report tables."""
    op.drop_table("report_executions")
    op.drop_table("scheduled_reports")

"""initial cmms schema

Revision ID: 1c2e7a9b4d10
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1c2e7a9b4d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_INDEXED_COLUMNS = [
    ("employees", ["id", "company_id", "role"]),
    ("assets", ["id", "company_id", "status"]),
    ("failure_types", ["id", "company_id"]),
    ("pm_schedules", ["id", "company_id", "asset_id"]),
    ("jobs", ["id", "company_id", "asset_id", "status", "assigned_to_id"]),
    ("job_events", ["company_id", "job_id"]),
    ("job_cost_log", ["id", "company_id", "job_id", "cost_type", "created_at"]),
    ("job_cost_snapshots", ["company_id"]),
    ("downtime_logs", ["id", "company_id", "job_id"]),
    ("meter_readings", ["id", "company_id", "asset_id"]),
    ("items", ["id", "company_id"]),
    ("item_requests", ["id", "company_id", "job_id"]),
    ("item_request_lines", ["id", "request_id"]),
    ("fuel_issues", ["id", "company_id", "asset_id"]),
    ("alerts", ["id", "company_id", "type"]),
    ("notifications", ["id", "user_id"]),
    ("audit_logs", ["id", "company_id"]),
    ("period_locks", ["id", "company_id"]),
]


def _now():
    return sa.text("now()")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="TECHNICIAN"),
        sa.Column("hourly_rate_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.CheckConstraint("hourly_rate_cents >= 0", name="ck_employees_hourly_rate_cents_nonnegative"),
        sa.UniqueConstraint("company_id", "email", name="uq_employees_company_email"),
    )

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="ACTIVE"),
        sa.Column("safety_critical", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("meter_type", sa.String(), nullable=False, server_default="HOURS"),
        sa.Column("current_meter", sa.Float(), nullable=True),
        sa.Column("last_meter_update", sa.DateTime(), nullable=True),
        sa.Column("standard_consumption_rate", sa.Float(), nullable=True),
        sa.Column("value_cents", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.UniqueConstraint("company_id", "code", name="uq_assets_company_code"),
    )

    op.create_table(
        "failure_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("safety_critical", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "pm_schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("interval_type", sa.String(), nullable=False),
        sa.Column("interval_value", sa.Float(), nullable=False),
        sa.Column("last_service_meter", sa.Float(), nullable=False, server_default="0"),
        sa.Column("last_service_date", sa.DateTime(), nullable=True),
        sa.Column("next_due_meter", sa.Float(), nullable=False),
        sa.Column("job_title_template", sa.String(), nullable=False),
        sa.Column("job_description", sa.Text(), nullable=True),
        sa.Column("estimated_duration", sa.Float(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False, server_default="MEDIUM"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("failure_type_id", sa.Integer(), sa.ForeignKey("failure_types.id"), nullable=True),
        sa.Column("pm_schedule_id", sa.Integer(), sa.ForeignKey("pm_schedules.id"), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="CREATED"),
        sa.Column("priority", sa.String(), nullable=False, server_default="MEDIUM"),
        sa.Column("type", sa.String(), nullable=False, server_default="CORRECTIVE"),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        sa.Column("assigned_to_id", sa.Integer(), sa.ForeignKey("employees.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("paused_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("total_pause_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("material_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("labor_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fuel_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("service_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("other_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_calculated_at", sa.DateTime(), nullable=True),
        sa.Column("safety_photo_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("safety_photo_url", sa.String(), nullable=True),
        sa.Column("closure_notes", sa.Text(), nullable=True),
        sa.Column("is_void", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_jobs_company_status", "jobs", ["company_id", "status"], unique=False)
    op.create_index("ix_jobs_pm_schedule_status", "jobs", ["pm_schedule_id", "status"], unique=False)

    op.create_table(
        "job_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("from_status", sa.String(), nullable=True),
        sa.Column("to_status", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "job_cost_log",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("sequence_no", sa.Integer(), nullable=False),
        sa.Column("cost_type", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=True),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=True),
        sa.Column("running_total_cents", sa.Integer(), nullable=False),
        sa.Column("reference_type", sa.String(), nullable=True),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("item_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.UniqueConstraint("job_id", "sequence_no", name="uq_job_cost_log_job_sequence"),
    )

    op.create_table(
        "job_cost_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False, unique=True),
        sa.Column("material_cost_cents", sa.Integer(), nullable=False),
        sa.Column("labor_cost_cents", sa.Integer(), nullable=False),
        sa.Column("fuel_cost_cents", sa.Integer(), nullable=False),
        sa.Column("service_cost_cents", sa.Integer(), nullable=False),
        sa.Column("other_cost_cents", sa.Integer(), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("labor_seconds", sa.Integer(), nullable=False),
        sa.Column("hourly_rate_cents", sa.Integer(), nullable=False),
        sa.Column("data_hash", sa.String(length=64), nullable=False),
        sa.Column("hash_generated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "document_hashes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("document_type", sa.String(), nullable=False),
        sa.Column("document_id", sa.String(), nullable=False),
        sa.Column("data_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
        sa.UniqueConstraint("document_type", "document_id", name="uq_document_hashes_document"),
    )

    op.create_table(
        "downtime_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=True),
        sa.Column("category", sa.String(), nullable=False, server_default="BREAKDOWN"),
        sa.Column("sub_category", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("opportunity_cost_per_hour_cents", sa.Integer(), nullable=True),
        sa.Column("lost_opportunity_cost_cents", sa.Integer(), nullable=True),
        sa.Column("resolved_by", sa.Integer(), nullable=True),
    )
    op.create_index("ix_downtime_logs_asset_started", "downtime_logs", ["asset_id", "started_at"], unique=False)

    op.create_table(
        "meter_readings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("reading", sa.Float(), nullable=False),
        sa.Column("previous_reading", sa.Float(), nullable=True),
        sa.Column("reading_date", sa.DateTime(), nullable=False),
        sa.Column("effective_date", sa.DateTime(), nullable=False),
        sa.Column("is_late_entry", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_rollback", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rollback_handled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("override_by", sa.Integer(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
    )

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=True),
        sa.Column("weighted_avg_cost_cents", sa.Integer(), nullable=True),
    )

    op.create_table(
        "item_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="APPROVED"),
        sa.Column("requested_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "item_request_lines",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("request_id", sa.Integer(), sa.ForeignKey("item_requests.id"), nullable=False),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id"), nullable=False),
        sa.Column("requested_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("approved_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("issued_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("returned_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=True),
        sa.Column("total_cost_cents", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "requested_qty >= 0 AND approved_qty >= 0 AND issued_qty >= 0 AND returned_qty >= 0",
            name="ck_item_request_lines_quantities_nonnegative",
        ),
        sa.CheckConstraint("issued_qty <= approved_qty", name="ck_item_request_lines_issued_le_approved"),
        sa.CheckConstraint("returned_qty <= issued_qty", name="ck_item_request_lines_returned_le_issued"),
    )

    op.create_table(
        "fuel_issues",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id"), nullable=True),
        sa.Column("issued_by", sa.Integer(), nullable=True),
        sa.Column("operator_id", sa.Integer(), nullable=True),
        sa.Column("meter_reading", sa.Float(), nullable=True),
        sa.Column("previous_reading", sa.Float(), nullable=True),
        sa.Column("meter_validated", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("meter_broken", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fuel_type", sa.String(), nullable=False, server_default="DIESEL"),
        sa.Column("quantity_liters", sa.Float(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=True),
        sa.Column("total_cost_cents", sa.Integer(), nullable=True),
        sa.Column("distance_hours", sa.Float(), nullable=True),
        sa.Column("consumption_rate", sa.Float(), nullable=True),
        sa.Column("standard_rate", sa.Float(), nullable=True),
        sa.Column("variance_percent", sa.Float(), nullable=True),
        sa.Column("is_abnormal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("reference_type", sa.String(), nullable=True),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("entity", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now()),
    )

    op.create_table(
        "period_locks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.Column("locked_by_id", sa.Integer(), nullable=True),
        sa.Column("total_material_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_labor_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_fuel_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_service_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_other_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("jobs_closed", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("company_id", "year", "month", name="uq_period_locks_company_period"),
    )

    for table_name, columns in _INDEXED_COLUMNS:
        for column in columns:
            op.create_index(f"ix_{table_name}_{column}", table_name, [column], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    for table_name, columns in reversed(_INDEXED_COLUMNS):
        for column in reversed(columns):
            op.drop_index(f"ix_{table_name}_{column}", table_name=table_name)

    op.drop_index("ix_downtime_logs_asset_started", table_name="downtime_logs")
    op.drop_index("ix_jobs_pm_schedule_status", table_name="jobs")
    op.drop_index("ix_jobs_company_status", table_name="jobs")

    for table_name in (
        "period_locks",
        "audit_logs",
        "notifications",
        "alerts",
        "fuel_issues",
        "item_request_lines",
        "item_requests",
        "items",
        "meter_readings",
        "downtime_logs",
        "document_hashes",
        "job_cost_snapshots",
        "job_cost_log",
        "job_events",
        "jobs",
        "pm_schedules",
        "failure_types",
        "assets",
        "employees",
    ):
        op.drop_table(table_name)

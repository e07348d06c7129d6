"""initial schema: tenants, auth, module entitlements, billing, employees, compliance records, alerts

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-02-02 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1b2c3d4e5f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create every table the platform needs (idempotent)."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    # ---------- Platform ----------
    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("cui", sa.String(32), nullable=True),
            sa.Column("country_code", sa.String(2), nullable=False, server_default="RO"),
            sa.Column("contact_email", sa.String(320), nullable=True),
            sa.Column("contact_phone", sa.String(32), nullable=True),
            sa.Column("push_topic", sa.String(128), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=True),
            sa.Column("preferred_locale", sa.String(8), nullable=False, server_default="ro"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_users_organization_id", "users", ["organization_id"])

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(64), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(128), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )

    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )
        op.create_index("idx_audit_events_org_created", "audit_events", ["organization_id", "created_at"])

    # ---------- Entitlements ----------
    if "organization_modules" not in existing_tables:
        op.create_table(
            "organization_modules",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("module_key", sa.String(64), nullable=False),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("trial_started_at", sa.DateTime(), nullable=True),
            sa.Column("trial_expires_at", sa.DateTime(), nullable=True),
            sa.Column("activated_at", sa.DateTime(), nullable=True),
            sa.Column("canceled_at", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("organization_id", "module_key", name="uq_organization_modules_org_key"),
        )
        op.create_index("idx_organization_modules_status", "organization_modules", ["status"])
        op.create_index("idx_organization_modules_trial_expires", "organization_modules", ["trial_expires_at"])

    # ---------- Billing ----------
    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True),
            sa.Column("stripe_customer_id", sa.String(255), nullable=True),
            sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
            sa.Column("plan_id", sa.String(32), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="active"),
            sa.Column("current_period_start", sa.DateTime(), nullable=True),
            sa.Column("current_period_end", sa.DateTime(), nullable=True),
            sa.Column("grace_period_ends_at", sa.DateTime(), nullable=True),
            sa.Column("canceled_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_subscriptions_stripe_subscription_id", "subscriptions", ["stripe_subscription_id"])
        op.create_index("idx_subscriptions_stripe_customer_id", "subscriptions", ["stripe_customer_id"])

    if "webhook_events_log" not in existing_tables:
        op.create_table(
            "webhook_events_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("provider", sa.String(32), nullable=False, server_default="stripe"),
            sa.Column("event_id", sa.String(255), nullable=True),
            sa.Column("event_type", sa.String(128), nullable=False),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("error_message", sa.Text(), nullable=True),
        )
        op.create_index("idx_webhook_events_log_event_id", "webhook_events_log", ["event_id"])
        op.create_index("idx_webhook_events_log_created", "webhook_events_log", ["created_at"])

    # ---------- Employees ----------
    if "employees" not in existing_tables:
        op.create_table(
            "employees",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("first_name", sa.String(128), nullable=False),
            sa.Column("last_name", sa.String(128), nullable=False),
            sa.Column("cnp", sa.String(13), nullable=True),
            sa.Column("job_title", sa.String(255), nullable=True),
            sa.Column("cor_code", sa.String(16), nullable=True),
            sa.Column("department", sa.String(255), nullable=True),
            sa.Column("hire_date", sa.Date(), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_employees_org_deleted", "employees", ["organization_id", "is_deleted"])
        op.create_index("idx_employees_org_cnp", "employees", ["organization_id", "cnp"])
        op.create_index("idx_employees_last_name", "employees", ["last_name"])

    # ---------- Compliance records ----------
    if "medical_exams" not in existing_tables:
        op.create_table(
            "medical_exams",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
            sa.Column("exam_type", sa.String(32), nullable=False, server_default="periodic"),
            sa.Column("exam_date", sa.Date(), nullable=False),
            sa.Column("expiry_date", sa.Date(), nullable=False),
            sa.Column("result", sa.String(32), nullable=False, server_default="apt"),
            sa.Column("doctor_name", sa.String(255), nullable=True),
            sa.Column("clinic_name", sa.String(255), nullable=True),
            sa.Column("restrictions", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_medical_exams_org_expiry", "medical_exams", ["organization_id", "expiry_date"])

    if "safety_equipment" not in existing_tables:
        op.create_table(
            "safety_equipment",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("equipment_type", sa.String(64), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("serial_number", sa.String(128), nullable=True),
            sa.Column("location", sa.String(255), nullable=True),
            sa.Column("last_inspection_date", sa.Date(), nullable=True),
            sa.Column("next_inspection_date", sa.Date(), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_safety_equipment_org_next", "safety_equipment", ["organization_id", "next_inspection_date"])

    if "trainings" not in existing_tables:
        op.create_table(
            "trainings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("employee_id", sa.Integer(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
            sa.Column("training_type", sa.String(64), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("completed_date", sa.Date(), nullable=False),
            sa.Column("expiry_date", sa.Date(), nullable=False),
            sa.Column("trainer_name", sa.String(255), nullable=True),
            sa.Column("duration_hours", sa.Integer(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_trainings_org_expiry", "trainings", ["organization_id", "expiry_date"])

    # ---------- Alerts ----------
    if "alerts" not in existing_tables:
        op.create_table(
            "alerts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("alert_type", sa.String(32), nullable=False),
            sa.Column("entity_type", sa.String(64), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(512), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("days_left", sa.Integer(), nullable=False),
            sa.Column("severity", sa.String(16), nullable=False),
            sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("resolved_at", sa.DateTime(), nullable=True),
            sa.Column("resolved_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_alerts_org_resolved", "alerts", ["organization_id", "is_resolved"])
        op.create_index("idx_alerts_dedup", "alerts", ["organization_id", "alert_type", "entity_id", "due_date"])

    if "notification_log" not in existing_tables:
        op.create_table(
            "notification_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True),
            sa.Column("kind", sa.String(32), nullable=False),
            sa.Column("channel", sa.String(16), nullable=False),
            sa.Column("recipient", sa.String(320), nullable=True),
            sa.Column("status", sa.String(16), nullable=False),
            sa.Column("provider_message_id", sa.String(255), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_notification_log_org_created", "notification_log", ["organization_id", "created_at"])


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    for table in (
        "notification_log",
        "alerts",
        "trainings",
        "safety_equipment",
        "medical_exams",
        "employees",
        "webhook_events_log",
        "subscriptions",
        "organization_modules",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
        "organizations",
    ):
        op.drop_table(table)

"""initial agency schema

Revision ID: 4e1a7c2b9d10
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4e1a7c2b9d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True, nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        _id(),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("username", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_table(
        "sessions",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_sessions_token", "sessions", ["token"], unique=True)

    op.create_table(
        "pages",
        _id(),
        sa.Column("page_key", sa.String(128), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("path", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_table(
        "role_permissions",
        _id(),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("page_id", sa.String(36), sa.ForeignKey("pages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False),
        sa.Column("can_edit", sa.Boolean(), nullable=False),
        sa.Column("can_delete", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("role", "page_id", name="uq_role_permissions_role_page"),
    )
    op.create_table(
        "user_menu_permissions",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("dashboard", sa.Boolean(), nullable=False),
        sa.Column("expense_entry", sa.Boolean(), nullable=False),
        sa.Column("admin_panel", sa.Boolean(), nullable=False),
        sa.Column("advantix_agency", sa.Boolean(), nullable=False),
        sa.Column("investment_mgmt", sa.Boolean(), nullable=False),
        sa.Column("fund_mgmt", sa.Boolean(), nullable=False),
        sa.Column("subscriptions", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_username", sa.String(255), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
    )

    op.create_table(
        "clients",
        _id(),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_clients_name", "clients", ["client_name"])
    op.create_index("idx_clients_status", "clients", ["status"])

    op.create_table(
        "ad_accounts",
        _id(),
        sa.Column("platform", sa.String(64), nullable=False),
        sa.Column("account_name", sa.String(255), nullable=False),
        sa.Column("account_id", sa.String(128), nullable=False),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("spend_limit", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_spend", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_ad_accounts_client", "ad_accounts", ["client_id"])
    op.create_index("idx_ad_accounts_platform", "ad_accounts", ["platform"])

    op.create_table(
        "campaigns",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("ad_account_id", sa.String(36), sa.ForeignKey("ad_accounts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("objective", sa.String(128), nullable=False),
        sa.Column("budget", sa.Numeric(12, 2), nullable=False),
        sa.Column("spend", sa.Numeric(12, 2), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_campaigns_ad_account", "campaigns", ["ad_account_id"])
    op.create_index("idx_campaigns_client", "campaigns", ["client_id"])
    op.create_index("idx_campaigns_status", "campaigns", ["status"])

    op.create_table(
        "ad_copy_sets",
        _id(),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("set_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("age", sa.String(64), nullable=True),
        sa.Column("budget", sa.Numeric(12, 2), nullable=True),
        sa.Column("ad_type", sa.String(64), nullable=True),
        sa.Column("creative_link", sa.Text(), nullable=True),
        sa.Column("headline", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("call_to_action", sa.String(64), nullable=True),
        sa.Column("target_audience", sa.Text(), nullable=True),
        sa.Column("placement", sa.Text(), nullable=True),
        sa.Column("schedule", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_ad_copy_sets_campaign", "ad_copy_sets", ["campaign_id"])

    op.create_table(
        "campaign_daily_spends",
        _id(),
        sa.Column("campaign_id", sa.String(36), sa.ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("spend_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
        sa.UniqueConstraint("campaign_id", "spend_date", name="uq_campaign_daily_spend_day"),
    )

    op.create_table(
        "work_reports",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("hours_worked", sa.Numeric(5, 2), nullable=False),
        sa.Column("date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        *_timestamps(),
    )
    op.create_index("idx_work_reports_user", "work_reports", ["user_id"])
    op.create_index("idx_work_reports_date", "work_reports", ["date"])

    op.create_table(
        "finance_projects",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("budget", sa.Numeric(14, 2), nullable=False),
        sa.Column("expense", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_finance_projects_client", "finance_projects", ["client_id"])

    op.create_table(
        "finance_payments",
        _id(),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("finance_projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("conversion_rate", sa.Numeric(12, 4), nullable=False),
        sa.Column("converted_amount", sa.Numeric(16, 2), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_finance_payments_project", "finance_payments", ["project_id"])
    op.create_index("idx_finance_payments_date", "finance_payments", ["date"])

    op.create_table(
        "finance_expenses",
        _id(),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("finance_projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(16, 2), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_finance_expenses_project", "finance_expenses", ["project_id"])
    op.create_index("idx_finance_expenses_date", "finance_expenses", ["date"])

    op.create_table(
        "finance_settings",
        _id(),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "tags",
        _id(),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("color", sa.String(16), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "employees",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("department", sa.String(128), nullable=True),
        sa.Column("position", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )

    money = [
        "basic_salary",
        "base_payment",
        "transport_allowance",
        "food_allowance",
        "internet_allowance",
        "other_allowances",
        "festival_bonus",
        "performance_bonus",
        "other_bonus",
        "leave_deduction",
        "loan_deduction",
        "penalty_deduction",
        "tax_deduction",
        "total_allowances",
        "total_bonus",
        "total_deductions",
        "gross_payment",
        "final_payment",
    ]
    op.create_table(
        "salaries",
        _id(),
        sa.Column("employee_id", sa.String(36), nullable=False),
        sa.Column("employee_name", sa.String(255), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("contractual_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("actual_working_hours", sa.Numeric(8, 2), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 4), nullable=False),
        *[sa.Column(name, sa.Numeric(12, 2), nullable=False) for name in money],
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False),
        sa.Column("salary_approval_status", sa.String(16), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("employee_id", "month", name="uq_salaries_employee_month"),
    )
    op.create_index("ix_salaries_employee_id", "salaries", ["employee_id"])
    op.create_index("ix_salaries_month", "salaries", ["month"])

    op.create_table(
        "telegram_config",
        _id(),
        sa.Column("bot_token", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "telegram_chat_ids",
        _id(),
        sa.Column("chat_id", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "telegram_chat_ids",
        "telegram_config",
        "salaries",
        "employees",
        "tags",
        "finance_settings",
        "finance_expenses",
        "finance_payments",
        "finance_projects",
        "work_reports",
        "campaign_daily_spends",
        "ad_copy_sets",
        "campaigns",
        "ad_accounts",
        "clients",
        "audit_events",
        "user_menu_permissions",
        "role_permissions",
        "pages",
        "sessions",
        "users",
    ):
        op.drop_table(table)

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)  # werkzeug hash
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="user")  # user, manager, admin, super_admin
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    sessions: Mapped[list["UserSession"]] = relationship(back_populates="user", cascade="all, delete-orphan", lazy="select")


class UserSession(Base):
    """Bearer-token session. One row per login; removed on logout or when found expired."""

    __tablename__ = "sessions"
    __table_args__ = (Index("idx_sessions_token", "token", unique=True),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="sessions", lazy="joined")


class Page(Base):
    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    page_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)  # e.g. "campaigns"
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "page_id", name="uq_role_permissions_role_page"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    page_id: Mapped[str] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), nullable=False)
    can_view: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    page: Mapped[Page] = relationship(lazy="joined")


class UserMenuPermission(Base):
    """Per-user sidebar menu switches, independent of the role/page matrix."""

    __tablename__ = "user_menu_permissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    dashboard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expense_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_panel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    advantix_agency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    investment_mgmt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fund_mgmt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscriptions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module-specific tables can refer to it by id if needed.
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "campaign.create"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Campaign"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.agencyops.modules.clients.models import Client  # noqa: E402,F401
from app.agencyops.modules.ad_accounts.models import AdAccount  # noqa: E402,F401
from app.agencyops.modules.campaigns.models import AdCopySet, Campaign, CampaignDailySpend  # noqa: E402,F401
from app.agencyops.modules.work_reports.models import WorkReport  # noqa: E402,F401
from app.agencyops.modules.finance.models import (  # noqa: E402,F401
    FinanceExpense,
    FinancePayment,
    FinanceProject,
    FinanceSetting,
)
from app.agencyops.modules.tags.models import Tag  # noqa: E402,F401
from app.agencyops.modules.employees.models import Employee  # noqa: E402,F401
from app.agencyops.modules.salaries.models import Salary  # noqa: E402,F401
from app.agencyops.modules.telegram.models import TelegramChatId, TelegramConfig  # noqa: E402,F401

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.agencyops.models import Base, new_id


class FinanceProject(Base):
    __tablename__ = "finance_projects"
    __table_args__ = (Index("idx_finance_projects_client", "client_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_id: Mapped[str | None] = mapped_column(ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    budget: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    expense: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")  # active, closed
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class FinancePayment(Base):
    __tablename__ = "finance_payments"
    __table_args__ = (
        Index("idx_finance_payments_project", "project_id"),
        Index("idx_finance_payments_date", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    client_id: Mapped[str | None] = mapped_column(ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    project_id: Mapped[str | None] = mapped_column(ForeignKey("finance_projects.id", ondelete="SET NULL"), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)  # USD
    conversion_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    converted_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)  # BDT
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class FinanceExpense(Base):
    __tablename__ = "finance_expenses"
    __table_args__ = (
        Index("idx_finance_expenses_project", "project_id"),
        Index("idx_finance_expenses_date", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="expense")  # expense, salary
    project_id: Mapped[str | None] = mapped_column(ForeignKey("finance_projects.id", ondelete="SET NULL"), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)  # BDT
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="BDT")
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class FinanceSetting(Base):
    __tablename__ = "finance_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.agencyops.models import Base, new_id


class Salary(Base):
    __tablename__ = "salaries"
    __table_args__ = (UniqueConstraint("employee_id", "month", name="uq_salaries_employee_month"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # Employee id or login user id; payroll predates the employees table.
    employee_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)  # YYYY-MM

    basic_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    contractual_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=160)
    actual_working_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=0)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=0)
    base_payment: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    transport_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    food_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    internet_allowance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    other_allowances: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    festival_bonus: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    performance_bonus: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    other_bonus: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    leave_deduction: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    loan_deduction: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    penalty_deduction: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    tax_deduction: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    total_allowances: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_bonus: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    gross_payment: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    final_payment: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="cash")
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="unpaid")
    salary_approval_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

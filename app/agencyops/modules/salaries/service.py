from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from app.agencyops.audit import record_event
from app.agencyops.models import User
from app.agencyops.modules.employees.models import Employee
from app.agencyops.modules.salaries.models import Salary
from app.agencyops.modules.work_reports.models import WorkReport
from app.agencyops.utils import apply_changes, as_text, clean_str, decimal_errors, money, serialize, to_camel, zero_if_none

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

PAYMENT_METHODS = ("cash", "bank_transfer", "mobile_banking")
PAYMENT_STATUSES = ("paid", "unpaid")
APPROVAL_STATUSES = ("pending", "approved", "rejected")
COUNTED_REPORT_STATUSES = ("submitted", "approved")

DEFAULT_CONTRACTUAL_HOURS = Decimal("160")

ALLOWANCE_FIELDS = ("transport_allowance", "food_allowance", "internet_allowance", "other_allowances")
BONUS_FIELDS = ("festival_bonus", "performance_bonus", "other_bonus")
DEDUCTION_FIELDS = ("leave_deduction", "loan_deduction", "penalty_deduction", "tax_deduction")
INPUT_AMOUNT_FIELDS = (
    "basic_salary",
    "contractual_hours",
    "actual_working_hours",
    *ALLOWANCE_FIELDS,
    *BONUS_FIELDS,
    *DEDUCTION_FIELDS,
)
COMPUTED_FIELDS = (
    "hourly_rate",
    "base_payment",
    "total_allowances",
    "total_bonus",
    "total_deductions",
    "gross_payment",
    "final_payment",
)

_FIELD_PARSERS: dict[str, Any] = {
    "employee_id": as_text,
    "employee_name": as_text,
    "month": as_text,
    "payment_method": lambda v: as_text(v, "cash").lower(),
    "payment_status": lambda v: as_text(v, "unpaid").lower(),
    "salary_approval_status": lambda v: as_text(v, "pending").lower(),
    "remarks": clean_str,
}
_FIELD_PARSERS.update({f: zero_if_none for f in INPUT_AMOUNT_FIELDS})

_CENT = Decimal("0.01")
_RATE = Decimal("0.0001")


class SalaryExistsError(ValueError):
    pass


@dataclass(frozen=True)
class PayeeRef:
    """Who a salary is for: an Employee row, or a login user paid directly."""

    employee_id: str
    name: str
    user_id: str | None


def resolve_payee(s: "Session", employee_id: str) -> PayeeRef | None:
    employee = s.get(Employee, employee_id)
    if employee:
        return PayeeRef(employee_id=employee.id, name=employee.name, user_id=employee.user_id)
    user = s.get(User, employee_id)
    if user:
        return PayeeRef(employee_id=user.id, name=user.name or user.username, user_id=user.id)
    return None


def compute_totals(salary: Salary) -> None:
    """Recompute every derived amount from the inputs; client-sent totals are ignored."""
    basic = zero_if_none(salary.basic_salary)
    contractual = zero_if_none(salary.contractual_hours)
    actual = zero_if_none(salary.actual_working_hours)

    hourly = basic / contractual if contractual > 0 else Decimal("0")
    base = hourly * actual
    allowances = sum((zero_if_none(getattr(salary, f)) for f in ALLOWANCE_FIELDS), Decimal("0"))
    bonus = sum((zero_if_none(getattr(salary, f)) for f in BONUS_FIELDS), Decimal("0"))
    deductions = sum((zero_if_none(getattr(salary, f)) for f in DEDUCTION_FIELDS), Decimal("0"))
    gross = base + allowances + bonus

    salary.hourly_rate = hourly.quantize(_RATE, rounding=ROUND_HALF_UP)
    salary.base_payment = base.quantize(_CENT, rounding=ROUND_HALF_UP)
    salary.total_allowances = allowances.quantize(_CENT, rounding=ROUND_HALF_UP)
    salary.total_bonus = bonus.quantize(_CENT, rounding=ROUND_HALF_UP)
    salary.total_deductions = deductions.quantize(_CENT, rounding=ROUND_HALF_UP)
    salary.gross_payment = gross.quantize(_CENT, rounding=ROUND_HALF_UP)
    salary.final_payment = (gross - deductions).quantize(_CENT, rounding=ROUND_HALF_UP)


def salary_to_dict(salary: Salary) -> dict[str, Any]:
    out = serialize(salary)
    for f in (*INPUT_AMOUNT_FIELDS, *COMPUTED_FIELDS):
        out[to_camel(f)] = money(getattr(salary, f))
    return out


def validate_salary_payload(
    s: "Session", payload: dict, *, partial: bool = False, salary_id: str | None = None
) -> list[str]:
    errors = []
    if not partial or "employee_id" in payload:
        if not as_text(payload.get("employee_id")):
            errors.append("Employee is required.")
    if not partial or "month" in payload:
        month = as_text(payload.get("month"))
        if not MONTH_RE.match(month):
            errors.append("Month must be in YYYY-MM format.")
    for key, allowed in (
        ("payment_method", PAYMENT_METHODS),
        ("payment_status", PAYMENT_STATUSES),
        ("salary_approval_status", APPROVAL_STATUSES),
    ):
        value = as_text(payload.get(key)).lower()
        if value and value not in allowed:
            errors.append(f"Invalid {key.replace('_', ' ')}. Must be one of: {', '.join(allowed)}")

    amount_errors = decimal_errors(payload, *INPUT_AMOUNT_FIELDS)
    errors.extend(amount_errors)
    if not amount_errors:
        for f in INPUT_AMOUNT_FIELDS:
            if f in payload and zero_if_none(payload[f]) < 0:
                errors.append(f"{f.replace('_', ' ').capitalize()} cannot be negative.")

    employee_id = as_text(payload.get("employee_id"))
    if employee_id and resolve_payee(s, employee_id) is None:
        errors.append("Employee not found")
    month = as_text(payload.get("month"))
    if employee_id and MONTH_RE.match(month):
        existing = find_salary(s, employee_id, month)
        if existing and existing.id != salary_id:
            errors.append(f"A salary record already exists for this employee for {month}.")
    return errors


def find_salary(s: "Session", employee_id: str, month: str) -> Salary | None:
    return s.query(Salary).filter(Salary.employee_id == employee_id, Salary.month == month).one_or_none()


def _fill_employee_name(s: "Session", salary: Salary) -> None:
    if salary.employee_name:
        return
    payee = resolve_payee(s, salary.employee_id)
    salary.employee_name = payee.name if payee else salary.employee_id


def create_salary(s: "Session", payload: dict, user: "User | None", *, salary_id: str | None = None) -> Salary:
    now = datetime.utcnow()
    salary = Salary(
        employee_name="",
        contractual_hours=DEFAULT_CONTRACTUAL_HOURS,
        payment_method="cash",
        payment_status="unpaid",
        salary_approval_status="pending",
        created_at=now,
        updated_at=now,
    )
    if salary_id:
        salary.id = salary_id
    for f in INPUT_AMOUNT_FIELDS:
        if getattr(salary, f) is None:
            setattr(salary, f, Decimal("0"))
    apply_changes(salary, payload, _FIELD_PARSERS)
    _fill_employee_name(s, salary)
    compute_totals(salary)
    s.add(salary)
    s.flush()
    record_event(
        s,
        actor=user,
        action="salary.create",
        entity_type="Salary",
        entity_id=salary.id,
        metadata={"employee_id": salary.employee_id, "month": salary.month, "final_payment": salary.final_payment},
    )
    return salary


def update_salary(s: "Session", salary: Salary, payload: dict, user: "User | None") -> Salary:
    changes = apply_changes(salary, payload, _FIELD_PARSERS)
    _fill_employee_name(s, salary)
    compute_totals(salary)
    salary.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="salary.edit",
        entity_type="Salary",
        entity_id=salary.id,
        metadata={"changes": changes},
    )
    return salary


def delete_salary(s: "Session", salary: Salary, user: "User | None") -> None:
    record_event(
        s,
        actor=user,
        action="salary.delete",
        entity_type="Salary",
        entity_id=salary.id,
        metadata={"employee_id": salary.employee_id, "month": salary.month},
    )
    s.delete(salary)


def salary_stats(s: "Session", *, month: str | None = None) -> dict[str, Any]:
    q = s.query(Salary)
    if month:
        q = q.filter(Salary.month == month)
    rows = q.all()

    paid = [r for r in rows if r.payment_status == "paid"]
    unpaid = [r for r in rows if r.payment_status != "paid"]
    by_month: dict[str, Decimal] = {}
    for r in rows:
        by_month[r.month] = by_month.get(r.month, Decimal("0")) + zero_if_none(r.final_payment)

    def total(items, field):
        return money(sum((zero_if_none(getattr(r, field)) for r in items), Decimal("0")))

    return {
        "totalRecords": len(rows),
        "paidCount": len(paid),
        "unpaidCount": len(unpaid),
        "pendingApprovalCount": sum(1 for r in rows if r.salary_approval_status == "pending"),
        "totalGrossPayment": total(rows, "gross_payment"),
        "totalDeductions": total(rows, "total_deductions"),
        "totalFinalPayment": total(rows, "final_payment"),
        "paidAmount": total(paid, "final_payment"),
        "unpaidAmount": total(unpaid, "final_payment"),
        "byMonth": [{"month": m, "totalFinalPayment": money(v)} for m, v in sorted(by_month.items())],
    }


def _month_bounds(month: str) -> tuple[datetime, datetime]:
    year, mon = (int(x) for x in month.split("-"))
    start = datetime(year, mon, 1)
    end = datetime(year + 1, 1, 1) if mon == 12 else datetime(year, mon + 1, 1)
    return start, end


def month_work_reports(s: "Session", user_id: str | None, month: str) -> list[WorkReport]:
    if not user_id:
        return []
    start, end = _month_bounds(month)
    return (
        s.query(WorkReport)
        .filter(
            WorkReport.user_id == user_id,
            WorkReport.date >= start,
            WorkReport.date < end,
            WorkReport.status.in_(COUNTED_REPORT_STATUSES),
        )
        .order_by(WorkReport.date.asc())
        .all()
    )


def generate_preview(s: "Session", payee: PayeeRef, month: str) -> dict[str, Any]:
    """
    Summarise the month's submitted/approved work reports for a payee and derive the base
    payment from the most recent earlier salary (basic salary and contractual hours).
    """
    existing = find_salary(s, payee.employee_id, month)
    if existing:
        return {
            "exists": True,
            "existingSalary": salary_to_dict(existing),
            "message": f"Salary for {payee.name} for {month} already exists.",
        }

    reports = month_work_reports(s, payee.user_id, month)
    total_hours = sum((zero_if_none(r.hours_worked) for r in reports), Decimal("0"))

    previous = (
        s.query(Salary)
        .filter(Salary.employee_id == payee.employee_id, Salary.month < month)
        .order_by(Salary.month.desc())
        .first()
    )
    basic = zero_if_none(previous.basic_salary) if previous else Decimal("0")
    contractual = zero_if_none(previous.contractual_hours) if previous else DEFAULT_CONTRACTUAL_HOURS
    hourly = basic / contractual if contractual > 0 else Decimal("0")
    base = hourly * total_hours

    return {
        "exists": False,
        "employee": {"id": payee.employee_id, "name": payee.name},
        "workReports": {
            "count": len(reports),
            "totalHours": money(total_hours),
            "reports": [
                {
                    "id": r.id,
                    "title": r.title,
                    "date": r.date.isoformat() if r.date else None,
                    "hoursWorked": money(r.hours_worked),
                }
                for r in reports
            ],
        },
        "preview": {
            "basicSalary": money(basic),
            "contractualHours": money(contractual),
            "actualWorkingHours": money(total_hours),
            "hourlyRate": money(hourly.quantize(_RATE, rounding=ROUND_HALF_UP)),
            "basePayment": money(base.quantize(_CENT, rounding=ROUND_HALF_UP)),
            "hasPreviousSalary": previous is not None,
        },
    }


def generate_salary(s: "Session", payload: dict, user: "User | None") -> Salary:
    employee_id = as_text(payload.get("employee_id"))
    month = as_text(payload.get("month"))
    if find_salary(s, employee_id, month):
        raise SalaryExistsError(f"Salary for this employee for {month} already exists.")
    data = dict(payload)
    if "actual_working_hours" not in data:
        payee = resolve_payee(s, employee_id)
        reports = month_work_reports(s, payee.user_id if payee else None, month)
        data["actual_working_hours"] = sum((zero_if_none(r.hours_worked) for r in reports), Decimal("0"))
    salary = create_salary(s, data, user)
    record_event(
        s,
        actor=user,
        action="salary.generate",
        entity_type="Salary",
        entity_id=salary.id,
        metadata={"employee_id": salary.employee_id, "month": salary.month},
    )
    return salary

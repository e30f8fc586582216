from __future__ import annotations

import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from app.agencyops.audit import record_event
from app.agencyops.constants import DEFAULT_EXCHANGE_RATE, EXCHANGE_RATE_KEY
from app.agencyops.csv_io import CsvRowError, get_field, read_csv, write_csv
from app.agencyops.modules.clients.models import Client
from app.agencyops.modules.finance.models import FinanceExpense, FinancePayment, FinanceProject, FinanceSetting
from app.agencyops.utils import (
    apply_changes,
    as_text,
    clean_str,
    date_errors,
    decimal_errors,
    json_value,
    money,
    parse_datetime,
    parse_decimal,
    zero_if_none,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.agencyops.models import User


PROJECT_STATUSES = ("active", "closed")
EXPENSE_TYPES = ("expense", "salary")

_PROJECT_PARSERS = {
    "name": as_text,
    "client_id": clean_str,
    "start_date": parse_datetime,
    "budget": zero_if_none,
    "expense": zero_if_none,
    "status": lambda v: (clean_str(v) or "active").lower(),
    "notes": clean_str,
}

_PAYMENT_PARSERS = {
    "client_id": clean_str,
    "project_id": clean_str,
    "amount": lambda v: parse_decimal(v, field="amount"),
    "conversion_rate": lambda v: parse_decimal(v, field="conversionRate"),
    "converted_amount": lambda v: parse_decimal(v, field="convertedAmount"),
    "currency": lambda v: (clean_str(v) or "USD").upper(),
    "date": parse_datetime,
    "notes": clean_str,
}

_EXPENSE_PARSERS = {
    "type": lambda v: (clean_str(v) or "expense").lower(),
    "project_id": clean_str,
    "amount": lambda v: parse_decimal(v, field="amount"),
    "currency": lambda v: (clean_str(v) or "BDT").upper(),
    "date": parse_datetime,
    "notes": clean_str,
}


def _required(payload: dict, fields: tuple[tuple[str, str], ...], partial: bool) -> list[str]:
    errors = []
    for key, label in fields:
        if not partial or key in payload:
            if payload.get(key) is None or str(payload.get(key)).strip() == "":
                errors.append(f"{label} is required.")
    return errors


# ---------- Settings / exchange rate ----------
def get_setting(s: "Session", key: str) -> FinanceSetting | None:
    return s.query(FinanceSetting).filter(FinanceSetting.key == key).one_or_none()


def set_setting(s: "Session", key: str, value: Any, user: "User | None", description: str | None = None) -> FinanceSetting:
    """Upsert a finance setting by key."""
    setting = get_setting(s, key)
    now = datetime.utcnow()
    old = setting.value if setting else None
    if setting is None:
        setting = FinanceSetting(key=key, value=str(value), description=description, created_at=now, updated_at=now)
        s.add(setting)
    else:
        setting.value = str(value)
        if description is not None:
            setting.description = description
        setting.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="finance_setting.set",
        entity_type="FinanceSetting",
        entity_id=setting.id,
        metadata={"key": key, "old": old, "new": setting.value},
    )
    return setting


def get_exchange_rate(s: "Session") -> float:
    setting = get_setting(s, EXCHANGE_RATE_KEY)
    if not setting:
        return DEFAULT_EXCHANGE_RATE
    try:
        rate = float(setting.value)
    except (TypeError, ValueError):
        return DEFAULT_EXCHANGE_RATE
    return rate if math.isfinite(rate) and rate > 0 else DEFAULT_EXCHANGE_RATE


# ---------- Projects ----------
def validate_project_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    errors = _required(payload, (("name", "Name"), ("client_id", "Client"), ("start_date", "Start date")), partial)
    status = as_text(payload.get("status")).lower()
    if status and status not in PROJECT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(PROJECT_STATUSES)}")
    errors.extend(decimal_errors(payload, "budget", "expense"))
    errors.extend(date_errors(payload, "start_date"))
    client_id = clean_str(payload.get("client_id"))
    if client_id and not s.get(Client, client_id):
        errors.append("Client not found")
    return errors


def create_project(s: "Session", payload: dict, user: "User | None") -> FinanceProject:
    now = datetime.utcnow()
    project = FinanceProject(status="active", budget=Decimal("0"), expense=Decimal("0"), created_at=now, updated_at=now)
    apply_changes(project, payload, _PROJECT_PARSERS)
    s.add(project)
    s.flush()
    record_event(
        s,
        actor=user,
        action="finance_project.create",
        entity_type="FinanceProject",
        entity_id=project.id,
        metadata={"name": project.name, "client_id": project.client_id},
    )
    return project


def update_project(s: "Session", project: FinanceProject, payload: dict, user: "User | None") -> FinanceProject:
    changes = apply_changes(project, payload, _PROJECT_PARSERS)
    project.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="finance_project.edit",
        entity_type="FinanceProject",
        entity_id=project.id,
        metadata={"changes": changes},
    )
    return project


# ---------- Payments ----------
def validate_payment_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    errors = _required(
        payload,
        (("client_id", "Client"), ("project_id", "Project"), ("amount", "Amount"), ("date", "Date")),
        partial,
    )
    errors.extend(decimal_errors(payload, "amount", "conversion_rate", "converted_amount"))
    errors.extend(date_errors(payload, "date"))
    client_id = clean_str(payload.get("client_id"))
    if client_id and not s.get(Client, client_id):
        errors.append("Client not found")
    project_id = clean_str(payload.get("project_id"))
    if project_id and not s.get(FinanceProject, project_id):
        errors.append("Project not found")
    return errors


def _fill_conversion(s: "Session", payment: FinancePayment, payload: dict) -> None:
    # Rate defaults to the configured exchange rate; BDT amount follows unless given explicitly.
    if payment.conversion_rate is None:
        payment.conversion_rate = Decimal(str(get_exchange_rate(s)))
    explicit = parse_decimal(payload.get("converted_amount"), field="convertedAmount")
    if explicit is None and payment.amount is not None:
        payment.converted_amount = (payment.amount * payment.conversion_rate).quantize(Decimal("0.01"))


def create_payment(s: "Session", payload: dict, user: "User | None") -> FinancePayment:
    now = datetime.utcnow()
    payment = FinancePayment(currency="USD", created_at=now, updated_at=now)
    apply_changes(payment, payload, _PAYMENT_PARSERS)
    _fill_conversion(s, payment, payload)
    s.add(payment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="finance_payment.create",
        entity_type="FinancePayment",
        entity_id=payment.id,
        metadata={"amount": payment.amount, "converted_amount": payment.converted_amount},
    )
    return payment


def update_payment(s: "Session", payment: FinancePayment, payload: dict, user: "User | None") -> FinancePayment:
    changes = apply_changes(payment, payload, _PAYMENT_PARSERS)
    if {"amount", "conversion_rate"} & set(changes):
        _fill_conversion(s, payment, payload)
    payment.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="finance_payment.edit",
        entity_type="FinancePayment",
        entity_id=payment.id,
        metadata={"changes": changes},
    )
    return payment


# ---------- Expenses ----------
def validate_expense_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    errors = _required(payload, (("amount", "Amount"), ("date", "Date")), partial)
    expense_type = as_text(payload.get("type")).lower()
    if expense_type and expense_type not in EXPENSE_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(EXPENSE_TYPES)}")
    errors.extend(decimal_errors(payload, "amount"))
    errors.extend(date_errors(payload, "date"))
    project_id = clean_str(payload.get("project_id"))
    if project_id and not s.get(FinanceProject, project_id):
        errors.append("Project not found")
    return errors


def create_expense(s: "Session", payload: dict, user: "User | None", *, expense_id: str | None = None) -> FinanceExpense:
    now = datetime.utcnow()
    expense = FinanceExpense(type="expense", currency="BDT", created_at=now, updated_at=now)
    if expense_id:
        expense.id = expense_id
    apply_changes(expense, payload, _EXPENSE_PARSERS)
    s.add(expense)
    s.flush()
    record_event(
        s,
        actor=user,
        action="finance_expense.create",
        entity_type="FinanceExpense",
        entity_id=expense.id,
        metadata={"type": expense.type, "amount": expense.amount, "project_id": expense.project_id},
    )
    return expense


def update_expense(s: "Session", expense: FinanceExpense, payload: dict, user: "User | None") -> FinanceExpense:
    changes = apply_changes(expense, payload, _EXPENSE_PARSERS)
    expense.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="finance_expense.edit",
        entity_type="FinanceExpense",
        entity_id=expense.id,
        metadata={"changes": changes},
    )
    return expense


def delete_record(s: "Session", obj: Any, user: "User | None", entity_type: str) -> None:
    record_event(
        s,
        actor=user,
        action=f"{entity_type.lower()}.delete",
        entity_type=entity_type,
        entity_id=obj.id,
    )
    s.delete(obj)


# ---------- Dashboard ----------
def _month_label(dt: datetime) -> str:
    return dt.strftime("%b %Y")


def finance_dashboard(s: "Session") -> dict:
    projects = s.query(FinanceProject).all()
    payments = s.query(FinancePayment).order_by(FinancePayment.date.asc()).all()
    expenses = s.query(FinanceExpense).order_by(FinanceExpense.date.asc()).all()
    rate = get_exchange_rate(s)

    total_payments_usd = sum(money(p.amount) for p in payments)
    total_payments_bdt = sum(money(p.converted_amount) for p in payments)
    total_expenses_bdt = sum(money(e.amount) for e in expenses)
    total_expenses_usd = total_expenses_bdt / rate
    expenses_only_bdt = sum(money(e.amount) for e in expenses if e.type == "expense")
    total_salaries_bdt = sum(money(e.amount) for e in expenses if e.type == "salary")

    payments_by_month: "OrderedDict[str, float]" = OrderedDict()
    for p in payments:
        label = _month_label(p.date)
        payments_by_month[label] = payments_by_month.get(label, 0.0) + money(p.amount)

    expenses_by_month: "OrderedDict[str, dict[str, float]]" = OrderedDict()
    for e in expenses:
        bucket = expenses_by_month.setdefault(_month_label(e.date), {"expenses": 0.0, "salaries": 0.0})
        if e.type == "expense":
            bucket["expenses"] += money(e.amount)
        else:
            bucket["salaries"] += money(e.amount)

    return {
        "summary": {
            "totalPaymentsUSD": total_payments_usd,
            "totalPaymentsBDT": total_payments_bdt,
            "totalExpensesUSD": total_expenses_usd,
            "totalExpensesBDT": total_expenses_bdt,
            "availableBalanceUSD": total_payments_usd - total_expenses_usd,
            "availableBalanceBDT": total_payments_bdt - total_expenses_bdt,
            "exchangeRate": rate,
            "totalFundUSD": total_payments_usd,
            "totalFundBDT": total_payments_bdt,
            "totalSalariesBDT": total_salaries_bdt,
            "netBalanceBDT": total_payments_bdt - expenses_only_bdt - total_salaries_bdt,
        },
        "charts": {
            "paymentsByMonth": dict(payments_by_month),
            "expensesByMonth": dict(expenses_by_month),
        },
        "counts": {
            "totalProjects": len(projects),
            "activeProjects": sum(1 for p in projects if p.status == "active"),
            "totalPayments": len(payments),
            "totalExpenses": len(expenses),
        },
    }


# ---------- Expense CSV ----------
EXPENSE_CSV_HEADERS = ("Expense ID", "Type", "Project ID", "Amount", "Currency", "Date", "Notes")


def export_expenses_csv(s: "Session") -> bytes:
    expenses = s.query(FinanceExpense).order_by(FinanceExpense.date.asc(), FinanceExpense.id.asc()).all()
    return write_csv(
        EXPENSE_CSV_HEADERS,
        ([e.id, e.type, e.project_id, e.amount, e.currency, e.date, e.notes] for e in expenses),
    )


@dataclass
class ExpensePreview:
    total_rows: int = 0
    rows: list[dict] = field(default_factory=list)
    errors: list[CsvRowError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def as_dict(self) -> dict:
        return {
            "totalRows": self.total_rows,
            "validRows": len(self.rows),
            "rows": [{k: json_value(v) for k, v in r.items()} for r in self.rows],
            "errors": [e.as_dict() for e in self.errors],
            "canConfirm": self.ok and bool(self.rows),
        }


def preview_expenses_csv(s: "Session", file_bytes: bytes) -> ExpensePreview:
    """
    Validate an expense CSV without writing anything.
    Every problem is reported against its 1-based row number (header = row 1).
    """
    preview = ExpensePreview()
    for idx, raw in read_csv(file_bytes, required=[("Amount", "amount"), ("Date", "date")]):
        preview.total_rows += 1
        payload = {
            "type": get_field(raw, "Type", "type") or "expense",
            "project_id": get_field(raw, "Project ID", "projectId", "project_id") or None,
            "amount": get_field(raw, "Amount", "amount"),
            "currency": get_field(raw, "Currency", "currency") or "BDT",
            "date": get_field(raw, "Date", "date"),
            "notes": get_field(raw, "Notes", "notes") or None,
        }
        errors = validate_expense_payload(s, payload)
        amount = None
        if not errors:
            amount = parse_decimal(payload["amount"], field="amount")
            if amount is not None and amount <= 0:
                errors.append("Amount must be greater than zero")
        if errors:
            preview.errors.extend(CsvRowError(idx, msg) for msg in errors)
            continue
        preview.rows.append(
            {
                "row": idx,
                "id": get_field(raw, "Expense ID", "id") or None,
                "type": payload["type"].lower(),
                "projectId": payload["project_id"],
                "amount": amount,
                "currency": payload["currency"].upper(),
                "date": parse_datetime(payload["date"]),
                "notes": payload["notes"],
            }
        )
    return preview


@dataclass
class ExpenseImportResult:
    imported: int = 0
    updated: int = 0


def confirm_expenses_csv(s: "Session", preview: ExpensePreview, user: "User | None") -> ExpenseImportResult:
    """Commit phase: caller must only pass a preview with no errors."""
    if not preview.ok:
        raise ValueError("Expense CSV has validation errors; fix them and preview again.")
    result = ExpenseImportResult()
    for row in preview.rows:
        payload = {
            "type": row["type"],
            "project_id": row["projectId"],
            "amount": row["amount"],
            "currency": row["currency"],
            "date": row["date"],
            "notes": row["notes"],
        }
        existing = s.get(FinanceExpense, row["id"]) if row["id"] else None
        if existing is not None:
            update_expense(s, existing, payload, user)
            result.updated += 1
        else:
            create_expense(s, payload, user, expense_id=row["id"])
            result.imported += 1
    record_event(
        s,
        actor=user,
        action="finance_expense.import_csv",
        entity_type="FinanceExpense",
        metadata={"imported": result.imported, "updated": result.updated},
    )
    return result

from __future__ import annotations

from datetime import date

from flask import Blueprint, g, request

from app.agencyops.csv_io import csv_download
from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.finance.models import FinanceExpense, FinancePayment, FinanceProject
from app.agencyops.modules.finance.service import (
    confirm_expenses_csv,
    create_expense,
    create_payment,
    create_project,
    delete_record,
    export_expenses_csv,
    finance_dashboard,
    get_exchange_rate,
    get_setting,
    preview_expenses_csv,
    set_setting,
    update_expense,
    update_payment,
    update_project,
    validate_expense_payload,
    validate_payment_payload,
    validate_project_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import as_text, json_body, payload_to_snake, serialize

bp = Blueprint("finance", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _uploaded_csv() -> bytes | None:
    f = request.files.get("file")
    if not f or not f.filename:
        return None
    return f.read()


# ---------- Projects ----------
@bp.get("/finance/projects")
@require_page_permission("finance", "view")
def projects_list():
    s = db_session()
    return [serialize(p) for p in s.query(FinanceProject).order_by(FinanceProject.created_at.desc()).all()]


@bp.get("/finance/projects/<project_id>")
@require_page_permission("finance", "view")
def project_detail(project_id: str):
    project = db_session().get(FinanceProject, project_id)
    if not project:
        return {"message": "Project not found"}, 404
    return serialize(project)


@bp.post("/finance/projects")
@require_page_permission("finance", "edit")
def project_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_project_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    project = create_project(s, payload, _current_user())
    s.commit()
    return serialize(project), 201


@bp.put("/finance/projects/<project_id>")
@require_page_permission("finance", "edit")
def project_update(project_id: str):
    s = db_session()
    project = s.get(FinanceProject, project_id)
    if not project:
        return {"message": "Project not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_project_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_project(s, project, payload, _current_user())
    s.commit()
    return serialize(project)


@bp.delete("/finance/projects/<project_id>")
@require_page_permission("finance", "delete")
def project_delete(project_id: str):
    s = db_session()
    project = s.get(FinanceProject, project_id)
    if not project:
        return {"message": "Project not found"}, 404
    delete_record(s, project, _current_user(), "FinanceProject")
    s.commit()
    return {"message": "Project deleted successfully"}


# ---------- Payments ----------
@bp.get("/finance/payments")
@require_page_permission("finance", "view")
def payments_list():
    s = db_session()
    q = s.query(FinancePayment)
    project_id = (request.args.get("projectId") or "").strip()
    if project_id:
        q = q.filter(FinancePayment.project_id == project_id)
    return [serialize(p) for p in q.order_by(FinancePayment.date.desc()).all()]


@bp.get("/finance/payments/<payment_id>")
@require_page_permission("finance", "view")
def payment_detail(payment_id: str):
    payment = db_session().get(FinancePayment, payment_id)
    if not payment:
        return {"message": "Payment not found"}, 404
    return serialize(payment)


@bp.post("/finance/payments")
@require_page_permission("finance", "edit")
def payment_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_payment_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    payment = create_payment(s, payload, _current_user())
    s.commit()
    return serialize(payment), 201


@bp.put("/finance/payments/<payment_id>")
@require_page_permission("finance", "edit")
def payment_update(payment_id: str):
    s = db_session()
    payment = s.get(FinancePayment, payment_id)
    if not payment:
        return {"message": "Payment not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_payment_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_payment(s, payment, payload, _current_user())
    s.commit()
    return serialize(payment)


@bp.delete("/finance/payments/<payment_id>")
@require_page_permission("finance", "delete")
def payment_delete(payment_id: str):
    s = db_session()
    payment = s.get(FinancePayment, payment_id)
    if not payment:
        return {"message": "Payment not found"}, 404
    delete_record(s, payment, _current_user(), "FinancePayment")
    s.commit()
    return {"message": "Payment deleted successfully"}


# ---------- Expenses ----------
@bp.get("/finance/expenses")
@require_page_permission("finance", "view")
def expenses_list():
    s = db_session()
    q = s.query(FinanceExpense)
    project_id = (request.args.get("projectId") or "").strip()
    if project_id:
        q = q.filter(FinanceExpense.project_id == project_id)
    expense_type = (request.args.get("type") or "").strip()
    if expense_type:
        q = q.filter(FinanceExpense.type == expense_type)
    return [serialize(e) for e in q.order_by(FinanceExpense.date.desc()).all()]


@bp.get("/finance/expenses/<expense_id>")
@require_page_permission("finance", "view")
def expense_detail(expense_id: str):
    expense = db_session().get(FinanceExpense, expense_id)
    if not expense:
        return {"message": "Expense not found"}, 404
    return serialize(expense)


@bp.post("/finance/expenses")
@require_page_permission("finance", "edit")
def expense_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_expense_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    expense = create_expense(s, payload, _current_user())
    s.commit()
    return serialize(expense), 201


@bp.put("/finance/expenses/<expense_id>")
@require_page_permission("finance", "edit")
def expense_update(expense_id: str):
    s = db_session()
    expense = s.get(FinanceExpense, expense_id)
    if not expense:
        return {"message": "Expense not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_expense_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_expense(s, expense, payload, _current_user())
    s.commit()
    return serialize(expense)


@bp.delete("/finance/expenses/<expense_id>")
@require_page_permission("finance", "delete")
def expense_delete(expense_id: str):
    s = db_session()
    expense = s.get(FinanceExpense, expense_id)
    if not expense:
        return {"message": "Expense not found"}, 404
    delete_record(s, expense, _current_user(), "FinanceExpense")
    s.commit()
    return {"message": "Expense deleted successfully"}


@bp.get("/finance/expenses/export/csv")
@require_page_permission("finance", "view")
def expenses_export_csv():
    data = export_expenses_csv(db_session())
    return csv_download(data, f"expenses_{date.today().strftime('%Y%m%d')}.csv")


@bp.post("/finance/expenses/import/preview")
@require_page_permission("finance", "edit")
def expenses_import_preview():
    data = _uploaded_csv()
    if data is None:
        return {"message": "No file uploaded"}, 400
    try:
        preview = preview_expenses_csv(db_session(), data)
    except ValueError as e:
        return {"message": str(e)}, 400
    return preview.as_dict()


@bp.post("/finance/expenses/import/confirm")
@require_page_permission("finance", "edit")
def expenses_import_confirm():
    data = _uploaded_csv()
    if data is None:
        return {"message": "No file uploaded"}, 400
    s = db_session()
    try:
        preview = preview_expenses_csv(s, data)
    except ValueError as e:
        return {"message": str(e)}, 400
    if not preview.ok:
        return {"message": "Invalid input", **preview.as_dict()}, 400
    result = confirm_expenses_csv(s, preview, _current_user())
    s.commit()
    return {
        "message": f"Imported {result.imported} new and updated {result.updated} existing expenses",
        "imported": result.imported,
        "updated": result.updated,
    }


# ---------- Settings ----------
@bp.get("/finance/settings/<key>")
@require_page_permission("finance", "view")
def setting_detail(key: str):
    setting = get_setting(db_session(), key)
    if not setting:
        return {"message": "Setting not found"}, 404
    return serialize(setting)


@bp.post("/finance/settings")
@require_page_permission("finance", "edit")
def setting_upsert():
    s = db_session()
    payload = json_body()
    key = as_text(payload.get("key"))
    value = payload.get("value")
    errors = []
    if not key:
        errors.append("Key is required.")
    if value is None or str(value).strip() == "":
        errors.append("Value is required.")
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    setting = set_setting(s, key, str(value).strip(), _current_user(), description=payload.get("description"))
    s.commit()
    return serialize(setting)


@bp.get("/finance/exchange-rate")
@require_page_permission("finance", "view")
def exchange_rate():
    return {"rate": get_exchange_rate(db_session())}


@bp.get("/finance/dashboard")
@require_page_permission("finance", "view")
def dashboard():
    return finance_dashboard(db_session())

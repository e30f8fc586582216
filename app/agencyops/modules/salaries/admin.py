from __future__ import annotations

from flask import Blueprint, g, request

from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.salaries.models import Salary
from app.agencyops.modules.salaries.service import (
    MONTH_RE,
    SalaryExistsError,
    create_salary,
    delete_salary,
    find_salary,
    generate_preview,
    generate_salary,
    resolve_payee,
    salary_stats,
    salary_to_dict,
    update_salary,
    validate_salary_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import as_text, json_body, payload_to_snake

bp = Blueprint("salaries", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/salaries")
@require_page_permission("salaries", "view")
def salaries_list():
    s = db_session()
    q = s.query(Salary)
    for arg, col in (("month", Salary.month), ("employeeId", Salary.employee_id), ("paymentStatus", Salary.payment_status)):
        v = (request.args.get(arg) or "").strip()
        if v and v != "all":
            q = q.filter(col == v)
    rows = q.order_by(Salary.month.desc(), Salary.employee_name.asc()).all()
    return [salary_to_dict(r) for r in rows]


@bp.get("/salaries/stats")
@require_page_permission("salaries", "view")
def salaries_stats():
    month = (request.args.get("month") or "").strip() or None
    if month and not MONTH_RE.match(month):
        return {"message": "Month must be in YYYY-MM format."}, 400
    return salary_stats(db_session(), month=month)


@bp.get("/salaries/generate-preview")
@require_page_permission("salaries", "view")
def salaries_generate_preview():
    s = db_session()
    employee_id = (request.args.get("employeeId") or "").strip()
    month = (request.args.get("month") or "").strip()
    if not employee_id or not MONTH_RE.match(month):
        return {"message": "employeeId and month (YYYY-MM) are required"}, 400
    payee = resolve_payee(s, employee_id)
    if not payee:
        return {"message": "Employee not found"}, 404
    return generate_preview(s, payee, month)


@bp.post("/salaries/generate")
@require_page_permission("salaries", "edit")
def salaries_generate():
    s = db_session()
    payload = payload_to_snake(json_body())
    employee_id = as_text(payload.get("employee_id"))
    month = as_text(payload.get("month"))
    if employee_id and find_salary(s, employee_id, month):
        return {"message": f"Salary for this employee for {month} already exists."}, 409
    errors = validate_salary_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    try:
        salary = generate_salary(s, payload, _current_user())
    except SalaryExistsError as e:
        s.rollback()
        return {"message": str(e)}, 409
    s.commit()
    return {"message": "Salary generated successfully", "salary": salary_to_dict(salary)}, 201


@bp.get("/salaries/<salary_id>")
@require_page_permission("salaries", "view")
def salary_detail(salary_id: str):
    salary = db_session().get(Salary, salary_id)
    if not salary:
        return {"message": "Salary not found"}, 404
    return salary_to_dict(salary)


@bp.post("/salaries")
@require_page_permission("salaries", "edit")
def salary_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_salary_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    salary = create_salary(s, payload, _current_user())
    s.commit()
    return salary_to_dict(salary), 201


@bp.put("/salaries/<salary_id>")
@require_page_permission("salaries", "edit")
def salary_update(salary_id: str):
    s = db_session()
    salary = s.get(Salary, salary_id)
    if not salary:
        return {"message": "Salary not found"}, 404
    payload = payload_to_snake(json_body())
    scoped = {"employee_id": salary.employee_id, "month": salary.month, **payload}
    errors = validate_salary_payload(s, scoped, partial=True, salary_id=salary.id)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_salary(s, salary, payload, _current_user())
    s.commit()
    return salary_to_dict(salary)


@bp.delete("/salaries/<salary_id>")
@require_page_permission("salaries", "delete")
def salary_delete(salary_id: str):
    s = db_session()
    salary = s.get(Salary, salary_id)
    if not salary:
        return {"message": "Salary not found"}, 404
    delete_salary(s, salary, _current_user())
    s.commit()
    return {"message": "Salary deleted successfully"}

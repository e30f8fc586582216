from __future__ import annotations

from flask import Blueprint, g, request

from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.employees.models import Employee
from app.agencyops.modules.employees.service import (
    create_employee,
    delete_employee,
    update_employee,
    validate_employee_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import json_body, parse_bool, payload_to_snake, serialize

bp = Blueprint("employees", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/employees")
@require_page_permission("salaries", "view")
def employees_list():
    s = db_session()
    q = s.query(Employee)
    if parse_bool(request.args.get("activeOnly")):
        q = q.filter(Employee.is_active.is_(True))
    return [serialize(e) for e in q.order_by(Employee.name.asc()).all()]


@bp.get("/employees/<employee_id>")
@require_page_permission("salaries", "view")
def employee_detail(employee_id: str):
    employee = db_session().get(Employee, employee_id)
    if not employee:
        return {"message": "Employee not found"}, 404
    return serialize(employee)


@bp.post("/employees")
@require_page_permission("salaries", "edit")
def employee_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_employee_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    employee = create_employee(s, payload, _current_user())
    s.commit()
    return serialize(employee), 201


@bp.put("/employees/<employee_id>")
@require_page_permission("salaries", "edit")
def employee_update(employee_id: str):
    s = db_session()
    employee = s.get(Employee, employee_id)
    if not employee:
        return {"message": "Employee not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_employee_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_employee(s, employee, payload, _current_user())
    s.commit()
    return serialize(employee)


@bp.delete("/employees/<employee_id>")
@require_page_permission("salaries", "delete")
def employee_delete(employee_id: str):
    s = db_session()
    employee = s.get(Employee, employee_id)
    if not employee:
        return {"message": "Employee not found"}, 404
    delete_employee(s, employee, _current_user())
    s.commit()
    return {"message": "Employee deleted successfully"}

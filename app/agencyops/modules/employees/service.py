from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.agencyops.audit import record_event
from app.agencyops.models import User
from app.agencyops.modules.employees.models import Employee
from app.agencyops.utils import apply_changes, as_text, clean_str, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


_FIELD_PARSERS = {
    "name": as_text,
    "department": clean_str,
    "position": clean_str,
    "notes": clean_str,
    "is_active": lambda v: parse_bool(v, default=True),
    "user_id": clean_str,
}


def validate_employee_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not as_text(payload.get("name")):
            errors.append("Name is required.")
    user_id = clean_str(payload.get("user_id"))
    if user_id and not s.get(User, user_id):
        errors.append("User not found")
    return errors


def create_employee(s: "Session", payload: dict, user: "User | None") -> Employee:
    now = datetime.utcnow()
    employee = Employee(is_active=True, created_at=now, updated_at=now)
    apply_changes(employee, payload, _FIELD_PARSERS)
    s.add(employee)
    s.flush()
    record_event(
        s,
        actor=user,
        action="employee.create",
        entity_type="Employee",
        entity_id=employee.id,
        metadata={"name": employee.name},
    )
    return employee


def update_employee(s: "Session", employee: Employee, payload: dict, user: "User | None") -> Employee:
    changes = apply_changes(employee, payload, _FIELD_PARSERS)
    employee.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="employee.edit",
        entity_type="Employee",
        entity_id=employee.id,
        metadata={"changes": changes},
    )
    return employee


def delete_employee(s: "Session", employee: Employee, user: "User | None") -> None:
    record_event(
        s,
        actor=user,
        action="employee.delete",
        entity_type="Employee",
        entity_id=employee.id,
        metadata={"name": employee.name},
    )
    s.delete(employee)

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.agencyops.audit import record_event
from app.agencyops.constants import REPORT_ADMIN_ROLES
from app.agencyops.models import User
from app.agencyops.modules.work_reports.models import WorkReport
from app.agencyops.utils import apply_changes, as_text, date_errors, decimal_errors, parse_datetime, parse_decimal

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


VALID_STATUSES = ("draft", "submitted", "approved")

_FIELD_PARSERS = {
    "user_id": as_text,
    "title": as_text,
    "description": as_text,
    "hours_worked": lambda v: parse_decimal(v, field="hoursWorked"),
    "date": parse_datetime,
    "status": lambda v: as_text(v, "submitted").lower(),
}


class WorkReportAccessError(PermissionError):
    pass


def sees_all_reports(user: User) -> bool:
    return user.role in REPORT_ADMIN_ROLES


def ensure_can_access(report: WorkReport, user: User) -> None:
    if not sees_all_reports(user) and report.user_id != user.id:
        raise WorkReportAccessError("Access denied")


def list_reports_for(s: "Session", user: User) -> list[WorkReport]:
    q = s.query(WorkReport)
    if not sees_all_reports(user):
        q = q.filter(WorkReport.user_id == user.id)
    return q.order_by(WorkReport.date.desc(), WorkReport.created_at.desc()).all()


def validate_work_report_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    for key, label in (
        ("title", "Title"),
        ("description", "Description"),
        ("hours_worked", "Hours worked"),
        ("date", "Date"),
    ):
        if not partial or key in payload:
            if payload.get(key) is None or str(payload.get(key)).strip() == "":
                errors.append(f"{label} is required.")
    status = as_text(payload.get("status")).lower()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    errors.extend(decimal_errors(payload, "hours_worked"))
    errors.extend(date_errors(payload, "date"))
    user_id = as_text(payload.get("user_id"))
    if user_id and not s.get(User, user_id):
        errors.append("User not found")
    return errors


def create_work_report(s: "Session", payload: dict, user: User) -> WorkReport:
    """
    Admins may file a report for any user (defaulting to themselves); everyone else is
    forced to their own id.
    """
    data = dict(payload)
    if sees_all_reports(user):
        data["user_id"] = as_text(data.get("user_id")) or user.id
    else:
        data["user_id"] = user.id

    now = datetime.utcnow()
    report = WorkReport(status="submitted", created_at=now, updated_at=now)
    apply_changes(report, data, _FIELD_PARSERS)
    s.add(report)
    s.flush()
    record_event(
        s,
        actor=user,
        action="work_report.create",
        entity_type="WorkReport",
        entity_id=report.id,
        metadata={"user_id": report.user_id, "hours_worked": report.hours_worked},
    )
    return report


def update_work_report(s: "Session", report: WorkReport, payload: dict, user: User) -> WorkReport:
    ensure_can_access(report, user)
    new_owner = as_text(payload.get("user_id"))
    if not sees_all_reports(user) and new_owner and new_owner != user.id:
        raise WorkReportAccessError("Cannot change work report owner")
    if not new_owner:
        payload = {k: v for k, v in payload.items() if k != "user_id"}
    changes = apply_changes(report, payload, _FIELD_PARSERS)
    report.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="work_report.edit",
        entity_type="WorkReport",
        entity_id=report.id,
        metadata={"changes": changes},
    )
    return report


def delete_work_report(s: "Session", report: WorkReport, user: User) -> None:
    ensure_can_access(report, user)
    record_event(
        s,
        actor=user,
        action="work_report.delete",
        entity_type="WorkReport",
        entity_id=report.id,
        metadata={"user_id": report.user_id},
    )
    s.delete(report)

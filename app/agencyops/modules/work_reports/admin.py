from __future__ import annotations

from flask import Blueprint, g

from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.work_reports.models import WorkReport
from app.agencyops.modules.work_reports.service import (
    WorkReportAccessError,
    create_work_report,
    delete_work_report,
    ensure_can_access,
    list_reports_for,
    update_work_report,
    validate_work_report_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import json_body, payload_to_snake, serialize

bp = Blueprint("work_reports", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/work-reports")
@require_page_permission("work_reports", "view")
def work_reports_list():
    return [serialize(r) for r in list_reports_for(db_session(), _current_user())]


@bp.get("/work-reports/<report_id>")
@require_page_permission("work_reports", "view")
def work_report_detail(report_id: str):
    report = db_session().get(WorkReport, report_id)
    if not report:
        return {"message": "Work report not found"}, 404
    try:
        ensure_can_access(report, _current_user())
    except WorkReportAccessError as e:
        return {"message": str(e)}, 403
    return serialize(report)


@bp.post("/work-reports")
@require_page_permission("work_reports", "edit")
def work_report_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_work_report_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    report = create_work_report(s, payload, _current_user())
    s.commit()
    return serialize(report), 201


@bp.put("/work-reports/<report_id>")
@require_page_permission("work_reports", "edit")
def work_report_update(report_id: str):
    s = db_session()
    report = s.get(WorkReport, report_id)
    if not report:
        return {"message": "Work report not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_work_report_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    try:
        update_work_report(s, report, payload, _current_user())
    except WorkReportAccessError as e:
        s.rollback()
        return {"message": str(e)}, 403
    s.commit()
    return serialize(report)


@bp.delete("/work-reports/<report_id>")
@require_page_permission("work_reports", "delete")
def work_report_delete(report_id: str):
    s = db_session()
    report = s.get(WorkReport, report_id)
    if not report:
        return {"message": "Work report not found"}, 404
    try:
        delete_work_report(s, report, _current_user())
    except WorkReportAccessError as e:
        return {"message": str(e)}, 403
    s.commit()
    return {"message": "Work report deleted successfully"}

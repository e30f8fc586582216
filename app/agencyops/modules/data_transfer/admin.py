from __future__ import annotations

import io
import json
from datetime import date, datetime

from flask import Blueprint, current_app, g, request, send_file

from app.agencyops.csv_io import csv_download
from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.data_transfer.service import export_all, export_table, import_all, table_csv, table_keys
from app.agencyops.rbac import SUPER_ADMIN_BYPASS, require_page_permission

bp = Blueprint("data_transfer", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _json_download(payload, filename: str):
    data = json.dumps(payload, indent=2, default=str).encode("utf-8")
    return send_file(
        io.BytesIO(data),
        mimetype="application/json",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )


def _import_document():
    """The export document, sent either as the JSON body or as an uploaded .json file."""
    f = request.files.get("file")
    if f and f.filename:
        try:
            return json.loads(f.read().decode("utf-8-sig"))
        except (UnicodeDecodeError, ValueError):
            return None
    return request.get_json(silent=True)


@bp.get("/data/export")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def data_export():
    s = db_session()
    doc = export_all(s, _current_user())
    s.commit()
    return _json_download(doc, f"agency-data-export-{date.today().isoformat()}.json")


@bp.post("/data/import")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def data_import():
    doc = _import_document()
    if not isinstance(doc, dict):
        return {"message": "Invalid import file: expected a JSON object from the data export"}, 400
    s = db_session()
    user = _current_user()
    try:
        result = import_all(s, doc, user)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Data import crashed (request_id=%s)", getattr(g, "request_id", None))
        raise
    return {
        "message": "Data import completed",
        "results": result.as_dict(),
        "importedAt": datetime.utcnow().isoformat() + "Z",
        "importedBy": user.username,
    }


@bp.get("/backup/full")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def backup_full():
    s = db_session()
    doc = export_all(s, _current_user())
    s.commit()
    return _json_download(doc, f"backup-full-{date.today().isoformat()}.json")


@bp.get("/backup/tables")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def backup_tables():
    return {"tables": table_keys()}


@bp.get("/backup/<table>.json")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def backup_table_json(table: str):
    try:
        rows = export_table(db_session(), table)
    except KeyError:
        return {"message": f"Unknown table: {table}"}, 404
    return _json_download(rows, f"backup-{table}-{date.today().isoformat()}.json")


@bp.get("/backup/<table>.csv")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def backup_table_csv(table: str):
    try:
        data = table_csv(db_session(), table)
    except KeyError:
        return {"message": f"Unknown table: {table}"}, 404
    return csv_download(data, f"backup-{table}-{date.today().isoformat()}.csv")

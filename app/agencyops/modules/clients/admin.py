from __future__ import annotations

from datetime import date

from flask import Blueprint, g, request

from app.agencyops.csv_io import csv_download
from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.clients.models import Client
from app.agencyops.modules.clients.service import (
    create_client,
    delete_client,
    export_clients_csv,
    import_clients_csv,
    update_client,
    validate_client_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import json_body, payload_to_snake, serialize

bp = Blueprint("clients", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/clients")
@require_page_permission("clients", "view")
def clients_list():
    s = db_session()
    q = s.query(Client)
    search = (request.args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(
            (Client.client_name.ilike(like))
            | (Client.business_name.ilike(like))
            | (Client.email.ilike(like))
        )
    status = (request.args.get("status") or "").strip()
    if status:
        q = q.filter(Client.status == status)
    return [serialize(c) for c in q.order_by(Client.created_at.desc()).all()]


@bp.get("/clients/<client_id>")
@require_page_permission("clients", "view")
def client_detail(client_id: str):
    client = db_session().get(Client, client_id)
    if not client:
        return {"message": "Client not found"}, 404
    return serialize(client)


@bp.post("/clients")
@require_page_permission("clients", "edit")
def client_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_client_payload(payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    client = create_client(s, payload, _current_user())
    s.commit()
    return serialize(client), 201


@bp.put("/clients/<client_id>")
@require_page_permission("clients", "edit")
def client_update(client_id: str):
    s = db_session()
    client = s.get(Client, client_id)
    if not client:
        return {"message": "Client not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_client_payload(payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_client(s, client, payload, _current_user())
    s.commit()
    return serialize(client)


@bp.delete("/clients/<client_id>")
@require_page_permission("clients", "delete")
def client_delete(client_id: str):
    s = db_session()
    client = s.get(Client, client_id)
    if not client:
        return {"message": "Client not found"}, 404
    delete_client(s, client, _current_user())
    s.commit()
    return {"message": "Client deleted successfully"}


@bp.get("/clients/export/csv")
@require_page_permission("clients", "view")
def clients_export_csv():
    data = export_clients_csv(db_session())
    return csv_download(data, f"clients_{date.today().strftime('%Y%m%d')}.csv")


@bp.post("/clients/import/csv")
@require_page_permission("clients", "edit")
def clients_import_csv():
    f = request.files.get("file")
    if not f or not f.filename:
        return {"message": "No file uploaded"}, 400
    s = db_session()
    try:
        result = import_clients_csv(s, f.read(), _current_user())
    except ValueError as e:
        s.rollback()
        return {"message": str(e)}, 400
    s.commit()
    return {
        "message": f"Imported {result.imported} new and updated {result.updated} existing clients",
        **result.as_dict(),
    }

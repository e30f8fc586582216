from __future__ import annotations

from flask import Blueprint, g, request

from app.agencyops.constants import PAGE_ACTIONS
from app.agencyops.db import db_session
from app.agencyops.models import Page, RolePermission, User
from app.agencyops.modules.permissions.service import (
    bulk_update_role_permissions,
    list_role_permissions,
    role_permission_to_dict,
    update_role_permission,
    validate_flags_payload,
)
from app.agencyops.rbac import SUPER_ADMIN_BYPASS, check_user_page_permission, require_auth, require_page_permission
from app.agencyops.utils import json_body, payload_to_snake, serialize

bp = Blueprint("permissions", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/pages")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def pages_list():
    s = db_session()
    return [serialize(p) for p in s.query(Page).order_by(Page.created_at.desc()).all()]


@bp.get("/role-permissions")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def role_permissions_list():
    return [role_permission_to_dict(rp) for rp in list_role_permissions(db_session())]


@bp.get("/role-permissions/<role>")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def role_permissions_for_role(role: str):
    return [role_permission_to_dict(rp) for rp in list_role_permissions(db_session(), role)]


@bp.put("/role-permissions/bulk")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def role_permissions_bulk():
    s = db_session()
    body = request.get_json(silent=True)
    if not isinstance(body, list):
        return {"message": "Invalid input", "errors": ["Body must be a list of permission updates"]}, 400
    updates = []
    errors = []
    for i, raw in enumerate(body):
        item = payload_to_snake(raw) if isinstance(raw, dict) else {}
        if not isinstance(item.get("id"), str) or not item.get("id"):
            errors.append(f"Item {i}: id is required")
            continue
        errors.extend(f"Item {i}: {e}" for e in validate_flags_payload(item))
        updates.append(item)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    updated = bulk_update_role_permissions(s, updates, _current_user())
    s.commit()
    return [role_permission_to_dict(rp) for rp in updated]


@bp.put("/role-permissions/<permission_id>")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def role_permission_update(permission_id: str):
    s = db_session()
    rp = s.get(RolePermission, permission_id)
    if not rp:
        return {"message": "Role permission not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_flags_payload(payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_role_permission(s, rp, payload, _current_user())
    s.commit()
    return role_permission_to_dict(rp)


@bp.get("/permissions/check/<page_key>")
@require_auth
def permission_check(page_key: str):
    action = (request.args.get("action") or "view").strip()
    if action not in PAGE_ACTIONS:
        return {"message": "Invalid action. Must be 'view', 'edit', or 'delete'"}, 400
    user = _current_user()
    return {"hasPermission": check_user_page_permission(db_session(), user.id, page_key, action)}

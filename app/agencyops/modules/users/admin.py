from __future__ import annotations

from flask import Blueprint, g

from app.agencyops.db import db_session
from app.agencyops.models import User, UserMenuPermission
from app.agencyops.modules.users.service import (
    UserDeleteError,
    create_user,
    default_menu_permissions,
    delete_user,
    get_menu_permissions,
    update_user,
    upsert_menu_permissions,
    user_to_dict,
    validate_user_payload,
)
from app.agencyops.rbac import SUPER_ADMIN_BYPASS, PagePolicy, policy_allows, require_auth, require_page_permission
from app.agencyops.utils import as_text, json_body, payload_to_snake, serialize

bp = Blueprint("users", __name__)

_ADMIN_VIEW = PagePolicy(page_key="admin", action="view", bypass_roles=SUPER_ADMIN_BYPASS)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Users ----------
@bp.get("/users")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def users_list():
    s = db_session()
    return [user_to_dict(u) for u in s.query(User).order_by(User.created_at.asc()).all()]


@bp.post("/users")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def user_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_user_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    user = create_user(s, payload, _current_user())
    s.commit()
    return user_to_dict(user), 201


@bp.put("/users/<user_id>")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def user_update(user_id: str):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        return {"message": "User not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_user_payload(s, payload, partial=True, user_id=user.id)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_user(s, user, payload, _current_user())
    s.commit()
    return user_to_dict(user)


@bp.delete("/users/<user_id>")
@require_page_permission("admin", "delete", bypass_roles=SUPER_ADMIN_BYPASS)
def user_delete(user_id: str):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        return {"message": "User not found"}, 404
    try:
        delete_user(s, user, _current_user())
    except UserDeleteError as e:
        return {"message": str(e)}, 400
    s.commit()
    return {"message": "User deleted successfully"}


# ---------- Menu permissions ----------
@bp.get("/user-menu-permissions")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def menu_permissions_list():
    s = db_session()
    return [serialize(p) for p in s.query(UserMenuPermission).all()]


@bp.get("/user-menu-permissions/<user_id>")
@require_auth
def menu_permissions_detail(user_id: str):
    user = _current_user()
    s = db_session()
    # Everyone may read their own menu; reading another user's needs the admin page.
    if user.id != user_id and not policy_allows(s, user, _ADMIN_VIEW):
        return {"message": "Access denied. You don't have view permission for this page."}, 403
    if not s.get(User, user_id):
        return {"message": "User not found"}, 404
    perms = get_menu_permissions(s, user_id)
    return serialize(perms) if perms else default_menu_permissions(user_id)


@bp.post("/user-menu-permissions")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def menu_permissions_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    user_id = as_text(payload.pop("user_id", None))
    if not user_id:
        return {"message": "Invalid input", "errors": ["User is required."]}, 400
    if not s.get(User, user_id):
        return {"message": "User not found"}, 404
    perms = upsert_menu_permissions(s, user_id, payload, _current_user())
    s.commit()
    return serialize(perms), 201


@bp.put("/user-menu-permissions/<user_id>")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def menu_permissions_update(user_id: str):
    s = db_session()
    if not s.get(User, user_id):
        return {"message": "User not found"}, 404
    payload = payload_to_snake(json_body())
    payload.pop("user_id", None)
    perms = upsert_menu_permissions(s, user_id, payload, _current_user())
    s.commit()
    return serialize(perms)

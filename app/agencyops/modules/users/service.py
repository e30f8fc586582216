from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from werkzeug.security import generate_password_hash

from app.agencyops.audit import record_event
from app.agencyops.constants import VALID_ROLES
from app.agencyops.models import User, UserMenuPermission
from app.agencyops.utils import apply_changes, as_text, clean_str, parse_bool, serialize, to_camel

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


MENU_FLAGS = (
    "dashboard",
    "expense_entry",
    "admin_panel",
    "advantix_agency",
    "investment_mgmt",
    "fund_mgmt",
    "subscriptions",
)

_USER_PARSERS = {
    "name": clean_str,
    "username": as_text,
    "role": lambda v: as_text(v, "user"),
    "is_active": lambda v: parse_bool(v, default=True),
}
_MENU_PARSERS = {f: (lambda v, _f=f: parse_bool(v, default=(_f == "dashboard"))) for f in MENU_FLAGS}


class UserDeleteError(ValueError):
    pass


def user_to_dict(user: User) -> dict[str, Any]:
    return serialize(user, exclude=("password",))


def validate_user_payload(s: "Session", payload: dict, *, partial: bool = False, user_id: str | None = None) -> list[str]:
    errors = []
    if not partial or "username" in payload:
        if not as_text(payload.get("username")):
            errors.append("Username is required.")
    if not partial:
        if not (payload.get("password") or ""):
            errors.append("Password is required.")
    password = payload.get("password")
    if password and len(str(password)) < 6:
        errors.append("Password must be at least 6 characters.")
    role = as_text(payload.get("role"))
    if role and role not in VALID_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    username = as_text(payload.get("username"))
    if username:
        existing = s.query(User).filter(User.username == username).one_or_none()
        if existing and existing.id != user_id:
            errors.append("Username already exists.")
    return errors


def create_user(s: "Session", payload: dict, actor: "User | None", *, user_id: str | None = None) -> User:
    user = User(role="user", is_active=True, created_at=datetime.utcnow())
    if user_id:
        user.id = user_id
    apply_changes(user, payload, _USER_PARSERS)
    user.password = generate_password_hash(str(payload["password"]))
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=user.id,
        metadata={"username": user.username, "role": user.role},
    )
    return user


def update_user(s: "Session", user: User, payload: dict, actor: "User | None") -> User:
    changes = apply_changes(user, payload, _USER_PARSERS)
    # Blank password on edit means "keep the current one".
    if payload.get("password"):
        user.password = generate_password_hash(str(payload["password"]))
        changes["password"] = {"old": "***", "new": "***"}
    record_event(
        s,
        actor=actor,
        action="user.edit",
        entity_type="User",
        entity_id=user.id,
        metadata={"changes": changes},
    )
    return user


def delete_user(s: "Session", user: User, actor: User) -> None:
    if user.id == actor.id:
        raise UserDeleteError("You cannot delete your own account")
    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=user.id,
        metadata={"username": user.username},
    )
    s.delete(user)


def get_menu_permissions(s: "Session", user_id: str) -> UserMenuPermission | None:
    return s.query(UserMenuPermission).filter(UserMenuPermission.user_id == user_id).one_or_none()


def default_menu_permissions(user_id: str) -> dict[str, Any]:
    """What the sidebar shows for a user without a stored row."""
    out: dict[str, Any] = {"id": None, "userId": user_id}
    for f in MENU_FLAGS:
        out[to_camel(f)] = f == "dashboard"
    return out


def upsert_menu_permissions(s: "Session", user_id: str, payload: dict, actor: "User | None") -> UserMenuPermission:
    perms = get_menu_permissions(s, user_id)
    now = datetime.utcnow()
    if not perms:
        perms = UserMenuPermission(user_id=user_id, created_at=now)
        for f in MENU_FLAGS:
            setattr(perms, f, f == "dashboard")
        s.add(perms)
    changes = apply_changes(perms, payload, _MENU_PARSERS)
    perms.updated_at = now
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.menu_permissions.update",
        entity_type="UserMenuPermission",
        entity_id=perms.id,
        metadata={"user_id": user_id, "changes": changes},
    )
    return perms

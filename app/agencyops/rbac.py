from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import current_app, g
from sqlalchemy.orm import Session

from app.agencyops.constants import PAGE_ACTIONS, ROLE_SUPER_ADMIN
from app.agencyops.db import db_session
from app.agencyops.models import Page, RolePermission, User


@dataclass(frozen=True)
class PagePolicy:
    """
    What a route requires: an action on a page, plus roles that may skip the matrix lookup.
    """

    page_key: str
    action: str = "view"
    bypass_roles: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.action not in PAGE_ACTIONS:
            raise ValueError(f"Unknown page action: {self.action}")

    def bypasses(self, user: User) -> bool:
        return user.role in self.bypass_roles


# Admin-only endpoints let super admins through without consulting the matrix.
SUPER_ADMIN_BYPASS = frozenset({ROLE_SUPER_ADMIN})


def _permission_flag(rp: RolePermission, action: str) -> bool:
    if action == "view":
        return bool(rp.can_view)
    if action == "edit":
        return bool(rp.can_edit)
    if action == "delete":
        return bool(rp.can_delete)
    return False


def check_user_page_permission(s: Session, user_id: str, page_key: str, action: str) -> bool:
    """
    Resolve a (user, page, action) triple against the role/page matrix.

    super_admin always passes, even for pages that do not exist. Other roles need an active
    page and an explicit RolePermission row; the flag matching the action is returned as-is
    (edit/delete do not additionally require can_view).
    """
    user = s.get(User, user_id)
    if not user:
        return False
    if user.role == ROLE_SUPER_ADMIN:
        return True

    page = s.query(Page).filter(Page.page_key == page_key).one_or_none()
    if not page or not page.is_active:
        return False

    rp = (
        s.query(RolePermission)
        .filter(RolePermission.role == user.role, RolePermission.page_id == page.id)
        .one_or_none()
    )
    if not rp:
        return False
    return _permission_flag(rp, action)


def policy_allows(s: Session, user: User, policy: PagePolicy) -> bool:
    if policy.bypasses(user):
        return True
    return check_user_page_permission(s, user.id, policy.page_key, policy.action)


def _deny(status: int, message: str):
    return {"message": message}, status


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user:
            return _deny(401, getattr(g, "auth_error", None) or "Unauthorized")
        return fn(*args, **kwargs)

    return wrapped


def require_page_permission(
    page_key: str,
    action: str = "view",
    *,
    bypass_roles: frozenset[str] | tuple[str, ...] = (),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    policy = PagePolicy(page_key=page_key, action=action, bypass_roles=frozenset(bypass_roles))

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> 401 (missing token, or a token that did not resolve)
            if not user:
                return _deny(401, getattr(g, "auth_error", None) or "Unauthorized")
            # Authenticated but unauthorized -> 403
            if not policy_allows(db_session(), user, policy):
                g.missing_permission = f"{policy.page_key}.{policy.action}"
                current_app.logger.warning(
                    "Forbidden: user=%s role=%s missing_permission=%s request_id=%s",
                    user.username,
                    user.role,
                    g.missing_permission,
                    getattr(g, "request_id", None),
                )
                return _deny(403, f"Access denied. You don't have {policy.action} permission for this page.")
            return fn(*args, **kwargs)

        wrapped.page_policy = policy  # type: ignore[attr-defined]
        return wrapped

    return decorator

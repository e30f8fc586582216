from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.agencyops.audit import record_event
from app.agencyops.constants import DEFAULT_PAGES, DEFAULT_ROLE_PERMISSIONS, VALID_ROLES
from app.agencyops.models import Page, RolePermission, User
from app.agencyops.utils import parse_bool, serialize

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

PERMISSION_FLAGS = ("can_view", "can_edit", "can_delete")


@dataclass
class SeedResult:
    pages_created: int = 0
    permissions_created: int = 0


def seed_default_permissions(s: "Session") -> SeedResult:
    """
    Create any missing default pages, then make sure every role has exactly one row for every
    page. Pairs absent from the default matrix get an all-False row so the admin panel can grant
    them later. Existing rows are left untouched so edits made in the admin panel survive
    re-seeding.
    """
    result = SeedResult()
    pages: dict[str, Page] = {p.page_key: p for p in s.query(Page).all()}
    for page_key, display_name, path, description in DEFAULT_PAGES:
        if page_key in pages:
            continue
        page = Page(page_key=page_key, display_name=display_name, path=path, description=description, is_active=True)
        s.add(page)
        pages[page_key] = page
        result.pages_created += 1
    s.flush()

    existing = {(rp.role, rp.page_id) for rp in s.query(RolePermission).all()}
    now = datetime.utcnow()
    for role in VALID_ROLES:
        matrix = DEFAULT_ROLE_PERMISSIONS.get(role, {})
        for page_key, page in pages.items():
            if (role, page.id) in existing:
                continue
            can_view, can_edit, can_delete = matrix.get(page_key, (False, False, False))
            s.add(
                RolePermission(
                    role=role,
                    page_id=page.id,
                    can_view=can_view,
                    can_edit=can_edit,
                    can_delete=can_delete,
                    created_at=now,
                    updated_at=now,
                )
            )
            result.permissions_created += 1
    s.flush()
    if result.pages_created or result.permissions_created:
        logger.info("Seeded %d pages and %d role permissions", result.pages_created, result.permissions_created)
    return result


def role_permission_to_dict(rp: RolePermission) -> dict[str, Any]:
    out = serialize(rp)
    if rp.page:
        out["pageKey"] = rp.page.page_key
        out["pageName"] = rp.page.display_name
    return out


def list_role_permissions(s: "Session", role: str | None = None) -> list[RolePermission]:
    q = s.query(RolePermission)
    if role:
        q = q.filter(RolePermission.role == role)
    return q.order_by(RolePermission.created_at.desc()).all()


def validate_flags_payload(payload: dict) -> list[str]:
    errors = []
    for key in PERMISSION_FLAGS:
        if key in payload and not isinstance(payload[key], bool):
            errors.append(f"{key} must be a boolean")
    return errors


def update_role_permission(s: "Session", rp: RolePermission, payload: dict, user: "User | None") -> RolePermission:
    changes = {}
    for key in PERMISSION_FLAGS:
        if key not in payload:
            continue
        new = parse_bool(payload[key])
        if new != getattr(rp, key):
            changes[key] = {"old": getattr(rp, key), "new": new}
            setattr(rp, key, new)
    rp.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="role_permission.edit",
        entity_type="RolePermission",
        entity_id=rp.id,
        metadata={"role": rp.role, "page_id": rp.page_id, "changes": changes},
    )
    return rp


def bulk_update_role_permissions(s: "Session", updates: list[dict], user: "User | None") -> list[RolePermission]:
    """Apply [{id, can_view?, can_edit?, can_delete?}, ...]; unknown ids are skipped."""
    out = []
    for item in updates:
        rp = s.get(RolePermission, item.get("id"))
        if not rp:
            logger.info("Bulk role-permission update skipped unknown id=%s", item.get("id"))
            continue
        out.append(update_role_permission(s, rp, item, user))
    return out

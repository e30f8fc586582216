from __future__ import annotations

from flask import Blueprint, g

from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.tags.models import Tag
from app.agencyops.modules.tags.service import create_tag, delete_tag, update_tag, validate_tag_payload
from app.agencyops.rbac import SUPER_ADMIN_BYPASS, require_page_permission
from app.agencyops.utils import json_body, payload_to_snake, serialize

bp = Blueprint("tags", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/tags")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def tags_list():
    s = db_session()
    return [serialize(t) for t in s.query(Tag).order_by(Tag.name.asc()).all()]


@bp.get("/tags/<tag_id>")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def tag_detail(tag_id: str):
    tag = db_session().get(Tag, tag_id)
    if not tag:
        return {"message": "Tag not found"}, 404
    return serialize(tag)


@bp.post("/tags")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def tag_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_tag_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    tag = create_tag(s, payload, _current_user())
    s.commit()
    return serialize(tag), 201


@bp.put("/tags/<tag_id>")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def tag_update(tag_id: str):
    s = db_session()
    tag = s.get(Tag, tag_id)
    if not tag:
        return {"message": "Tag not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_tag_payload(s, payload, partial=True, tag_id=tag.id)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_tag(s, tag, payload, _current_user())
    s.commit()
    return serialize(tag)


@bp.delete("/tags/<tag_id>")
@require_page_permission("admin", "delete", bypass_roles=SUPER_ADMIN_BYPASS)
def tag_delete(tag_id: str):
    s = db_session()
    tag = s.get(Tag, tag_id)
    if not tag:
        return {"message": "Tag not found"}, 404
    delete_tag(s, tag, _current_user())
    s.commit()
    return {"message": "Tag deleted successfully"}

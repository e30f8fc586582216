from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from app.agencyops.audit import record_event
from app.agencyops.modules.tags.models import Tag
from app.agencyops.utils import apply_changes, as_text, clean_str, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.agencyops.models import User


DEFAULT_COLOR = "#3B82F6"
_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

_FIELD_PARSERS = {
    "name": as_text,
    "color": lambda v: clean_str(v) or DEFAULT_COLOR,
    "description": clean_str,
    "is_active": lambda v: parse_bool(v, default=True),
}


def validate_tag_payload(s: "Session", payload: dict, *, partial: bool = False, tag_id: str | None = None) -> list[str]:
    errors = []
    name = as_text(payload.get("name"))
    if not partial or "name" in payload:
        if not name:
            errors.append("Name is required.")
    if name:
        dupe = s.query(Tag).filter(Tag.name == name).one_or_none()
        if dupe and dupe.id != tag_id:
            errors.append("A tag with this name already exists.")
    color = clean_str(payload.get("color"))
    if color and not _HEX_COLOR.match(color):
        errors.append("Color must be a hex value like #3B82F6.")
    return errors


def create_tag(s: "Session", payload: dict, user: "User | None") -> Tag:
    now = datetime.utcnow()
    tag = Tag(color=DEFAULT_COLOR, is_active=True, created_at=now, updated_at=now)
    apply_changes(tag, payload, _FIELD_PARSERS)
    s.add(tag)
    s.flush()
    record_event(s, actor=user, action="tag.create", entity_type="Tag", entity_id=tag.id, metadata={"name": tag.name})
    return tag


def update_tag(s: "Session", tag: Tag, payload: dict, user: "User | None") -> Tag:
    changes = apply_changes(tag, payload, _FIELD_PARSERS)
    tag.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="tag.edit", entity_type="Tag", entity_id=tag.id, metadata={"changes": changes})
    return tag


def delete_tag(s: "Session", tag: Tag, user: "User | None") -> None:
    record_event(s, actor=user, action="tag.delete", entity_type="Tag", entity_id=tag.id, metadata={"name": tag.name})
    s.delete(tag)

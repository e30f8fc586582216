from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from flask import request
from sqlalchemy import inspect as sa_inspect

_CAMEL_RE = re.compile(r"_([a-z0-9])")
_SNAKE_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def to_snake(name: str) -> str:
    return _SNAKE_RE.sub("_", name).lower()


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO-8601 strings (including a trailing 'Z') and plain dates into a naive UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    dt = parse_datetime(s)
    return dt.date() if dt else None


def parse_decimal(value: Any, *, field: str = "value") -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    s = str(value).strip().replace(",", "")
    if not s:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation as e:
        raise ValueError(f"{field} must be a number") from e
    if not d.is_finite():
        raise ValueError(f"{field} must be a number")
    return d


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def money(value: Decimal | None) -> float:
    return float(value) if value is not None else 0.0


def json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def serialize(obj: Any, *, exclude: Iterable[str] = ()) -> dict[str, Any]:
    """Model instance -> camelCase JSON-ready dict (column attributes only)."""
    skip = set(exclude)
    out: dict[str, Any] = {}
    for attr in sa_inspect(obj).mapper.column_attrs:
        if attr.key in skip:
            continue
        out[to_camel(attr.key)] = json_value(getattr(obj, attr.key))
    return out


class InvalidPayload(ValueError):
    pass


def json_body() -> dict[str, Any]:
    """
    The request's JSON object; empty when the body is missing or not JSON.
    A JSON value that is not an object raises InvalidPayload (answered with a 400).
    """
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise InvalidPayload("Body must be a JSON object")
    return body


def payload_to_snake(payload: dict[str, Any]) -> dict[str, Any]:
    """Accept camelCase (API) or snake_case keys; return snake_case."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidPayload("Body must be a JSON object")
    return {to_snake(k) if not k.islower() else k: v for k, v in payload.items()}


def as_text(value: Any, default: str = "") -> str:
    """Stripped string form of a JSON scalar; None or blank gives default."""
    if value is None:
        return default
    return str(value).strip() or default


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def apply_changes(obj: Any, payload: dict[str, Any], parsers: dict[str, Callable[[Any], Any]]) -> dict[str, dict[str, Any]]:
    """
    Apply the keys present in payload (partial update) through their parser.
    Returns {field: {"old": ..., "new": ...}} for fields that actually changed.
    """
    changes: dict[str, dict[str, Any]] = {}
    for key, parse in parsers.items():
        if key not in payload:
            continue
        new = parse(payload[key])
        old = getattr(obj, key)
        if new != old:
            changes[key] = {"old": json_value(old), "new": json_value(new)}
            setattr(obj, key, new)
    return changes


def decimal_errors(payload: dict[str, Any], *fields: str) -> list[str]:
    errors = []
    for f in fields:
        if f not in payload:
            continue
        try:
            parse_decimal(payload[f], field=to_camel(f))
        except ValueError as e:
            errors.append(str(e))
    return errors


def date_errors(payload: dict[str, Any], *fields: str) -> list[str]:
    errors = []
    for f in fields:
        if f not in payload:
            continue
        try:
            parse_datetime(payload[f])
        except (TypeError, ValueError):
            errors.append(f"{to_camel(f)} must be an ISO date")
    return errors


def zero_if_none(value: Any) -> Decimal:
    return parse_decimal(value) or Decimal("0")

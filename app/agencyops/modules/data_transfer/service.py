from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, Date, DateTime, Numeric
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.agencyops.audit import record_event
from app.agencyops.csv_io import write_csv
from app.agencyops.models import User
from app.agencyops.modules.data_transfer.handlers import HANDLERS, EntityHandler, handler_map, import_order
from app.agencyops.utils import json_value, parse_bool, parse_date, parse_datetime, parse_decimal, serialize, to_camel

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class RecordError(ValueError):
    pass


@dataclass
class ImportResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    total_processed: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "totalProcessed": self.total_processed,
            "errors": self.errors,
        }


@dataclass
class _ImportContext:
    # handler key -> {id in the document: id in this database}, for rows matched by natural key
    id_map: dict[str, dict[str, str]] = field(default_factory=dict)

    def resolve(self, key: str, value: str) -> str:
        return self.id_map.get(key, {}).get(value, value)


# ---------- Export ----------
def _export_rows(s: "Session", handler: EntityHandler) -> list[dict[str, Any]]:
    model = handler.model
    order = getattr(model, "created_at", None)
    q = s.query(model)
    if order is not None:
        q = q.order_by(order.asc())
    return [serialize(obj) for obj in q.all()]


def export_all(s: "Session", user: "User | None") -> dict[str, Any]:
    doc: dict[str, Any] = {}
    for handler in import_order():
        doc[handler.key] = _export_rows(s, handler)
    doc["exportedAt"] = datetime.utcnow().isoformat() + "Z"
    doc["exportedBy"] = user.username if user else None
    record_event(
        s,
        actor=user,
        action="data.export",
        entity_type="DataExport",
        metadata={k: len(v) for k, v in doc.items() if isinstance(v, list)},
    )
    return doc


def export_table(s: "Session", key: str) -> list[dict[str, Any]]:
    handler = handler_map().get(key)
    if handler is None:
        raise KeyError(key)
    return _export_rows(s, handler)


def table_csv(s: "Session", key: str) -> bytes:
    handler = handler_map().get(key)
    if handler is None:
        raise KeyError(key)
    columns = [to_camel(attr.key) for attr in sa_inspect(handler.model).column_attrs]
    rows = [[row.get(c) for c in columns] for row in _export_rows(s, handler)]
    return write_csv(columns, rows)


def table_keys() -> list[str]:
    return [h.key for h in HANDLERS]


# ---------- Import ----------
def _coerce(column, value: Any, name: str) -> Any:
    if value is None:
        return None
    t = column.type
    try:
        if isinstance(t, DateTime):
            return parse_datetime(value)
        if isinstance(t, Date):
            return parse_date(value)
        if isinstance(t, Numeric):
            return parse_decimal(value, field=name)
        if isinstance(t, Boolean):
            return parse_bool(value)
    except (TypeError, ValueError) as e:
        raise RecordError(f"invalid {name}: {value!r}") from e
    return value


def record_values(handler: EntityHandler, record: dict[str, Any]) -> dict[str, Any]:
    """Map a camelCase (or snake_case) export record onto column values, coercing dates/decimals."""
    values: dict[str, Any] = {}
    for attr in sa_inspect(handler.model).column_attrs:
        camel = to_camel(attr.key)
        if camel in record:
            raw = record[camel]
        elif attr.key in record:
            raw = record[attr.key]
        else:
            continue
        values[attr.key] = _coerce(attr.columns[0], raw, camel)
    return values


def _missing_required(handler: EntityHandler, values: dict[str, Any]) -> list[str]:
    missing = []
    for attr in sa_inspect(handler.model).column_attrs:
        col = attr.columns[0]
        if col.primary_key or col.nullable or col.default is not None or col.server_default is not None:
            continue
        if values.get(attr.key) is None:
            missing.append(to_camel(attr.key))
    return missing


def _check_references(s: "Session", handler: EntityHandler, values: dict[str, Any], ctx: _ImportContext) -> list[str]:
    handlers = handler_map()
    problems = []
    for ref in handler.references:
        value = values.get(ref.attr)
        if value in (None, ""):
            if ref.required:
                problems.append(f"{to_camel(ref.attr)} is required")
            continue
        found = None
        for target in ref.targets:
            resolved = ctx.resolve(target, value)
            if s.get(handlers[target].model, resolved) is not None:
                found = resolved
                break
        if found is None:
            problems.append(f"{to_camel(ref.attr)} {value} does not exist")
        else:
            values[ref.attr] = found
    return problems


def _find_existing(s: "Session", handler: EntityHandler, values: dict[str, Any]):
    record_id = values.get("id")
    if record_id:
        obj = s.get(handler.model, record_id)
        if obj is not None:
            return obj
    if handler.natural_key and all(values.get(k) is not None for k in handler.natural_key):
        return s.query(handler.model).filter_by(**{k: values[k] for k in handler.natural_key}).one_or_none()
    return None


def _import_record(s: "Session", handler: EntityHandler, record: Any, ctx: _ImportContext) -> str:
    if not isinstance(record, dict):
        raise RecordError("record is not an object")
    values = record_values(handler, record)
    problems = _check_references(s, handler, values, ctx)
    if problems:
        raise RecordError("; ".join(problems))

    with s.begin_nested():
        existing = _find_existing(s, handler, values)
        if handler.prepare:
            handler.prepare(values, existing is None)
        if existing is not None:
            if values.get("id") and existing.id != values["id"]:
                ctx.id_map.setdefault(handler.key, {})[values["id"]] = existing.id
            for key, value in values.items():
                if key != "id":
                    setattr(existing, key, value)
            s.flush()
            return "updated"

        missing = _missing_required(handler, values)
        if missing:
            raise RecordError(f"missing required field(s): {', '.join(missing)}")
        if not values.get("id"):
            values.pop("id", None)
        s.add(handler.model(**values))
        s.flush()
        return "imported"


def _record_label(handler: EntityHandler, index: int, record: Any) -> str:
    rid = record.get("id") if isinstance(record, dict) else None
    return f"{handler.key}[{index}]" + (f" (id={rid})" if rid else "")


def import_all(s: "Session", doc: dict[str, Any], user: "User | None") -> ImportResult:
    """
    Upsert every record of an export document in dependency order. A failing record is rolled
    back to its savepoint, counted as skipped and reported; the batch carries on.
    """
    result = ImportResult()
    ctx = _ImportContext()
    for handler in import_order():
        records = doc.get(handler.key)
        if not records:
            continue
        if not isinstance(records, list):
            result.errors.append(f"{handler.key}: expected a list")
            continue
        for index, record in enumerate(records):
            result.total_processed += 1
            try:
                outcome = _import_record(s, handler, record, ctx)
            except (RecordError, ValueError) as e:
                result.skipped += 1
                result.errors.append(f"{_record_label(handler, index, record)}: {e}")
                continue
            except SQLAlchemyError as e:
                result.skipped += 1
                detail = str(getattr(e, "orig", None) or e).splitlines()[0]
                result.errors.append(f"{_record_label(handler, index, record)}: {detail}")
                logger.warning("Import of %s failed: %s", _record_label(handler, index, record), detail)
                continue
            if outcome == "updated":
                result.updated += 1
            else:
                result.imported += 1

    record_event(
        s,
        actor=user,
        action="data.import",
        entity_type="DataImport",
        metadata={k: json_value(v) for k, v in result.as_dict().items() if k != "errors"},
    )
    logger.info(
        "Data import: imported=%d updated=%d skipped=%d total=%d",
        result.imported,
        result.updated,
        result.skipped,
        result.total_processed,
    )
    return result

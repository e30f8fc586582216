from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.agencyops.audit import record_event
from app.agencyops.csv_io import CsvRowError, get_field, read_csv, write_csv
from app.agencyops.modules.clients.models import Client
from app.agencyops.utils import apply_changes, as_text, clean_str, parse_datetime

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.agencyops.models import User


VALID_STATUSES = ("active", "inactive")

CSV_HEADERS = (
    "Client ID",
    "Client Name",
    "Business Name",
    "Contact Person",
    "Email",
    "Phone",
    "Status",
    "Created Date",
)

_FIELD_PARSERS = {
    "client_name": as_text,
    "business_name": clean_str,
    "contact_person": clean_str,
    "email": lambda v: (clean_str(v) or "").lower() or None,
    "phone": clean_str,
    "address": clean_str,
    "notes": clean_str,
    "status": lambda v: (clean_str(v) or "active").lower(),
}


def validate_client_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate client creation/update payload. Returns list of errors."""
    errors = []
    if not partial or "client_name" in payload:
        if not as_text(payload.get("client_name")):
            errors.append("Client name is required.")
    status = as_text(payload.get("status")).lower()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    email = as_text(payload.get("email"))
    if email and "@" not in email:
        errors.append("Email address is invalid.")
    return errors


def create_client(s: "Session", payload: dict, user: "User | None", *, client_id: str | None = None) -> Client:
    now = datetime.utcnow()
    client = Client(created_at=now, updated_at=now)
    if client_id:
        client.id = client_id
    client.status = "active"
    apply_changes(client, payload, _FIELD_PARSERS)
    s.add(client)
    s.flush()

    record_event(
        s,
        actor=user,
        action="client.create",
        entity_type="Client",
        entity_id=client.id,
        metadata={"client_name": client.client_name},
    )
    return client


def update_client(s: "Session", client: Client, payload: dict, user: "User | None") -> Client:
    changes = apply_changes(client, payload, _FIELD_PARSERS)
    client.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="client.edit",
        entity_type="Client",
        entity_id=client.id,
        metadata={"client_name": client.client_name, "changes": changes},
    )
    return client


def delete_client(s: "Session", client: Client, user: "User | None") -> None:
    record_event(
        s,
        actor=user,
        action="client.delete",
        entity_type="Client",
        entity_id=client.id,
        metadata={"client_name": client.client_name},
    )
    s.delete(client)


def export_clients_csv(s: "Session") -> bytes:
    clients = s.query(Client).order_by(Client.created_at.asc(), Client.id.asc()).all()
    return write_csv(
        CSV_HEADERS,
        (
            [
                c.id,
                c.client_name,
                c.business_name,
                c.contact_person,
                c.email,
                c.phone,
                c.status,
                c.created_at,
            ]
            for c in clients
        ),
    )


@dataclass
class CsvImportResult:
    imported: int = 0
    updated: int = 0
    errors: list[CsvRowError] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "imported": self.imported,
            "updated": self.updated,
            "errors": [e.as_dict() for e in self.errors],
        }


def import_clients_csv(s: "Session", file_bytes: bytes, user: "User | None") -> CsvImportResult:
    """
    Upsert clients from a CSV in the export format.

    Rows are matched by Client ID, then by email (case-insensitive) so a re-imported sheet
    without ids does not duplicate clients. Unknown ids are inserted keeping the given id.
    """
    rows = read_csv(file_bytes, required=[("Client Name", "clientName", "client_name")])
    result = CsvImportResult()

    for idx, raw in rows:
        payload = {
            "client_name": get_field(raw, "Client Name", "clientName", "client_name"),
            "business_name": get_field(raw, "Business Name", "businessName", "business_name"),
            "contact_person": get_field(raw, "Contact Person", "contactPerson", "contact_person"),
            "email": get_field(raw, "Email", "email"),
            "phone": get_field(raw, "Phone", "phone"),
            "status": get_field(raw, "Status", "status") or "active",
        }
        errors = validate_client_payload(payload)
        if errors:
            result.errors.append(CsvRowError(idx, "; ".join(errors)))
            continue

        client_id = get_field(raw, "Client ID", "id") or None
        existing = s.get(Client, client_id) if client_id else None
        if existing is None and payload["email"]:
            existing = (
                s.query(Client)
                .filter(func.lower(Client.email) == payload["email"].lower())
                .first()
            )

        if existing is not None:
            update_client(s, existing, payload, user)
            result.updated += 1
            continue

        client = create_client(s, payload, user, client_id=client_id)
        created_raw = get_field(raw, "Created Date", "createdAt", "created_at")
        if created_raw:
            try:
                client.created_at = parse_datetime(created_raw) or client.created_at
            except ValueError:
                result.errors.append(CsvRowError(idx, f"Invalid Created Date '{created_raw}' (kept current time)"))
        result.imported += 1

    record_event(
        s,
        actor=user,
        action="client.import_csv",
        entity_type="Client",
        metadata={"imported": result.imported, "updated": result.updated, "errors": len(result.errors)},
    )
    return result

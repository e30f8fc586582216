from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.agencyops.audit import record_event
from app.agencyops.modules.ad_accounts.models import AdAccount
from app.agencyops.modules.clients.models import Client
from app.agencyops.utils import apply_changes, as_text, clean_str, decimal_errors, zero_if_none

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.agencyops.models import User


VALID_STATUSES = ("active", "suspended")

_FIELD_PARSERS = {
    "platform": lambda v: as_text(v).lower(),
    "account_name": as_text,
    "account_id": as_text,
    "client_id": clean_str,
    "spend_limit": zero_if_none,
    "total_spend": zero_if_none,
    "status": lambda v: (clean_str(v) or "active").lower(),
    "notes": clean_str,
}


def validate_ad_account_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    for key, label in (("platform", "Platform"), ("account_name", "Account name"), ("account_id", "Account ID")):
        if not partial or key in payload:
            if not as_text(payload.get(key)):
                errors.append(f"{label} is required.")
    status = as_text(payload.get("status")).lower()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    client_id = clean_str(payload.get("client_id"))
    if client_id and not s.get(Client, client_id):
        errors.append("Client not found")
    errors.extend(decimal_errors(payload, "spend_limit", "total_spend"))
    return errors


def create_ad_account(s: "Session", payload: dict, user: "User | None") -> AdAccount:
    now = datetime.utcnow()
    acct = AdAccount(status="active", created_at=now, updated_at=now)
    apply_changes(acct, payload, _FIELD_PARSERS)
    s.add(acct)
    s.flush()
    record_event(
        s,
        actor=user,
        action="ad_account.create",
        entity_type="AdAccount",
        entity_id=acct.id,
        metadata={"platform": acct.platform, "account_name": acct.account_name},
    )
    return acct


def update_ad_account(s: "Session", acct: AdAccount, payload: dict, user: "User | None") -> AdAccount:
    changes = apply_changes(acct, payload, _FIELD_PARSERS)
    acct.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="ad_account.edit",
        entity_type="AdAccount",
        entity_id=acct.id,
        metadata={"account_name": acct.account_name, "changes": changes},
    )
    return acct


def delete_ad_account(s: "Session", acct: AdAccount, user: "User | None") -> None:
    record_event(
        s,
        actor=user,
        action="ad_account.delete",
        entity_type="AdAccount",
        entity_id=acct.id,
        metadata={"account_name": acct.account_name},
    )
    s.delete(acct)

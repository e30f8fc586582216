from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.agencyops.audit import record_event
from app.agencyops.csv_io import CsvRowError, get_field, read_csv, write_csv
from app.agencyops.modules.ad_accounts.models import AdAccount
from app.agencyops.modules.campaigns.models import AdCopySet, Campaign, CampaignDailySpend
from app.agencyops.modules.clients.models import Client
from app.agencyops.utils import (
    apply_changes,
    as_text,
    clean_str,
    date_errors,
    decimal_errors,
    money,
    parse_bool,
    parse_datetime,
    parse_decimal,
    zero_if_none,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.agencyops.models import User


VALID_STATUSES = ("active", "paused", "completed", "draft")
COMMENT_SEPARATOR = "\n\n"

CSV_HEADERS = (
    "Campaign ID",
    "Name",
    "Start Date",
    "Ad Account ID",
    "Client ID",
    "Status",
    "Objective",
    "Budget",
    "Spend",
    "Comments",
)

_FIELD_PARSERS = {
    "name": as_text,
    "start_date": parse_datetime,
    "comments": clean_str,
    "ad_account_id": clean_str,
    "client_id": clean_str,
    "status": lambda v: (clean_str(v) or "active").lower(),
    "objective": as_text,
    "budget": zero_if_none,
    "spend": zero_if_none,
}

_COPY_SET_PARSERS = {
    "set_name": as_text,
    "is_active": parse_bool,
    "age": clean_str,
    "budget": lambda v: parse_decimal(v, field="budget"),
    "ad_type": clean_str,
    "creative_link": clean_str,
    "headline": clean_str,
    "description": clean_str,
    "call_to_action": clean_str,
    "target_audience": clean_str,
    "placement": clean_str,
    "schedule": clean_str,
    "notes": clean_str,
}


def validate_campaign_payload(s: "Session", payload: dict, *, partial: bool = False) -> list[str]:
    """Validate campaign creation/update payload. Returns list of errors."""
    errors = []
    for key, label in (("name", "Name"), ("start_date", "Start date"), ("objective", "Objective"), ("budget", "Budget")):
        if not partial or key in payload:
            if payload.get(key) is None or str(payload.get(key)).strip() == "":
                errors.append(f"{label} is required.")
    status = as_text(payload.get("status")).lower()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    errors.extend(date_errors(payload, "start_date"))
    errors.extend(decimal_errors(payload, "budget", "spend"))

    ad_account_id = clean_str(payload.get("ad_account_id"))
    if ad_account_id and not s.get(AdAccount, ad_account_id):
        errors.append("Ad account not found")
    client_id = clean_str(payload.get("client_id"))
    if client_id and not s.get(Client, client_id):
        errors.append("Client not found")
    return errors


def create_campaign(s: "Session", payload: dict, user: "User | None", *, campaign_id: str | None = None) -> Campaign:
    now = datetime.utcnow()
    campaign = Campaign(status="active", spend=Decimal("0"), created_at=now, updated_at=now)
    if campaign_id:
        campaign.id = campaign_id
    apply_changes(campaign, payload, _FIELD_PARSERS)
    s.add(campaign)
    s.flush()
    record_event(
        s,
        actor=user,
        action="campaign.create",
        entity_type="Campaign",
        entity_id=campaign.id,
        metadata={"name": campaign.name, "budget": campaign.budget},
    )
    return campaign


def update_campaign(s: "Session", campaign: Campaign, payload: dict, user: "User | None") -> Campaign:
    changes = apply_changes(campaign, payload, _FIELD_PARSERS)
    campaign.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="campaign.edit",
        entity_type="Campaign",
        entity_id=campaign.id,
        metadata={"name": campaign.name, "changes": changes},
    )
    return campaign


def delete_campaign(s: "Session", campaign: Campaign, user: "User | None") -> None:
    record_event(
        s,
        actor=user,
        action="campaign.delete",
        entity_type="Campaign",
        entity_id=campaign.id,
        metadata={"name": campaign.name},
    )
    s.delete(campaign)


def add_comment(s: "Session", campaign: Campaign, comment: str, user: "User", *, now: datetime | None = None) -> Campaign:
    """Append `[ISO timestamp] username: text` to the campaign's comment log."""
    stamp = (now or datetime.utcnow()).isoformat(timespec="milliseconds") + "Z"
    entry = f"[{stamp}] {user.username}: {comment.strip()}"
    campaign.comments = f"{campaign.comments}{COMMENT_SEPARATOR}{entry}" if campaign.comments else entry
    campaign.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="campaign.comment", entity_type="Campaign", entity_id=campaign.id)
    return campaign


# ---------- Ad copy sets ----------
def validate_ad_copy_set_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "set_name" in payload:
        if not as_text(payload.get("set_name")):
            errors.append("Set name is required.")
    errors.extend(decimal_errors(payload, "budget"))
    return errors


def create_ad_copy_set(s: "Session", campaign: Campaign, payload: dict, user: "User | None") -> AdCopySet:
    now = datetime.utcnow()
    copy_set = AdCopySet(campaign_id=campaign.id, is_active=False, created_at=now, updated_at=now)
    apply_changes(copy_set, payload, _COPY_SET_PARSERS)
    s.add(copy_set)
    s.flush()
    if copy_set.is_active:
        set_active_ad_copy_set(s, campaign.id, copy_set.id)
    record_event(
        s,
        actor=user,
        action="ad_copy_set.create",
        entity_type="AdCopySet",
        entity_id=copy_set.id,
        metadata={"campaign_id": campaign.id, "set_name": copy_set.set_name},
    )
    return copy_set


def update_ad_copy_set(s: "Session", copy_set: AdCopySet, payload: dict, user: "User | None") -> AdCopySet:
    changes = apply_changes(copy_set, payload, _COPY_SET_PARSERS)
    copy_set.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="ad_copy_set.edit",
        entity_type="AdCopySet",
        entity_id=copy_set.id,
        metadata={"campaign_id": copy_set.campaign_id, "changes": changes},
    )
    return copy_set


def set_active_ad_copy_set(s: "Session", campaign_id: str, set_id: str) -> bool:
    """
    Deactivate every set of the campaign, then activate set_id if it belongs to that campaign.
    Returns False when the target set is not part of the campaign.
    """
    s.query(AdCopySet).filter(AdCopySet.campaign_id == campaign_id).update(
        {AdCopySet.is_active: False}, synchronize_session="fetch"
    )
    target = s.get(AdCopySet, set_id)
    if not target or target.campaign_id != campaign_id:
        return False
    target.is_active = True
    target.updated_at = datetime.utcnow()
    s.flush()
    return True


# ---------- Daily spend ----------
def has_daily_spend(s: "Session", campaign_id: str) -> bool:
    return s.query(CampaignDailySpend.id).filter(CampaignDailySpend.campaign_id == campaign_id).first() is not None


def recompute_campaign_spend(s: "Session", campaign: Campaign) -> Decimal:
    s.flush()
    total = (
        s.query(func.coalesce(func.sum(CampaignDailySpend.amount), 0))
        .filter(CampaignDailySpend.campaign_id == campaign.id)
        .scalar()
    )
    campaign.spend = Decimal(str(total or 0))
    campaign.updated_at = datetime.utcnow()
    return campaign.spend


def upsert_daily_spend(s: "Session", campaign: Campaign, day: date, amount: Decimal, user: "User | None") -> CampaignDailySpend:
    row = (
        s.query(CampaignDailySpend)
        .filter(CampaignDailySpend.campaign_id == campaign.id, CampaignDailySpend.spend_date == day)
        .one_or_none()
    )
    old = row.amount if row else None
    if row is None:
        row = CampaignDailySpend(campaign_id=campaign.id, spend_date=day, amount=amount)
        s.add(row)
    else:
        row.amount = amount
    row.updated_at = datetime.utcnow()
    recompute_campaign_spend(s, campaign)
    record_event(
        s,
        actor=user,
        action="campaign.daily_spend",
        entity_type="Campaign",
        entity_id=campaign.id,
        metadata={"date": day.isoformat(), "old": old, "new": amount, "spend": campaign.spend},
    )
    return row


# ---------- Analytics ----------
def campaign_analytics(
    s: "Session",
    *,
    ad_account_id: str | None = None,
    campaign_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """Per-ad-account rollup of campaign budget and spend."""
    q = s.query(Campaign)
    if ad_account_id:
        q = q.filter(Campaign.ad_account_id == ad_account_id)
    if campaign_id:
        q = q.filter(Campaign.id == campaign_id)
    if start:
        q = q.filter(Campaign.start_date >= start)
    if end:
        q = q.filter(Campaign.start_date <= end)
    campaigns = q.order_by(Campaign.start_date.asc()).all()

    accounts = {a.id: a for a in s.query(AdAccount).all()}
    buckets: "OrderedDict[str | None, dict]" = OrderedDict()
    for c in campaigns:
        b = buckets.get(c.ad_account_id)
        if b is None:
            acct = accounts.get(c.ad_account_id) if c.ad_account_id else None
            b = {
                "adAccountId": c.ad_account_id,
                "adAccountName": acct.account_name if acct else "Unassigned",
                "platform": acct.platform if acct else None,
                "spendLimit": money(acct.spend_limit) if acct else 0.0,
                "totalSpend": 0.0,
                "totalBudget": 0.0,
                "campaignCount": 0,
            }
            buckets[c.ad_account_id] = b
        b["totalSpend"] += money(c.spend)
        b["totalBudget"] += money(c.budget)
        b["campaignCount"] += 1

    analytics = []
    for b in buckets.values():
        b["availableBalance"] = b.pop("spendLimit") - b["totalSpend"]
        analytics.append(b)

    return {
        "analytics": analytics,
        "totalCampaigns": len(campaigns),
        "grandTotalSpend": sum(b["totalSpend"] for b in analytics),
        "grandTotalBudget": sum(b["totalBudget"] for b in analytics),
    }


# ---------- CSV ----------
def export_campaigns_csv(s: "Session") -> bytes:
    campaigns = s.query(Campaign).order_by(Campaign.created_at.asc(), Campaign.id.asc()).all()
    return write_csv(
        CSV_HEADERS,
        (
            [
                c.id,
                c.name,
                c.start_date,
                c.ad_account_id,
                c.client_id,
                c.status,
                c.objective,
                c.budget,
                c.spend,
                c.comments,
            ]
            for c in campaigns
        ),
    )


@dataclass
class CampaignImportResult:
    imported: int = 0
    updated: int = 0
    errors: list[CsvRowError] = field(default_factory=list)


def import_campaigns_csv(s: "Session", file_bytes: bytes, user: "User | None") -> CampaignImportResult:
    rows = read_csv(
        file_bytes,
        required=[("Name", "name"), ("Start Date", "startDate"), ("Objective", "objective"), ("Budget", "budget")],
    )
    result = CampaignImportResult()
    for idx, raw in rows:
        payload = {
            "name": get_field(raw, "Name", "name"),
            "start_date": get_field(raw, "Start Date", "startDate"),
            "ad_account_id": get_field(raw, "Ad Account ID", "adAccountId") or None,
            "client_id": get_field(raw, "Client ID", "clientId") or None,
            "status": get_field(raw, "Status", "status") or "active",
            "objective": get_field(raw, "Objective", "objective"),
            "budget": get_field(raw, "Budget", "budget"),
        }
        spend = get_field(raw, "Spend", "spend")
        if spend:
            payload["spend"] = spend
        comments = get_field(raw, "Comments", "comments")
        if comments:
            payload["comments"] = comments

        errors = validate_campaign_payload(s, payload)
        if errors:
            result.errors.append(CsvRowError(idx, "; ".join(errors)))
            continue

        campaign_id = get_field(raw, "Campaign ID", "id") or None
        existing = s.get(Campaign, campaign_id) if campaign_id else None
        if existing is not None:
            # spend of a campaign with daily rows is their sum, not a CSV value
            if has_daily_spend(s, existing.id):
                payload.pop("spend", None)
            update_campaign(s, existing, payload, user)
            result.updated += 1
        else:
            create_campaign(s, payload, user, campaign_id=campaign_id)
            result.imported += 1

    record_event(
        s,
        actor=user,
        action="campaign.import_csv",
        entity_type="Campaign",
        metadata={"imported": result.imported, "updated": result.updated, "errors": len(result.errors)},
    )
    return result

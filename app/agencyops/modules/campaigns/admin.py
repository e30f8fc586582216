from __future__ import annotations

from datetime import date

from flask import Blueprint, g, request

from app.agencyops.csv_io import csv_download
from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.campaigns.models import AdCopySet, Campaign
from app.agencyops.modules.campaigns.service import (
    add_comment,
    campaign_analytics,
    create_ad_copy_set,
    create_campaign,
    delete_campaign,
    export_campaigns_csv,
    import_campaigns_csv,
    set_active_ad_copy_set,
    update_ad_copy_set,
    update_campaign,
    upsert_daily_spend,
    validate_ad_copy_set_payload,
    validate_campaign_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import as_text, json_body, money, parse_date, parse_datetime, parse_decimal, payload_to_snake, serialize

bp = Blueprint("campaigns", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _campaign_or_404(s, campaign_id: str):
    campaign = s.get(Campaign, campaign_id)
    if not campaign:
        return None, ({"message": "Campaign not found"}, 404)
    return campaign, None


# ---------- Campaigns ----------
@bp.get("/campaigns")
@require_page_permission("campaigns", "view")
def campaigns_list():
    s = db_session()
    q = s.query(Campaign)
    for arg, col in (("status", Campaign.status), ("clientId", Campaign.client_id), ("adAccountId", Campaign.ad_account_id)):
        v = (request.args.get(arg) or "").strip()
        if v:
            q = q.filter(col == v)
    return [serialize(c) for c in q.order_by(Campaign.created_at.desc()).all()]


@bp.get("/campaigns/analytics")
@require_page_permission("campaigns", "view")
def campaigns_analytics():
    try:
        start = parse_datetime(request.args.get("startDate"))
        end = parse_datetime(request.args.get("endDate"))
    except ValueError:
        return {"message": "Invalid date filter"}, 400
    return campaign_analytics(
        db_session(),
        ad_account_id=(request.args.get("adAccountId") or "").strip() or None,
        campaign_id=(request.args.get("campaignId") or "").strip() or None,
        start=start,
        end=end,
    )


@bp.get("/campaigns/<campaign_id>")
@require_page_permission("campaigns", "view")
def campaign_detail(campaign_id: str):
    campaign, err = _campaign_or_404(db_session(), campaign_id)
    if err:
        return err
    return serialize(campaign)


@bp.post("/campaigns")
@require_page_permission("campaigns", "edit")
def campaign_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_campaign_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    campaign = create_campaign(s, payload, _current_user())
    s.commit()
    return serialize(campaign), 201


@bp.put("/campaigns/<campaign_id>")
@require_page_permission("campaigns", "edit")
def campaign_update(campaign_id: str):
    s = db_session()
    campaign, err = _campaign_or_404(s, campaign_id)
    if err:
        return err
    payload = payload_to_snake(json_body())
    errors = validate_campaign_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_campaign(s, campaign, payload, _current_user())
    s.commit()
    return serialize(campaign)


@bp.post("/campaigns/<campaign_id>/comments")
@require_page_permission("campaigns", "edit")
def campaign_comment(campaign_id: str):
    s = db_session()
    comment = as_text(json_body().get("comment"))
    if not comment:
        return {"message": "Comment is required"}, 400
    campaign, err = _campaign_or_404(s, campaign_id)
    if err:
        return err
    add_comment(s, campaign, comment, _current_user())
    s.commit()
    return {"message": "Comment added successfully", "campaign": serialize(campaign)}


@bp.delete("/campaigns/<campaign_id>")
@require_page_permission("campaigns", "delete")
def campaign_delete(campaign_id: str):
    s = db_session()
    campaign, err = _campaign_or_404(s, campaign_id)
    if err:
        return err
    delete_campaign(s, campaign, _current_user())
    s.commit()
    return {"message": "Campaign deleted successfully"}


# ---------- Daily spend ----------
@bp.get("/campaigns/<campaign_id>/daily-spend")
@require_page_permission("campaigns", "view")
def campaign_daily_spend_list(campaign_id: str):
    campaign, err = _campaign_or_404(db_session(), campaign_id)
    if err:
        return err
    days = [serialize(d) for d in campaign.daily_spends]
    return {"campaignId": campaign.id, "totalSpend": money(campaign.spend), "days": days}


@bp.put("/campaigns/<campaign_id>/daily-spend")
@require_page_permission("campaigns", "edit")
def campaign_daily_spend_update(campaign_id: str):
    s = db_session()
    campaign, err = _campaign_or_404(s, campaign_id)
    if err:
        return err
    payload = json_body()
    errors = []
    try:
        day = parse_date(payload.get("date"))
    except ValueError:
        day = None
    if day is None:
        errors.append("date must be YYYY-MM-DD")
    try:
        amount = parse_decimal(payload.get("amount"), field="amount")
    except ValueError as e:
        amount = None
        errors.append(str(e))
    else:
        if amount is None or amount < 0:
            errors.append("amount must be a non-negative number")
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    row = upsert_daily_spend(s, campaign, day, amount, _current_user())
    s.commit()
    return {"day": serialize(row), "campaign": serialize(campaign)}


# ---------- Ad copy sets ----------
@bp.get("/campaigns/<campaign_id>/ad-copy-sets")
@require_page_permission("campaigns", "view")
def ad_copy_sets_list(campaign_id: str):
    s = db_session()
    sets = (
        s.query(AdCopySet)
        .filter(AdCopySet.campaign_id == campaign_id)
        .order_by(AdCopySet.created_at.asc())
        .all()
    )
    return [serialize(x) for x in sets]


@bp.get("/ad-copy-sets/<set_id>")
@require_page_permission("campaigns", "view")
def ad_copy_set_detail(set_id: str):
    copy_set = db_session().get(AdCopySet, set_id)
    if not copy_set:
        return {"message": "Ad copy set not found"}, 404
    return serialize(copy_set)


@bp.post("/campaigns/<campaign_id>/ad-copy-sets")
@require_page_permission("campaigns", "edit")
def ad_copy_set_create(campaign_id: str):
    s = db_session()
    campaign, err = _campaign_or_404(s, campaign_id)
    if err:
        return err
    payload = payload_to_snake(json_body())
    payload.pop("campaign_id", None)
    errors = validate_ad_copy_set_payload(payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    copy_set = create_ad_copy_set(s, campaign, payload, _current_user())
    s.commit()
    return serialize(copy_set), 201


@bp.put("/ad-copy-sets/<set_id>")
@require_page_permission("campaigns", "edit")
def ad_copy_set_update(set_id: str):
    s = db_session()
    copy_set = s.get(AdCopySet, set_id)
    if not copy_set:
        return {"message": "Ad copy set not found"}, 404
    payload = payload_to_snake(json_body())
    payload.pop("campaign_id", None)
    errors = validate_ad_copy_set_payload(payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    activate = payload.pop("is_active", None)
    update_ad_copy_set(s, copy_set, payload, _current_user())
    if activate is True:
        set_active_ad_copy_set(s, copy_set.campaign_id, copy_set.id)
    elif activate is False:
        copy_set.is_active = False
    s.commit()
    return serialize(copy_set)


@bp.put("/campaigns/<campaign_id>/ad-copy-sets/<set_id>/set-active")
@require_page_permission("campaigns", "edit")
def ad_copy_set_activate(campaign_id: str, set_id: str):
    s = db_session()
    if not set_active_ad_copy_set(s, campaign_id, set_id):
        s.rollback()
        return {"message": "Ad copy set not found for this campaign"}, 404
    s.commit()
    return {"message": "Ad copy set activated successfully"}


@bp.delete("/ad-copy-sets/<set_id>")
@require_page_permission("campaigns", "delete")
def ad_copy_set_delete(set_id: str):
    s = db_session()
    copy_set = s.get(AdCopySet, set_id)
    if not copy_set:
        return {"message": "Ad copy set not found"}, 404
    s.delete(copy_set)
    s.commit()
    return {"message": "Ad copy set deleted successfully"}


# ---------- CSV ----------
@bp.get("/campaigns/export/csv")
@require_page_permission("campaigns", "view")
def campaigns_export_csv():
    data = export_campaigns_csv(db_session())
    return csv_download(data, f"campaigns-export-{date.today().isoformat()}.csv")


@bp.post("/campaigns/import/csv")
@require_page_permission("campaigns", "edit")
def campaigns_import_csv():
    f = request.files.get("file")
    if not f or not f.filename:
        return {"message": "No file uploaded"}, 400
    s = db_session()
    try:
        result = import_campaigns_csv(s, f.read(), _current_user())
    except ValueError as e:
        s.rollback()
        return {"message": str(e)}, 400
    s.commit()
    return {
        "message": f"Successfully imported {result.imported} campaigns and updated {result.updated}",
        "imported": result.imported,
        "updated": result.updated,
        "errors": [e.as_dict() for e in result.errors],
    }

from __future__ import annotations

from flask import Blueprint, g, request

from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.ad_accounts.models import AdAccount
from app.agencyops.modules.ad_accounts.service import (
    create_ad_account,
    delete_ad_account,
    update_ad_account,
    validate_ad_account_payload,
)
from app.agencyops.rbac import require_page_permission
from app.agencyops.utils import json_body, payload_to_snake, serialize

bp = Blueprint("ad_accounts", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/ad-accounts")
@require_page_permission("ad_accounts", "view")
def ad_accounts_list():
    s = db_session()
    q = s.query(AdAccount)
    client_id = (request.args.get("clientId") or "").strip()
    if client_id:
        q = q.filter(AdAccount.client_id == client_id)
    platform = (request.args.get("platform") or "").strip().lower()
    if platform:
        q = q.filter(AdAccount.platform == platform)
    return [serialize(a) for a in q.order_by(AdAccount.created_at.desc()).all()]


@bp.get("/ad-accounts/<account_id>")
@require_page_permission("ad_accounts", "view")
def ad_account_detail(account_id: str):
    acct = db_session().get(AdAccount, account_id)
    if not acct:
        return {"message": "Ad account not found"}, 404
    return serialize(acct)


@bp.post("/ad-accounts")
@require_page_permission("ad_accounts", "edit")
def ad_account_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_ad_account_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    acct = create_ad_account(s, payload, _current_user())
    s.commit()
    return serialize(acct), 201


@bp.put("/ad-accounts/<account_id>")
@require_page_permission("ad_accounts", "edit")
def ad_account_update(account_id: str):
    s = db_session()
    acct = s.get(AdAccount, account_id)
    if not acct:
        return {"message": "Ad account not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_ad_account_payload(s, payload, partial=True)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_ad_account(s, acct, payload, _current_user())
    s.commit()
    return serialize(acct)


@bp.delete("/ad-accounts/<account_id>")
@require_page_permission("ad_accounts", "delete")
def ad_account_delete(account_id: str):
    s = db_session()
    acct = s.get(AdAccount, account_id)
    if not acct:
        return {"message": "Ad account not found"}, 404
    delete_ad_account(s, acct, _current_user())
    s.commit()
    return {"message": "Ad account deleted successfully"}

from __future__ import annotations

from flask import Blueprint, current_app, g

from app.agencyops.db import db_session
from app.agencyops.models import User
from app.agencyops.modules.telegram.models import TelegramChatId
from app.agencyops.modules.telegram.service import (
    broadcast,
    config_to_dict,
    create_chat,
    delete_chat,
    get_config,
    update_chat,
    update_config,
    validate_chat_payload,
)
from app.agencyops.modules.telegram.telegram_client import TelegramClient
from app.agencyops.rbac import SUPER_ADMIN_BYPASS, require_page_permission
from app.agencyops.utils import as_text, json_body, payload_to_snake, serialize

bp = Blueprint("telegram", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/telegram/config")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_config_get():
    return config_to_dict(get_config(db_session()))


@bp.put("/telegram/config")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_config_put():
    s = db_session()
    payload = payload_to_snake(json_body())
    config = update_config(s, payload, _current_user())
    s.commit()
    return config_to_dict(config)


@bp.get("/telegram/chat-ids")
@require_page_permission("admin", "view", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_chats_list():
    s = db_session()
    return [serialize(c) for c in s.query(TelegramChatId).order_by(TelegramChatId.created_at.asc()).all()]


@bp.post("/telegram/chat-ids")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_chat_create():
    s = db_session()
    payload = payload_to_snake(json_body())
    errors = validate_chat_payload(s, payload)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    chat = create_chat(s, payload, _current_user())
    s.commit()
    return serialize(chat), 201


@bp.put("/telegram/chat-ids/<chat_pk>")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_chat_update(chat_pk: str):
    s = db_session()
    chat = s.get(TelegramChatId, chat_pk)
    if not chat:
        return {"message": "Chat ID not found"}, 404
    payload = payload_to_snake(json_body())
    errors = validate_chat_payload(s, payload, partial=True, chat_pk=chat.id)
    if errors:
        return {"message": "Invalid input", "errors": errors}, 400
    update_chat(s, chat, payload, _current_user())
    s.commit()
    return serialize(chat)


@bp.delete("/telegram/chat-ids/<chat_pk>")
@require_page_permission("admin", "delete", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_chat_delete(chat_pk: str):
    s = db_session()
    chat = s.get(TelegramChatId, chat_pk)
    if not chat:
        return {"message": "Chat ID not found"}, 404
    delete_chat(s, chat, _current_user())
    s.commit()
    return {"message": "Chat ID deleted successfully"}


@bp.post("/telegram/test-message")
@require_page_permission("admin", "edit", bypass_roles=SUPER_ADMIN_BYPASS)
def telegram_test_message():
    s = db_session()
    config = get_config(s)
    if not config or not config.bot_token:
        return {"message": "Telegram bot token is not configured"}, 400
    if not config.is_active:
        return {"message": "Telegram notifications are disabled"}, 400
    text = as_text(json_body().get("message"))
    if not text:
        text = f"Test message from {_current_user().username}"
    client = TelegramClient(bot_token=config.bot_token, base_url=current_app.config["TELEGRAM_API_BASE"])
    result = broadcast(s, client, text)
    if result.sent == 0 and not result.failures:
        return {"message": "No active chat IDs configured", **result.as_dict()}, 400
    status = 200 if result.sent else 502
    return {"message": f"Sent to {result.sent} chat(s)", **result.as_dict()}, status

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.agencyops.audit import record_event
from app.agencyops.models import User
from app.agencyops.modules.telegram.models import TelegramChatId, TelegramConfig
from app.agencyops.modules.telegram.telegram_client import TelegramClient, TelegramError
from app.agencyops.utils import apply_changes, as_text, clean_str, parse_bool, serialize

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_CHAT_PARSERS = {
    "chat_id": as_text,
    "name": as_text,
    "description": clean_str,
    "is_active": lambda v: parse_bool(v, default=True),
}


def mask_token(token: str | None) -> str | None:
    if not token:
        return None
    if len(token) <= 8:
        return "*" * len(token)
    return token[:4] + "*" * (len(token) - 8) + token[-4:]


def get_config(s: "Session") -> TelegramConfig | None:
    return s.query(TelegramConfig).order_by(TelegramConfig.created_at.asc()).first()


def config_to_dict(config: TelegramConfig | None) -> dict[str, Any]:
    if not config:
        return {"id": None, "botToken": None, "hasToken": False, "isActive": False}
    out = serialize(config)
    out["botToken"] = mask_token(config.bot_token)
    out["hasToken"] = bool(config.bot_token)
    return out


def update_config(s: "Session", payload: dict, user: "User | None") -> TelegramConfig:
    config = get_config(s)
    now = datetime.utcnow()
    if not config:
        config = TelegramConfig(is_active=True, created_at=now, updated_at=now)
        s.add(config)
    if "bot_token" in payload:
        config.bot_token = clean_str(payload.get("bot_token"))
    if "is_active" in payload:
        config.is_active = parse_bool(payload.get("is_active"), default=True)
    config.updated_at = now
    s.flush()
    # Never write the token itself to the audit log.
    record_event(
        s,
        actor=user,
        action="telegram.config.update",
        entity_type="TelegramConfig",
        entity_id=config.id,
        metadata={"has_token": bool(config.bot_token), "is_active": config.is_active},
    )
    return config


def validate_chat_payload(s: "Session", payload: dict, *, partial: bool = False, chat_pk: str | None = None) -> list[str]:
    errors = []
    if not partial or "chat_id" in payload:
        if not as_text(payload.get("chat_id")):
            errors.append("Chat ID is required.")
    if not partial or "name" in payload:
        if not as_text(payload.get("name")):
            errors.append("Name is required.")
    chat_id = as_text(payload.get("chat_id"))
    if chat_id:
        existing = s.query(TelegramChatId).filter(TelegramChatId.chat_id == chat_id).one_or_none()
        if existing and existing.id != chat_pk:
            errors.append("Chat ID already exists.")
    return errors


def create_chat(s: "Session", payload: dict, user: "User | None") -> TelegramChatId:
    now = datetime.utcnow()
    chat = TelegramChatId(is_active=True, created_at=now, updated_at=now)
    apply_changes(chat, payload, _CHAT_PARSERS)
    s.add(chat)
    s.flush()
    record_event(
        s,
        actor=user,
        action="telegram.chat.create",
        entity_type="TelegramChatId",
        entity_id=chat.id,
        metadata={"chat_id": chat.chat_id, "name": chat.name},
    )
    return chat


def update_chat(s: "Session", chat: TelegramChatId, payload: dict, user: "User | None") -> TelegramChatId:
    changes = apply_changes(chat, payload, _CHAT_PARSERS)
    chat.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="telegram.chat.edit",
        entity_type="TelegramChatId",
        entity_id=chat.id,
        metadata={"changes": changes},
    )
    return chat


def delete_chat(s: "Session", chat: TelegramChatId, user: "User | None") -> None:
    record_event(
        s,
        actor=user,
        action="telegram.chat.delete",
        entity_type="TelegramChatId",
        entity_id=chat.id,
        metadata={"chat_id": chat.chat_id},
    )
    s.delete(chat)


@dataclass
class BroadcastResult:
    sent: int = 0
    failures: list[dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "failed": len(self.failures), "failures": self.failures}


def broadcast(s: "Session", client: TelegramClient, text: str) -> BroadcastResult:
    """Send text to every active chat id; one failing chat does not stop the rest."""
    result = BroadcastResult()
    chats = (
        s.query(TelegramChatId)
        .filter(TelegramChatId.is_active.is_(True))
        .order_by(TelegramChatId.created_at.asc())
        .all()
    )
    for chat in chats:
        try:
            client.send_message(chat.chat_id, text)
            result.sent += 1
        except TelegramError as e:
            logger.warning("Telegram send to %s failed: %s", chat.chat_id, e)
            result.failures.append({"chatId": chat.chat_id, "name": chat.name, "error": str(e)})
    return result

"""Telegram bot configuration, chat ids and the test-message broadcast."""
import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import AuditEvent, Base, User
from app.agencyops.modules.permissions.service import seed_default_permissions
from app.agencyops.modules.telegram.service import mask_token
from app.agencyops.modules.telegram.telegram_client import TelegramClient, TelegramError

TOKEN = "123456:ABCDEFGHIJ"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        seed_default_permissions(s)
        s.add(User(name="Root", username="root", password=generate_password_hash("pw"), role="super_admin"))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client) -> dict:
    r = client.post("/api/auth/login", json={"username": "root", "password": "pw"})
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_mask_token():
    assert mask_token(None) is None
    assert mask_token("short") == "*****"
    assert mask_token(TOKEN) == "1234*********GHIJ"


def test_config_is_masked_and_not_audited(app, client):
    headers = _login(client)
    r = client.get("/api/telegram/config", headers=headers)
    assert r.json == {"id": None, "botToken": None, "hasToken": False, "isActive": False}

    r = client.put("/api/telegram/config", json={"botToken": TOKEN, "isActive": True}, headers=headers)
    assert r.status_code == 200
    assert r.json["botToken"] == mask_token(TOKEN)
    assert r.json["hasToken"] is True

    with session_scope(app) as s:
        for ev in s.query(AuditEvent).all():
            assert TOKEN not in (ev.metadata_json or "")


def test_chat_crud(client):
    headers = _login(client)
    r = client.post("/api/telegram/chat-ids", json={"chatId": "-1001", "name": "Ops"}, headers=headers)
    assert r.status_code == 201
    chat = r.json

    r = client.post("/api/telegram/chat-ids", json={"chatId": "-1001", "name": "Dup"}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Chat ID already exists."]

    r = client.put(f"/api/telegram/chat-ids/{chat['id']}", json={"isActive": False}, headers=headers)
    assert r.json["isActive"] is False

    assert client.delete(f"/api/telegram/chat-ids/{chat['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/telegram/chat-ids/{chat['id']}", headers=headers).status_code == 404


def test_test_message_requires_config_and_chats(client):
    headers = _login(client)
    r = client.post("/api/telegram/test-message", headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "Telegram bot token is not configured"

    client.put("/api/telegram/config", json={"botToken": TOKEN, "isActive": False}, headers=headers)
    r = client.post("/api/telegram/test-message", headers=headers)
    assert r.json["message"] == "Telegram notifications are disabled"

    client.put("/api/telegram/config", json={"isActive": True}, headers=headers)
    r = client.post("/api/telegram/test-message", headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "No active chat IDs configured"


def test_test_message_broadcasts_to_active_chats(client, monkeypatch):
    headers = _login(client)
    client.put("/api/telegram/config", json={"botToken": TOKEN}, headers=headers)
    client.post("/api/telegram/chat-ids", json={"chatId": "1", "name": "Good"}, headers=headers)
    client.post("/api/telegram/chat-ids", json={"chatId": "2", "name": "Broken"}, headers=headers)
    client.post("/api/telegram/chat-ids", json={"chatId": "3", "name": "Off", "isActive": False}, headers=headers)

    sent = []

    def fake_send(self, chat_id, text):
        if chat_id == "2":
            raise TelegramError("chat not found")
        sent.append((self.bot_token, chat_id, text))
        return {"message_id": 1}

    monkeypatch.setattr(TelegramClient, "send_message", fake_send)

    r = client.post("/api/telegram/test-message", json={"message": "hello"}, headers=headers)
    assert r.status_code == 200
    assert sent == [(TOKEN, "1", "hello")]
    assert r.json["sent"] == 1
    assert r.json["failed"] == 1
    assert r.json["failures"] == [{"chatId": "2", "name": "Broken", "error": "chat not found"}]


def test_test_message_all_failed_is_bad_gateway(client, monkeypatch):
    headers = _login(client)
    client.put("/api/telegram/config", json={"botToken": TOKEN}, headers=headers)
    client.post("/api/telegram/chat-ids", json={"chatId": "1", "name": "Only"}, headers=headers)

    def fake_send(self, chat_id, text):
        raise TelegramError("Unauthorized")

    monkeypatch.setattr(TelegramClient, "send_message", fake_send)
    r = client.post("/api/telegram/test-message", headers=headers)
    assert r.status_code == 502
    assert r.json["sent"] == 0

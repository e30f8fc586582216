"""Bearer-token sessions: login, 24h expiry, logout and login throttling."""
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.auth import create_session
from app.agencyops.db import session_scope
from app.agencyops.models import Base, User, UserSession
from app.agencyops.modules.permissions.service import seed_default_permissions


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        seed_default_permissions(s)
        s.add(User(name="Worker", username="worker", password=generate_password_hash("pw"), role="user"))
        s.add(
            User(
                name="Gone",
                username="gone",
                password=generate_password_hash("pw"),
                role="user",
                is_active=False,
            )
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_login_issues_24_hour_session(app, client):
    before = datetime.utcnow()
    r = client.post("/api/auth/login", json={"username": "worker", "password": "pw"})
    assert r.status_code == 200
    expires_at = datetime.fromisoformat(r.json["expiresAt"])
    assert timedelta(hours=23, minutes=59) < expires_at - before <= timedelta(hours=24, seconds=5)

    with session_scope(app) as s:
        assert s.query(UserSession).filter(UserSession.token == r.json["token"]).count() == 1


def test_create_session_ttl():
    user = User(id="u1", username="x", password="h", role="user")
    now = datetime(2026, 1, 1, 12, 0, 0)

    class _FakeSession:
        def add(self, obj):
            self.obj = obj

        def flush(self):
            pass

    sess = create_session(_FakeSession(), user, now=now)
    assert sess.expires_at == datetime(2026, 1, 2, 12, 0, 0)
    assert len(sess.token) >= 32


def test_bad_credentials(client):
    r = client.post("/api/auth/login", json={"username": "worker", "password": "nope"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid username or password"

    r = client.post("/api/auth/login", json={"username": "gone", "password": "pw"})
    assert r.status_code == 401

    r = client.post("/api/auth/login", json={"username": ""})
    assert r.status_code == 400
    assert r.json["message"] == "Invalid input"


def test_expired_session_is_rejected_and_deleted(app, client):
    with session_scope(app) as s:
        user = s.query(User).filter(User.username == "worker").one()
        sess = create_session(s, user, now=datetime.utcnow() - timedelta(hours=25))
        token = sess.token

    r = client.get("/api/auth/user", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid or expired session"

    with session_scope(app) as s:
        assert s.query(UserSession).filter(UserSession.token == token).count() == 0


def test_unknown_token(client):
    r = client.get("/api/auth/user", headers={"Authorization": "Bearer not-a-real-token"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid or expired session"


def test_logout_deletes_session(app, client):
    token = client.post("/api/auth/login", json={"username": "worker", "password": "pw"}).json["token"]
    headers = {"Authorization": f"Bearer {token}"}

    r = client.post("/api/auth/logout", headers=headers)
    assert r.status_code == 200
    assert r.json["message"] == "Logged out successfully"

    r = client.get("/api/auth/user", headers=headers)
    assert r.status_code == 401
    with session_scope(app) as s:
        assert s.query(UserSession).count() == 0


def test_login_rate_limit(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"username": "worker", "password": "wrong"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"username": "worker", "password": "pw"})
    assert r.status_code == 429

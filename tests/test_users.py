"""User administration and per-user menu permissions."""
import pytest
from werkzeug.security import check_password_hash, generate_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import Base, User
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
        s.add(User(id="id-root", name="Root", username="root", password=generate_password_hash("pw"), role="super_admin"))
        s.add(User(id="id-worker", name="Worker", username="worker", password=generate_password_hash("pw"), role="user"))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username: str) -> dict:
    r = client.post("/api/auth/login", json={"username": username, "password": "pw"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_create_user_hashes_password(app, client):
    headers = _login(client, "root")
    r = client.post(
        "/api/users",
        json={"name": "New Hire", "username": "newhire", "password": "secret1", "role": "manager"},
        headers=headers,
    )
    assert r.status_code == 201
    assert r.json["username"] == "newhire"
    assert r.json["role"] == "manager"
    assert "password" not in r.json

    with session_scope(app) as s:
        user = s.query(User).filter(User.username == "newhire").one()
        assert user.password != "secret1"
        assert check_password_hash(user.password, "secret1")

    r = client.post("/api/auth/login", json={"username": "newhire", "password": "secret1"})
    assert r.status_code == 200

    listed = client.get("/api/users", headers=headers).json
    assert all("password" not in u for u in listed)


def test_user_validation(client):
    headers = _login(client, "root")
    r = client.post("/api/users", json={"username": "worker", "password": "secret1"}, headers=headers)
    assert r.status_code == 400
    assert "Username already exists." in r.json["errors"]

    r = client.post("/api/users", json={"username": "x", "password": "123", "role": "owner"}, headers=headers)
    assert r.status_code == 400
    assert "Password must be at least 6 characters." in r.json["errors"]
    assert any(e.startswith("Invalid role") for e in r.json["errors"])

    r = client.post("/api/users", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"][:2] == ["Username is required.", "Password is required."]


def test_blank_password_on_update_keeps_current(app, client):
    headers = _login(client, "root")
    r = client.put("/api/users/id-worker", json={"name": "Renamed", "password": ""}, headers=headers)
    assert r.status_code == 200
    assert r.json["name"] == "Renamed"
    r = client.post("/api/auth/login", json={"username": "worker", "password": "pw"})
    assert r.status_code == 200


def test_delete_user_rules(app, client):
    headers = _login(client, "root")
    r = client.delete("/api/users/id-root", headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "You cannot delete your own account"

    r = client.delete("/api/users/id-worker", headers=headers)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(User, "id-worker") is None

    r = client.delete("/api/users/id-worker", headers=headers)
    assert r.status_code == 404


def test_non_admin_cannot_manage_users(client):
    r = client.get("/api/users", headers=_login(client, "worker"))
    assert r.status_code == 403


def test_menu_permission_defaults_and_update(client):
    worker = _login(client, "worker")
    r = client.get("/api/user-menu-permissions/id-worker", headers=worker)
    assert r.status_code == 200
    assert r.json["id"] is None
    assert r.json["dashboard"] is True
    assert r.json["adminPanel"] is False
    assert r.json["expenseEntry"] is False

    # Reading someone else's menu needs the admin page
    r = client.get("/api/user-menu-permissions/id-root", headers=worker)
    assert r.status_code == 403

    root = _login(client, "root")
    r = client.put("/api/user-menu-permissions/id-worker", json={"expenseEntry": True}, headers=root)
    assert r.status_code == 200
    assert r.json["expenseEntry"] is True
    assert r.json["dashboard"] is True

    r = client.get("/api/user-menu-permissions/id-worker", headers=worker)
    assert r.json["id"]
    assert r.json["expenseEntry"] is True

    r = client.post("/api/user-menu-permissions", json={"userId": "nobody"}, headers=root)
    assert r.status_code == 404

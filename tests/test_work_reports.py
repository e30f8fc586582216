"""Work reports are private to their owner unless the viewer is an admin."""
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import Base, User
from app.agencyops.modules.permissions.service import seed_default_permissions


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        seed_default_permissions(s)
        s.add(User(id="id-boss", name="Boss", username="boss", password=generate_password_hash("pw"), role="admin"))
        s.add(User(id="id-ann", name="Ann", username="ann", password=generate_password_hash("pw"), role="user"))
        s.add(User(id="id-bob", name="Bob", username="bob", password=generate_password_hash("pw"), role="user"))
    return app.test_client()


def _login(client, username: str) -> dict:
    r = client.post("/api/auth/login", json={"username": username, "password": "pw"})
    return {"Authorization": f"Bearer {r.json['token']}"}


def _report(client, headers, **extra) -> dict:
    body = {"title": "Ads setup", "description": "Built audiences", "hoursWorked": "7.5", "date": "2026-03-02", **extra}
    r = client.post("/api/work-reports", json=body, headers=headers)
    assert r.status_code == 201, r.json
    return r.json


def test_users_only_see_their_own(client):
    ann, bob = _login(client, "ann"), _login(client, "bob")
    a = _report(client, ann)
    _report(client, bob)

    listed = client.get("/api/work-reports", headers=ann).json
    assert [r["id"] for r in listed] == [a["id"]]
    assert listed[0]["userId"] == "id-ann"
    assert listed[0]["status"] == "submitted"

    r = client.get(f"/api/work-reports/{a['id']}", headers=bob)
    assert r.status_code == 403
    assert r.json["message"] == "Access denied"

    assert len(client.get("/api/work-reports", headers=_login(client, "boss")).json) == 2


def test_user_id_is_forced_for_non_admins(client):
    ann = _login(client, "ann")
    r = _report(client, ann, userId="id-bob")
    assert r["userId"] == "id-ann"

    boss = _login(client, "boss")
    assert _report(client, boss, userId="id-bob")["userId"] == "id-bob"
    assert _report(client, boss)["userId"] == "id-boss"


def test_owner_change_is_forbidden_for_non_admins(client):
    ann = _login(client, "ann")
    a = _report(client, ann)

    r = client.put(f"/api/work-reports/{a['id']}", json={"userId": "id-bob"}, headers=ann)
    assert r.status_code == 403
    assert r.json["message"] == "Cannot change work report owner"

    r = client.put(f"/api/work-reports/{a['id']}", json={"hoursWorked": "8", "status": "draft"}, headers=ann)
    assert r.status_code == 200
    assert Decimal(r.json["hoursWorked"]) == Decimal("8")
    assert r.json["status"] == "draft"
    assert r.json["userId"] == "id-ann"

    r = client.put(f"/api/work-reports/{a['id']}", json={"title": "Hijack"}, headers=_login(client, "bob"))
    assert r.status_code == 403


def test_validation_and_delete_permissions(client):
    ann = _login(client, "ann")
    r = client.post("/api/work-reports", json={"title": "x", "status": "done"}, headers=ann)
    assert r.status_code == 400
    assert r.json["errors"][:3] == ["Description is required.", "Hours worked is required.", "Date is required."]
    assert "Invalid status. Must be one of: draft, submitted, approved" in r.json["errors"]

    a = _report(client, ann)
    # plain users have no delete permission on work reports
    assert client.delete(f"/api/work-reports/{a['id']}", headers=ann).status_code == 403
    assert client.delete(f"/api/work-reports/{a['id']}", headers=_login(client, "boss")).status_code == 200


def test_non_string_values_do_not_crash(client):
    ann = _login(client, "ann")
    r = client.post(
        "/api/work-reports",
        json={"title": 5, "description": 12.5, "hoursWorked": 3, "date": "2026-03-02", "status": 7},
        headers=ann,
    )
    assert r.status_code == 400
    assert r.json["errors"] == ["Invalid status. Must be one of: draft, submitted, approved"]

    r = client.post(
        "/api/work-reports",
        json={"title": 5, "description": 12.5, "hoursWorked": 3, "date": "2026-03-02"},
        headers=ann,
    )
    assert r.status_code == 201
    assert r.json["title"] == "5"
    assert r.json["description"] == "12.5"

    r = client.put(f"/api/work-reports/{r.json['id']}", json={"userId": 99}, headers=ann)
    assert r.status_code == 400
    assert r.json["errors"] == ["User not found"]

    r = client.post("/api/work-reports", json=[1, 2], headers=ann)
    assert r.status_code == 400

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
        s.add(User(id="id-root", name="Root", username="root", password=generate_password_hash("pw"), role="super_admin"))
        s.add(User(id="id-boss", name="Boss", username="boss", password=generate_password_hash("pw"), role="admin"))
    return app.test_client()


def _login(client, username: str) -> dict:
    r = client.post("/api/auth/login", json={"username": username, "password": "pw"})
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_tags_crud(client):
    headers = _login(client, "root")
    r = client.post("/api/tags", json={"name": "VIP"}, headers=headers)
    assert r.status_code == 201
    tag = r.json
    assert tag["color"] == "#3B82F6"
    assert tag["isActive"] is True

    r = client.post("/api/tags", json={"name": "VIP"}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["A tag with this name already exists."]

    r = client.put(f"/api/tags/{tag['id']}", json={"color": "red"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/tags/{tag['id']}", json={"name": "VIP", "color": "#FF0000"}, headers=headers)
    assert r.status_code == 200
    assert r.json["color"] == "#FF0000"

    assert client.delete(f"/api/tags/{tag['id']}", headers=headers).status_code == 200
    assert client.get("/api/tags", headers=headers).json == []


def test_tags_are_admin_only(client):
    # the admin page row for role=admin is all False
    assert client.get("/api/tags", headers=_login(client, "boss")).status_code == 403


def test_employees_crud(client):
    headers = _login(client, "boss")
    r = client.post("/api/employees", json={"name": "", "userId": "nobody"}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Name is required.", "User not found"]

    r = client.post("/api/employees", json={"name": "Rahim", "department": "Ads"}, headers=headers)
    assert r.status_code == 201
    emp = r.json

    client.post("/api/employees", json={"name": "Karim", "isActive": False}, headers=headers)
    names = [e["name"] for e in client.get("/api/employees?activeOnly=true", headers=headers).json]
    assert names == ["Rahim"]

    r = client.put(f"/api/employees/{emp['id']}", json={"position": "Lead"}, headers=headers)
    assert r.json["position"] == "Lead"

    # salaries page: admin may edit but not delete
    assert client.delete(f"/api/employees/{emp['id']}", headers=headers).status_code == 403
    assert client.delete(f"/api/employees/{emp['id']}", headers=_login(client, "root")).status_code == 200

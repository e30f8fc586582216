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

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed_default_permissions(s)
        s.add(User(name="Admin", username="admin", password=generate_password_hash("pw"), role="super_admin"))

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_login_and_api_access(client):
    # Anonymous is rejected with a JSON 401
    r = client.get("/api/clients")
    assert r.status_code == 401
    assert r.json["message"] == "Unauthorized"

    r = client.post("/api/auth/login", json={"username": "admin", "password": "pw"})
    assert r.status_code == 200
    token = r.json["token"]
    assert r.json["user"]["username"] == "admin"
    assert "password" not in r.json["user"]

    headers = {"Authorization": f"Bearer {token}"}
    r = client.get("/api/clients", headers=headers)
    assert r.status_code == 200
    assert r.json == []

    r = client.get("/api/auth/user", headers=headers)
    assert r.status_code == 200
    assert r.json["role"] == "super_admin"


def test_unknown_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "message" in r.json


def test_production_requires_postgres(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        create_app()

import csv
import io

import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import Base, User
from app.agencyops.modules.clients.models import Client
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
        s.add(User(name="Boss", username="boss", password=generate_password_hash("pw"), role="admin"))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client) -> dict:
    r = client.post("/api/auth/login", json={"username": "boss", "password": "pw"})
    return {"Authorization": f"Bearer {r.json['token']}"}


def _upload(client, url: str, data: bytes, headers: dict):
    return client.post(
        url,
        data={"file": (io.BytesIO(data), "clients.csv")},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_client_crud(client):
    headers = _login(client)
    r = client.post("/api/clients", json={"businessName": "No Name"}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Client name is required."]

    r = client.post("/api/clients", json={"clientName": "Acme", "email": "Sales@Acme.test"}, headers=headers)
    assert r.status_code == 201
    cid = r.json["id"]
    assert r.json["status"] == "active"
    assert r.json["email"] == "sales@acme.test"

    r = client.put(f"/api/clients/{cid}", json={"status": "archived"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/clients/{cid}", json={"status": "inactive"}, headers=headers)
    assert r.json["status"] == "inactive"

    assert client.get("/api/clients?status=inactive", headers=headers).json[0]["id"] == cid
    assert client.get("/api/clients?q=acme", headers=headers).json[0]["id"] == cid

    assert client.delete(f"/api/clients/{cid}", headers=headers).status_code == 200
    assert client.get(f"/api/clients/{cid}", headers=headers).status_code == 404


def test_export_quotes_and_reimports(app, client):
    headers = _login(client)
    names = ["Plain Co", "Comma, Ltd", 'Quote "Q" Inc']
    for n in names:
        assert client.post("/api/clients", json={"clientName": n}, headers=headers).status_code == 201

    r = client.get("/api/clients/export/csv", headers=headers)
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    body = r.data
    assert b'"Comma, Ltd"' in body
    assert b'"Quote ""Q"" Inc"' in body

    rows = list(csv.DictReader(io.StringIO(body.decode("utf-8"))))
    assert [row["Client Name"] for row in rows] == names
    exported_ids = {row["Client ID"] for row in rows}

    with session_scope(app) as s:
        s.query(Client).delete()

    r = _upload(client, "/api/clients/import/csv", body, headers)
    assert r.status_code == 200
    assert r.json["imported"] == 3
    assert r.json["updated"] == 0
    assert r.json["errors"] == []

    with session_scope(app) as s:
        assert {c.id for c in s.query(Client).all()} == exported_ids
        assert sorted(c.client_name for c in s.query(Client).all()) == sorted(names)

    # Same sheet again updates in place
    r = _upload(client, "/api/clients/import/csv", body, headers)
    assert r.json["imported"] == 0
    assert r.json["updated"] == 3


def test_import_reports_row_errors(client):
    headers = _login(client)
    data = b"Client Name,Email,Status\nGood,good@x.test,active\n,blank@x.test,active\nBad,bad@x.test,archived\n"
    r = _upload(client, "/api/clients/import/csv", data, headers)
    assert r.status_code == 200
    assert r.json["imported"] == 1
    assert [e["row"] for e in r.json["errors"]] == [3, 4]


def test_import_matches_by_email(client):
    headers = _login(client)
    client.post("/api/clients", json={"clientName": "Old Name", "email": "a@x.test"}, headers=headers)
    r = _upload(client, "/api/clients/import/csv", b"Client Name,Email\nNew Name,A@X.test\n", headers)
    assert r.json["updated"] == 1
    assert client.get("/api/clients", headers=headers).json[0]["clientName"] == "New Name"


def test_import_requires_header_and_file(client):
    headers = _login(client)
    r = _upload(client, "/api/clients/import/csv", b"Name,Email\nX,x@x.test\n", headers)
    assert r.status_code == 400
    assert r.json["message"] == "Missing required columns: Client Name"

    r = client.post("/api/clients/import/csv", headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "No file uploaded"


def test_non_object_json_bodies_are_rejected(client):
    headers = _login(client)
    for body in (["x"], "Acme", 42):
        r = client.post("/api/clients", json=body, headers=headers)
        assert r.status_code == 400
        assert r.json == {"message": "Invalid input", "errors": ["Body must be a JSON object"]}

    cid = client.post("/api/clients", json={"clientName": "Acme"}, headers=headers).json["id"]
    r = client.put(f"/api/clients/{cid}", json=[{"clientName": "B"}], headers=headers)
    assert r.status_code == 400

    r = client.post("/api/auth/login", json=["boss", "pw"])
    assert r.status_code == 400
    assert r.json["errors"] == ["Body must be a JSON object"]


def test_numeric_text_fields_are_stored_as_text(client):
    headers = _login(client)
    r = client.post("/api/clients", json={"clientName": 1001, "email": "ops@acme.test"}, headers=headers)
    assert r.status_code == 201
    assert r.json["clientName"] == "1001"

"""Role/page permission matrix: resolution rules, enforcement on routes, and admin editing."""
import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.constants import VALID_ROLES
from app.agencyops.db import session_scope
from app.agencyops.models import Base, Page, RolePermission, User
from app.agencyops.modules.permissions.service import seed_default_permissions
from app.agencyops.rbac import PagePolicy, check_user_page_permission


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        seed_default_permissions(s)
        for username, role in (
            ("root", "super_admin"),
            ("boss", "admin"),
            ("mgr", "manager"),
            ("worker", "user"),
        ):
            s.add(User(id=f"id-{username}", name=username.title(), username=username, password=generate_password_hash("pw"), role=role))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username: str) -> dict:
    r = client.post("/api/auth/login", json={"username": username, "password": "pw"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_seed_is_idempotent(app):
    with session_scope(app) as s:
        again = seed_default_permissions(s)
        assert again.pages_created == 0
        assert again.permissions_created == 0
        assert s.query(Page).count() == 9


def test_seed_creates_one_row_per_role_and_page(app, client):
    with session_scope(app) as s:
        page_ids = {p.id for p in s.query(Page).all()}
        for role in VALID_ROLES:
            rows = s.query(RolePermission).filter(RolePermission.role == role).all()
            assert {rp.page_id for rp in rows} == page_ids
            assert len(rows) == len(page_ids)

    headers = _login(client, "root")
    r = client.get("/api/role-permissions/user", headers=headers)
    assert r.status_code == 200
    by_page = {rp["pageKey"]: rp for rp in r.json}
    assert len(by_page) == 9
    assert by_page["campaigns"]["canView"] is False
    assert by_page["work_reports"]["canEdit"] is True


def test_admin_can_grant_a_permission_the_defaults_leave_off(app, client):
    worker = _login(client, "worker")
    assert client.get("/api/campaigns", headers=worker).status_code == 403

    with session_scope(app) as s:
        page = s.query(Page).filter(Page.page_key == "campaigns").one()
        rp_id = s.query(RolePermission).filter(RolePermission.role == "user", RolePermission.page_id == page.id).one().id

    r = client.put(f"/api/role-permissions/{rp_id}", headers=_login(client, "root"), json={"canView": True})
    assert r.status_code == 200
    assert client.get("/api/campaigns", headers=worker).status_code == 200


def test_missing_row_denies(app):
    with session_scope(app) as s:
        page = s.query(Page).filter(Page.page_key == "dashboard").one()
        s.query(RolePermission).filter(RolePermission.role == "user", RolePermission.page_id == page.id).delete()
    with session_scope(app) as s:
        assert check_user_page_permission(s, "id-worker", "dashboard", "view") is False
        assert check_user_page_permission(s, "id-root", "dashboard", "view") is True


def test_matrix_resolution(app):
    with session_scope(app) as s:
        # super_admin passes even for pages that do not exist
        assert check_user_page_permission(s, "id-root", "no_such_page", "delete") is True

        assert check_user_page_permission(s, "id-worker", "work_reports", "view") is True
        assert check_user_page_permission(s, "id-worker", "work_reports", "edit") is True
        assert check_user_page_permission(s, "id-worker", "work_reports", "delete") is False
        # seeded all-False row for (user, campaigns)
        assert check_user_page_permission(s, "id-worker", "campaigns", "view") is False

        assert check_user_page_permission(s, "id-boss", "campaigns", "delete") is True
        assert check_user_page_permission(s, "id-boss", "admin", "view") is False
        assert check_user_page_permission(s, "id-mgr", "clients", "edit") is False

        assert check_user_page_permission(s, "missing-user", "dashboard", "view") is False


def test_inactive_page_denies_everyone_but_super_admin(app):
    with session_scope(app) as s:
        page = s.query(Page).filter(Page.page_key == "campaigns").one()
        page.is_active = False
    with session_scope(app) as s:
        assert check_user_page_permission(s, "id-boss", "campaigns", "view") is False
        assert check_user_page_permission(s, "id-root", "campaigns", "view") is True


def test_edit_does_not_require_view(app):
    with session_scope(app) as s:
        page = s.query(Page).filter(Page.page_key == "clients").one()
        rp = s.query(RolePermission).filter(RolePermission.role == "manager", RolePermission.page_id == page.id).one()
        rp.can_view = False
        rp.can_edit = True
    with session_scope(app) as s:
        assert check_user_page_permission(s, "id-mgr", "clients", "view") is False
        assert check_user_page_permission(s, "id-mgr", "clients", "edit") is True


def test_unknown_action_policy():
    with pytest.raises(ValueError):
        PagePolicy(page_key="clients", action="approve")


def test_routes_enforce_matrix(client):
    headers = _login(client, "worker")
    r = client.get("/api/clients", headers=headers)
    assert r.status_code == 403
    assert r.json["message"] == "Access denied. You don't have view permission for this page."

    r = client.post("/api/clients", json={"clientName": "X"}, headers=headers)
    assert r.status_code == 403
    assert r.json["message"] == "Access denied. You don't have edit permission for this page."

    r = client.get("/api/work-reports", headers=headers)
    assert r.status_code == 200


def test_admin_routes_bypass_for_super_admin_only(client):
    r = client.get("/api/role-permissions", headers=_login(client, "boss"))
    assert r.status_code == 403

    r = client.get("/api/role-permissions", headers=_login(client, "root"))
    assert r.status_code == 200
    rows = r.json
    assert rows
    assert {"pageKey", "pageName", "canView", "canEdit", "canDelete", "role"} <= set(rows[0])

    r = client.get("/api/role-permissions/user", headers=_login(client, "root"))
    assert r.status_code == 200
    assert {row["pageKey"] for row in r.json} == {"dashboard", "work_reports"}


def test_check_endpoint(client):
    headers = _login(client, "worker")
    r = client.get("/api/permissions/check/work_reports?action=edit", headers=headers)
    assert r.status_code == 200
    assert r.json == {"hasPermission": True}

    r = client.get("/api/permissions/check/finance", headers=headers)
    assert r.json == {"hasPermission": False}

    r = client.get("/api/permissions/check/finance?action=approve", headers=headers)
    assert r.status_code == 400
    assert r.json["message"] == "Invalid action. Must be 'view', 'edit', or 'delete'"

    r = client.get("/api/permissions/check/finance")
    assert r.status_code == 401


def test_update_and_bulk_update(app, client):
    headers = _login(client, "root")
    rows = client.get("/api/role-permissions/manager", headers=headers).json
    clients_row = next(r for r in rows if r["pageKey"] == "clients")
    finance_row = next(r for r in rows if r["pageKey"] == "finance")

    r = client.put(f"/api/role-permissions/{clients_row['id']}", json={"canEdit": "yes"}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/role-permissions/{clients_row['id']}", json={"canEdit": True}, headers=headers)
    assert r.status_code == 200
    assert r.json["canEdit"] is True

    r = client.put(
        "/api/role-permissions/bulk",
        json=[
            {"id": finance_row["id"], "canEdit": True, "canDelete": True},
            {"id": "does-not-exist", "canView": True},
        ],
        headers=headers,
    )
    assert r.status_code == 200
    assert len(r.json) == 1

    with session_scope(app) as s:
        assert check_user_page_permission(s, "id-mgr", "finance", "delete") is True

    r = client.put("/api/role-permissions/bulk", json={"id": finance_row["id"]}, headers=headers)
    assert r.status_code == 400

    r = client.put("/api/role-permissions/bulk", json=[{"canView": True}], headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Item 0: id is required"]

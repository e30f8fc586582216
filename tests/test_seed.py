import pytest
from werkzeug.security import check_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import Base, Page, RolePermission, User
from app.agencyops.modules.finance.service import get_exchange_rate
from scripts.init_db import seed


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


def test_seed_is_idempotent(app):
    with session_scope(app) as s:
        seed(s, admin_username="admin", admin_password="first-pass")
    with session_scope(app) as s:
        pages = s.query(Page).count()
        perms = s.query(RolePermission).count()
        seed(s, admin_username="admin", admin_password="second-pass")
    with session_scope(app) as s:
        assert s.query(Page).count() == pages == 9
        assert s.query(RolePermission).count() == perms == 9 * 4
        admin = s.query(User).filter(User.username == "admin").one()
        assert admin.role == "super_admin"
        assert check_password_hash(admin.password, "first-pass")
        assert get_exchange_rate(s) == 110.0


def test_seeded_admin_can_log_in(app):
    with session_scope(app) as s:
        seed(s, admin_username="owner", admin_password="s3cret!")
    r = app.test_client().post("/api/auth/login", json={"username": "owner", "password": "s3cret!"})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "super_admin"

"""Finance: USD->BDT payment conversion, dashboard rollups and the two-phase expense CSV import."""
import csv
import io
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import Base, User
from app.agencyops.modules.finance.models import FinanceExpense
from app.agencyops.modules.finance.service import get_exchange_rate, set_setting
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
        s.add(User(name="Mgr", username="mgr", password=generate_password_hash("pw"), role="manager"))
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username: str = "boss") -> dict:
    r = client.post("/api/auth/login", json={"username": username, "password": "pw"})
    return {"Authorization": f"Bearer {r.json['token']}"}


def _project(client, headers) -> dict:
    c = client.post("/api/clients", json={"clientName": "Acme"}, headers=headers).json
    r = client.post(
        "/api/finance/projects",
        json={"name": "Acme Launch", "clientId": c["id"], "startDate": "2026-01-05", "budget": "5000"},
        headers=headers,
    )
    assert r.status_code == 201, r.json
    return r.json


def _upload(client, url: str, data: bytes, headers: dict):
    return client.post(
        url,
        data={"file": (io.BytesIO(data), "expenses.csv")},
        headers=headers,
        content_type="multipart/form-data",
    )


def test_exchange_rate_falls_back_to_default(app):
    with session_scope(app) as s:
        assert get_exchange_rate(s) == 110.0
        set_setting(s, "usd_to_bdt_rate", "not-a-number", None)
        assert get_exchange_rate(s) == 110.0
        set_setting(s, "usd_to_bdt_rate", "0", None)
        assert get_exchange_rate(s) == 110.0
        set_setting(s, "usd_to_bdt_rate", "inf", None)
        assert get_exchange_rate(s) == 110.0
        set_setting(s, "usd_to_bdt_rate", "121.5", None)
        assert get_exchange_rate(s) == 121.5


def test_payment_conversion(client):
    headers = _login(client)
    project = _project(client, headers)

    r = client.post(
        "/api/finance/payments",
        json={"clientId": project["clientId"], "projectId": project["id"], "amount": "100", "date": "2026-01-10"},
        headers=headers,
    )
    assert r.status_code == 201
    assert Decimal(r.json["convertedAmount"]) == Decimal("11000")
    assert Decimal(r.json["conversionRate"]) == Decimal("110")
    assert r.json["currency"] == "USD"

    r = client.post("/api/finance/settings", json={"key": "usd_to_bdt_rate", "value": "120"}, headers=headers)
    assert r.status_code == 200
    assert client.get("/api/finance/exchange-rate", headers=headers).json == {"rate": 120.0}

    r = client.post(
        "/api/finance/payments",
        json={"clientId": project["clientId"], "projectId": project["id"], "amount": "12.5", "date": "2026-02-01"},
        headers=headers,
    )
    payment = r.json
    assert Decimal(payment["convertedAmount"]) == Decimal("1500")

    # Explicit rate on update recomputes the BDT amount
    r = client.put(f"/api/finance/payments/{payment['id']}", json={"conversionRate": "100"}, headers=headers)
    assert Decimal(r.json["convertedAmount"]) == Decimal("1250")

    r = client.post("/api/finance/payments", json={"amount": "x"}, headers=headers)
    assert r.status_code == 400
    assert "Client is required." in r.json["errors"]
    assert "amount must be a number" in r.json["errors"]


def test_dashboard(client):
    headers = _login(client)
    project = _project(client, headers)
    client.post(
        "/api/finance/payments",
        json={"clientId": project["clientId"], "projectId": project["id"], "amount": "100", "date": "2026-01-10"},
        headers=headers,
    )
    client.post("/api/finance/expenses", json={"amount": "2200", "date": "2026-01-15"}, headers=headers)
    client.post("/api/finance/expenses", json={"type": "salary", "amount": "1100", "date": "2026-02-01"}, headers=headers)

    r = client.get("/api/finance/dashboard", headers=_login(client, "mgr"))
    assert r.status_code == 200
    summary = r.json["summary"]
    assert summary["totalPaymentsUSD"] == pytest.approx(100)
    assert summary["totalPaymentsBDT"] == pytest.approx(11000)
    assert summary["totalExpensesBDT"] == pytest.approx(3300)
    assert summary["totalExpensesUSD"] == pytest.approx(30)
    assert summary["availableBalanceUSD"] == pytest.approx(70)
    assert summary["totalSalariesBDT"] == pytest.approx(1100)
    assert summary["netBalanceBDT"] == pytest.approx(7700)
    assert r.json["charts"]["paymentsByMonth"] == {"Jan 2026": 100.0}
    assert r.json["charts"]["expensesByMonth"] == {
        "Jan 2026": {"expenses": 2200.0, "salaries": 0.0},
        "Feb 2026": {"expenses": 0.0, "salaries": 1100.0},
    }
    assert r.json["counts"] == {"totalProjects": 1, "activeProjects": 1, "totalPayments": 1, "totalExpenses": 2}

    # Managers can look but not touch
    r = client.post("/api/finance/expenses", json={"amount": "1", "date": "2026-01-01"}, headers=_login(client, "mgr"))
    assert r.status_code == 403


def test_expense_preview_reports_every_row(app, client):
    headers = _login(client)
    data = (
        "Type,Project ID,Amount,Date,Notes\n"
        "expense,,500,2026-03-01,Office rent\n"
        "expense,,abc,2026-03-02,\n"
        "salary,,0,2026-03-03,\n"
        "expense,missing-project,10,2026-03-04,\n"
        "bonus,,10,2026-03-05,\n"
    ).encode()

    r = _upload(client, "/api/finance/expenses/import/preview", data, headers)
    assert r.status_code == 200
    assert r.json["totalRows"] == 5
    assert r.json["validRows"] == 1
    assert r.json["canConfirm"] is False
    assert r.json["errors"] == [
        {"row": 3, "message": "amount must be a number"},
        {"row": 4, "message": "Amount must be greater than zero"},
        {"row": 5, "message": "Project not found"},
        {"row": 6, "message": "Invalid type. Must be one of: expense, salary"},
    ]

    r = _upload(client, "/api/finance/expenses/import/confirm", data, headers)
    assert r.status_code == 400
    with session_scope(app) as s:
        assert s.query(FinanceExpense).count() == 0


def test_expense_confirm_upserts(app, client):
    headers = _login(client)
    existing = client.post("/api/finance/expenses", json={"amount": "10", "date": "2026-03-01"}, headers=headers).json
    data = (
        "Expense ID,Type,Amount,Date,Notes\n"
        f"{existing['id']},expense,15,2026-03-01,fixed\n"
        ",salary,3000,2026-03-31,March payroll\n"
    ).encode()

    r = _upload(client, "/api/finance/expenses/import/preview", data, headers)
    assert r.json["canConfirm"] is True
    assert r.json["rows"][1]["amount"] == "3000"

    r = _upload(client, "/api/finance/expenses/import/confirm", data, headers)
    assert r.status_code == 200
    assert r.json["imported"] == 1
    assert r.json["updated"] == 1

    with session_scope(app) as s:
        assert s.query(FinanceExpense).count() == 2
        assert s.get(FinanceExpense, existing["id"]).notes == "fixed"

    r = client.get("/api/finance/expenses/export/csv", headers=headers)
    rows = list(csv.DictReader(io.StringIO(r.data.decode("utf-8"))))
    assert [row["Type"] for row in rows] == ["expense", "salary"]


def test_non_finite_amounts_are_row_errors(client):
    headers = _login(client)
    data = b"Amount,Date\nNaN,2026-03-01\nInfinity,2026-03-02\n-inf,2026-03-03\n"

    r = _upload(client, "/api/finance/expenses/import/preview", data, headers)
    assert r.status_code == 200
    assert r.json["canConfirm"] is False
    assert r.json["errors"] == [
        {"row": 2, "message": "amount must be a number"},
        {"row": 3, "message": "amount must be a number"},
        {"row": 4, "message": "amount must be a number"},
    ]

    project = _project(client, headers)
    r = client.post(
        "/api/finance/payments",
        json={"clientId": project["clientId"], "projectId": project["id"], "amount": "NaN", "date": "2026-01-10"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json["errors"] == ["amount must be a number"]


def test_expense_preview_needs_amount_and_date_columns(client):
    headers = _login(client)
    r = _upload(client, "/api/finance/expenses/import/preview", b"Type,Notes\nexpense,x\n", headers)
    assert r.status_code == 400
    assert r.json["message"] == "Missing required columns: Amount, Date"

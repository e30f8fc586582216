"""Salaries: derived totals, generation from work reports, and month stats."""
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.agencyops import create_app
from app.agencyops.db import session_scope
from app.agencyops.models import Base, User
from app.agencyops.modules.permissions.service import seed_default_permissions
from app.agencyops.modules.salaries.models import Salary
from app.agencyops.modules.salaries.service import compute_totals
from app.agencyops.modules.work_reports.models import WorkReport
from app.agencyops.utils import parse_datetime


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
        s.add(User(id="id-boss", name="Boss", username="boss", password=generate_password_hash("pw"), role="admin"))
        s.add(User(id="id-worker", name="Wanda Worker", username="worker", password=generate_password_hash("pw"), role="user"))
        s.flush()
        for day, hours, status in (
            ("2026-02-27", "9", "submitted"),
            ("2026-03-02", "8", "submitted"),
            ("2026-03-10", "6.5", "approved"),
            ("2026-03-11", "4", "draft"),
        ):
            s.add(
                WorkReport(
                    user_id="id-worker",
                    title=f"Work on {day}",
                    description="Campaign setup",
                    hours_worked=Decimal(hours),
                    date=parse_datetime(day),
                    status=status,
                )
            )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username: str = "root") -> dict:
    r = client.post("/api/auth/login", json={"username": username, "password": "pw"})
    return {"Authorization": f"Bearer {r.json['token']}"}


def test_compute_totals():
    salary = Salary(
        basic_salary=Decimal("16000"),
        contractual_hours=Decimal("160"),
        actual_working_hours=Decimal("150"),
        transport_allowance=Decimal("500"),
        food_allowance=Decimal("300"),
        festival_bonus=Decimal("1000"),
        tax_deduction=Decimal("200"),
        leave_deduction=Decimal("100"),
    )
    compute_totals(salary)
    assert salary.hourly_rate == Decimal("100.0000")
    assert salary.base_payment == Decimal("15000.00")
    assert salary.total_allowances == Decimal("800.00")
    assert salary.total_bonus == Decimal("1000.00")
    assert salary.total_deductions == Decimal("300.00")
    assert salary.gross_payment == Decimal("16800.00")
    assert salary.final_payment == Decimal("16500.00")


def test_compute_totals_zero_contractual_hours():
    salary = Salary(basic_salary=Decimal("1000"), contractual_hours=Decimal("0"), actual_working_hours=Decimal("10"))
    compute_totals(salary)
    assert salary.hourly_rate == Decimal("0.0000")
    assert salary.final_payment == Decimal("0.00")


def test_create_ignores_client_totals_and_rejects_duplicates(client):
    headers = _login(client)
    body = {
        "employeeId": "id-worker",
        "month": "2026-02",
        "basicSalary": "16000",
        "actualWorkingHours": "160",
        "finalPayment": "999999",
    }
    r = client.post("/api/salaries", json=body, headers=headers)
    assert r.status_code == 201
    assert r.json["employeeName"] == "Wanda Worker"
    assert r.json["finalPayment"] == 16000.0
    assert r.json["paymentStatus"] == "unpaid"
    assert r.json["salaryApprovalStatus"] == "pending"

    r = client.post("/api/salaries", json=body, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["A salary record already exists for this employee for 2026-02."]

    r = client.post(
        "/api/salaries",
        json={"employeeId": "ghost", "month": "2026-13", "basicSalary": "-5", "paymentMethod": "cheque"},
        headers=headers,
    )
    assert r.status_code == 400
    assert "Month must be in YYYY-MM format." in r.json["errors"]
    assert "Basic salary cannot be negative." in r.json["errors"]
    assert "Employee not found" in r.json["errors"]
    assert any(e.startswith("Invalid payment method") for e in r.json["errors"])


def test_update_recomputes_and_guards_month(client):
    headers = _login(client)
    a = client.post(
        "/api/salaries",
        json={"employeeId": "id-worker", "month": "2026-01", "basicSalary": "1600", "actualWorkingHours": "160"},
        headers=headers,
    ).json
    client.post("/api/salaries", json={"employeeId": "id-worker", "month": "2026-02"}, headers=headers)

    r = client.put(f"/api/salaries/{a['id']}", json={"otherBonus": "50", "paymentStatus": "paid"}, headers=headers)
    assert r.status_code == 200
    assert r.json["finalPayment"] == 1650.0
    assert r.json["paymentStatus"] == "paid"

    r = client.put(f"/api/salaries/{a['id']}", json={"month": "2026-02"}, headers=headers)
    assert r.status_code == 400

    assert client.delete(f"/api/salaries/{a['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/salaries/{a['id']}", headers=headers).status_code == 404


def test_generate_preview_from_work_reports(client):
    headers = _login(client)
    client.post(
        "/api/salaries",
        json={"employeeId": "id-worker", "month": "2026-02", "basicSalary": "16000", "contractualHours": "160"},
        headers=headers,
    )

    r = client.get("/api/salaries/generate-preview?employeeId=id-worker&month=2026-03", headers=headers)
    assert r.status_code == 200
    assert r.json["exists"] is False
    assert r.json["employee"] == {"id": "id-worker", "name": "Wanda Worker"}
    # draft and February reports are not counted
    assert r.json["workReports"]["count"] == 2
    assert r.json["workReports"]["totalHours"] == 14.5
    preview = r.json["preview"]
    assert preview["hasPreviousSalary"] is True
    assert preview["basicSalary"] == 16000.0
    assert preview["hourlyRate"] == 100.0
    assert preview["basePayment"] == 1450.0

    r = client.get("/api/salaries/generate-preview?employeeId=id-worker&month=2026-02", headers=headers)
    assert r.json["exists"] is True
    assert r.json["existingSalary"]["month"] == "2026-02"

    assert client.get("/api/salaries/generate-preview?employeeId=id-worker", headers=headers).status_code == 400
    assert client.get("/api/salaries/generate-preview?employeeId=ghost&month=2026-03", headers=headers).status_code == 404


def test_generate_uses_report_hours_then_conflicts(client):
    headers = _login(client)
    body = {"employeeId": "id-worker", "month": "2026-03", "basicSalary": "16000"}
    r = client.post("/api/salaries/generate", json=body, headers=headers)
    assert r.status_code == 201
    salary = r.json["salary"]
    assert salary["actualWorkingHours"] == 14.5
    assert salary["basePayment"] == 1450.0

    r = client.post("/api/salaries/generate", json=body, headers=headers)
    assert r.status_code == 409


def test_employee_payee(client):
    headers = _login(client)
    r = client.post("/api/employees", json={"name": "Linked", "userId": "id-worker"}, headers=headers)
    assert r.status_code == 201
    emp = r.json

    r = client.get(f"/api/salaries/generate-preview?employeeId={emp['id']}&month=2026-03", headers=headers)
    assert r.json["employee"]["name"] == "Linked"
    assert r.json["workReports"]["count"] == 2


def test_stats(client):
    headers = _login(client)
    for month, basic, status in (("2026-01", "1000", "paid"), ("2026-02", "2000", "unpaid")):
        client.post(
            "/api/salaries",
            json={
                "employeeId": "id-worker",
                "month": month,
                "basicSalary": basic,
                "actualWorkingHours": "160",
                "loanDeduction": "100",
                "paymentStatus": status,
            },
            headers=headers,
        )

    r = client.get("/api/salaries/stats", headers=headers)
    assert r.status_code == 200
    assert r.json["totalRecords"] == 2
    assert r.json["paidCount"] == 1
    assert r.json["unpaidCount"] == 1
    assert r.json["pendingApprovalCount"] == 2
    assert r.json["totalGrossPayment"] == 3000.0
    assert r.json["totalDeductions"] == 200.0
    assert r.json["totalFinalPayment"] == 2800.0
    assert r.json["paidAmount"] == 900.0
    assert r.json["unpaidAmount"] == 1900.0
    assert r.json["byMonth"] == [
        {"month": "2026-01", "totalFinalPayment": 900.0},
        {"month": "2026-02", "totalFinalPayment": 1900.0},
    ]

    r = client.get("/api/salaries/stats?month=2026-02", headers=headers)
    assert r.json["totalRecords"] == 1
    assert client.get("/api/salaries/stats?month=Feb", headers=headers).status_code == 400

    listed = client.get("/api/salaries?paymentStatus=paid", headers=headers).json
    assert [x["month"] for x in listed] == ["2026-01"]


def test_salaries_page_is_gated(client):
    assert client.get("/api/salaries", headers=_login(client, "worker")).status_code == 403
    # admins may edit but not delete salaries by default
    boss = _login(client, "boss")
    r = client.post("/api/salaries", json={"employeeId": "id-worker", "month": "2026-04"}, headers=boss)
    assert r.status_code == 201
    assert client.delete(f"/api/salaries/{r.json['id']}", headers=boss).status_code == 403

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import issue_owner_token
from config import get_settings
from database import Base
from main import app, get_db
from periods import local_today

JOB_SECRET = "nightly-job-secret"


def make_client() -> TestClient:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def _headers(owner_id: str = "alice") -> dict[str, str]:
    return {"X-Owner-Token": issue_owner_token(owner_id)}


def _job_headers(secret: str = JOB_SECRET) -> dict[str, str]:
    return {"X-Job-Token": secret}


def _expense(**overrides) -> dict:
    payload = {
        "type": "expense",
        "amount_cents": 30_000,
        "description": "Groceries",
        "category": "Comida",
        "payment_method": "Credit",
        "date": local_today().isoformat(),
    }
    payload.update(overrides)
    return payload


def test_requests_without_valid_token_are_rejected() -> None:
    client = make_client()
    assert client.get("/api/balances").status_code == 401
    assert (
        client.get("/api/balances", headers={"X-Owner-Token": "forged"}).status_code
        == 401
    )


def test_transaction_lifecycle_updates_balances() -> None:
    client = make_client()
    headers = _headers()

    resp = client.put(
        "/api/balances",
        json={"debit_balance_cents": 100_000, "credit_limit_cents": 500_000},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["available_credit_cents"] == 500_000

    resp = client.post("/api/transactions", json=_expense(), headers=headers)
    assert resp.status_code == 201
    txn_id = resp.json()["id"]

    balances = client.get("/api/balances", headers=headers).json()
    assert balances["used_credit_cents"] == 30_000
    assert balances["debit_balance_cents"] == 100_000

    resp = client.put(
        f"/api/transactions/{txn_id}", json=_expense(amount_cents=50_000), headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["amount_cents"] == 50_000
    assert client.get("/api/balances", headers=headers).json()["used_credit_cents"] == 50_000

    listed = client.get("/api/transactions?period=this_month", headers=headers).json()
    assert [t["id"] for t in listed] == [txn_id]

    assert client.delete(f"/api/transactions/{txn_id}", headers=headers).status_code == 204
    assert client.get("/api/balances", headers=headers).json()["used_credit_cents"] == 0


def test_error_mapping() -> None:
    client = make_client()
    headers = _headers()

    resp = client.post("/api/transactions", json=_expense(amount_cents=0), headers=headers)
    assert resp.status_code == 400

    future = (local_today() + timedelta(days=2)).isoformat()
    resp = client.post("/api/transactions", json=_expense(date=future), headers=headers)
    assert resp.status_code == 400
    assert "future" in resp.json()["detail"]

    txn_id = client.post("/api/transactions", json=_expense(), headers=headers).json()["id"]
    resp = client.delete(f"/api/transactions/{txn_id}", headers=_headers("mallory"))
    assert resp.status_code == 404


def test_goal_and_loan_endpoints() -> None:
    client = make_client()
    headers = _headers()
    client.put(
        "/api/balances",
        json={"debit_balance_cents": 1_000_000, "credit_limit_cents": 0},
        headers=headers,
    )

    goal = client.post(
        "/api/goals",
        json={"goal_name": "Trip", "target_amount_cents": 500_000},
        headers=headers,
    ).json()
    resp = client.post(
        f"/api/goals/{goal['id']}/contribute",
        json={"amount_cents": 600_000},
        headers=headers,
    )
    assert resp.status_code == 400
    resp = client.post(
        f"/api/goals/{goal['id']}/contribute",
        json={"amount_cents": 100_000},
        headers=headers,
    )
    assert resp.json()["current_amount_cents"] == 100_000

    loan = client.post(
        "/api/loans",
        json={
            "loan_name": "Car",
            "total_amount_cents": 1_200_000,
            "installments": 12,
            "installments_paid": 9,
        },
        headers=headers,
    ).json()
    assert loan["remaining_amount_cents"] == 300_000
    resp = client.post(
        f"/api/loans/{loan['id']}/payments",
        json={"amount_cents": 300_000},
        headers=headers,
    )
    assert resp.json() == {"remaining_amount_cents": 0, "status": "paid"}

    balances = client.get("/api/balances", headers=headers).json()
    assert balances["debit_balance_cents"] == 600_000


def test_recurring_job_and_reset(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "job_secret", JOB_SECRET)
    client = make_client()
    headers = _headers()
    today = local_today()
    resp = client.post(
        "/api/recurring",
        json={
            "type": "income",
            "amount_cents": 250_000,
            "description": "Salary",
            "category": "Salario",
            "day_of_month": today.day,
        },
        headers=headers,
    )
    assert resp.status_code == 201

    first = client.post(
        f"/jobs/recurring?as_of={today.isoformat()}", headers=_job_headers()
    ).json()
    second = client.post(
        f"/jobs/recurring?as_of={today.isoformat()}", headers=_job_headers()
    ).json()
    assert first["processed_count"] == 1
    assert second == {"processed_count": 0, "skipped_count": 1, "errors": []}
    assert client.get("/api/balances", headers=headers).json()["debit_balance_cents"] == 250_000

    resp = client.post("/api/reset", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["deleted_count"] == 2
    assert client.get("/api/balances", headers=headers).json()["debit_balance_cents"] == 0
    assert client.get("/api/recurring", headers=headers).json() == []


def test_job_endpoints_require_job_token(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "job_secret", JOB_SECRET)
    client = make_client()

    assert client.post("/jobs/recurring").status_code == 401
    assert client.post("/jobs/recurring", headers=_job_headers("forged")).status_code == 401
    assert client.post("/jobs/recurring", headers=_headers()).status_code == 401
    assert client.post("/jobs/notifications/cleanup").status_code == 401
    resp = client.post("/jobs/notifications/cleanup", headers=_job_headers())
    assert resp.status_code == 200
    assert resp.json() == {"deleted_count": 0}


def test_job_endpoints_are_closed_without_configured_secret(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "job_secret", "")
    client = make_client()
    assert client.post("/jobs/recurring", headers=_job_headers("")).status_code == 401


def test_recurring_job_rejects_dates_outside_window(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "job_secret", JOB_SECRET)
    client = make_client()
    headers = _headers()
    today = local_today()
    client.post(
        "/api/recurring",
        json={
            "type": "income",
            "amount_cents": 100_000,
            "description": "Salary",
            "category": "Salario",
            "day_of_month": 15,
        },
        headers=headers,
    )

    future = (today + timedelta(days=40)).replace(day=15)
    resp = client.post(f"/jobs/recurring?as_of={future.isoformat()}", headers=_job_headers())
    assert resp.status_code == 400
    assert "future" in resp.json()["detail"]

    too_old = (today - timedelta(days=400)).replace(day=15)
    resp = client.post(f"/jobs/recurring?as_of={too_old.isoformat()}", headers=_job_headers())
    assert resp.status_code == 400

    assert client.get("/api/transactions", headers=headers).json() == []
    assert client.get("/api/balances", headers=headers).json()["debit_balance_cents"] == 0


def test_unknown_transaction_type_filter_is_rejected() -> None:
    client = make_client()
    resp = client.get("/api/transactions?type=refund", headers=_headers())
    assert resp.status_code == 400
    assert "refund" in resp.json()["detail"]


def test_summary_endpoint() -> None:
    client = make_client()
    headers = _headers()
    client.post(
        "/api/transactions",
        json=_expense(type="income", amount_cents=200_000, category="Salario",
                      payment_method=None, description="Salary"),
        headers=headers,
    )
    client.post("/api/transactions", json=_expense(amount_cents=30_000), headers=headers)
    client.post(
        "/api/transactions",
        json=_expense(amount_cents=45_000, category="Transporte", description="Bus pass"),
        headers=headers,
    )

    resp = client.get("/api/summary?period=this_month", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["income_cents"] == 200_000
    assert body["expense_cents"] == 75_000
    assert body["net_cents"] == 125_000
    assert body["by_category"] == [
        {"category": "Transporte", "total_cents": 45_000},
        {"category": "Comida", "total_cents": 30_000},
    ]
    assert client.get("/api/summary").status_code == 401

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import issue_token
from database import Base, get_db
from main import app
from recurrence import local_today, to_local_naive


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
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
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def _auth(principal: str = "alice") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(principal)}"}


def test_requests_without_identity_are_unauthorized(client):
    assert client.get("/api/events").status_code == 401
    bad = {"Authorization": "Bearer forged.token"}
    assert client.get("/api/me", headers=bad).status_code == 401


def test_health_and_me(client):
    assert client.get("/api/health").json()["status"] == "ok"

    me = client.get("/api/me", headers=_auth())
    assert me.status_code == 200
    assert me.json()["principal"] == "alice"


def test_recurring_event_post_returns_list(client):
    single = client.post(
        "/api/events",
        json={
            "title": "Dentist",
            "start_time": "2024-02-01T10:00:00",
            "end_time": "2024-02-01T11:00:00",
        },
        headers=_auth(),
    )
    assert single.status_code == 201
    assert single.json()["title"] == "Dentist"

    series = client.post(
        "/api/events",
        json={
            "title": "Gym",
            "start_time": "2024-01-05T09:00:00",
            "end_time": "2024-01-05T10:00:00",
            "is_recurring": True,
            "recurrence_kind": "weekdays",
            "recurrence_end": "2024-01-08",
        },
        headers=_auth(),
    )
    assert series.status_code == 201
    assert [e["start_time"][:10] for e in series.json()] == [
        "2024-01-05",
        "2024-01-08",
    ]


def test_recurrence_end_instant_excludes_that_day(client):
    series = client.post(
        "/api/events",
        json={
            "title": "Gym",
            "start_time": "2024-01-05T09:00:00",
            "end_time": "2024-01-05T10:00:00",
            "is_recurring": True,
            "recurrence_kind": "weekdays",
            "recurrence_end": "2024-01-09T00:00:00",
        },
        headers=_auth(),
    )

    assert series.status_code == 201
    assert [e["start_time"][:10] for e in series.json()] == [
        "2024-01-05",
        "2024-01-08",
    ]


def test_mixed_offset_event_times_are_validated(client):
    local_start = to_local_naive(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
    # an end equal to the start once both are in the configured zone
    rejected = client.post(
        "/api/events",
        json={
            "title": "Call",
            "start_time": "2024-01-01T09:00:00Z",
            "end_time": local_start.isoformat(),
        },
        headers=_auth(),
    )
    assert rejected.status_code == 422

    accepted = client.post(
        "/api/events",
        json={
            "title": "Call",
            "start_time": "2024-01-01T09:00:00Z",
            "end_time": (local_start + timedelta(hours=1)).isoformat(),
        },
        headers=_auth(),
    )
    assert accepted.status_code == 201
    assert accepted.json()["start_time"] == local_start.isoformat()


def test_invalid_event_is_unprocessable(client):
    response = client.post(
        "/api/events",
        json={
            "title": "Backwards",
            "start_time": "2024-02-01T10:00:00",
            "end_time": "2024-02-01T09:00:00",
        },
        headers=_auth(),
    )
    assert response.status_code == 422


def test_foreign_ids_look_missing(client):
    created = client.post(
        "/api/notes", json={"title": "Secret", "content": "x"}, headers=_auth()
    ).json()

    other = _auth("mallory")
    assert client.get(f"/api/notes/{created['id']}", headers=other).status_code == 404
    assert (
        client.patch(
            f"/api/notes/{created['id']}", json={"title": "pwned"}, headers=other
        ).status_code
        == 404
    )
    assert client.delete(f"/api/notes/{created['id']}", headers=other).status_code == 404
    assert client.get("/api/notes", headers=other).json() == []


def test_installment_flow(client):
    plan = client.post(
        "/api/installment-plans",
        json={
            "description": "Phone",
            "total_amount_cents": 10000,
            "number_of_payments": 2,
            "day_of_month": 10,
            "first_payment_date": "2024-01-10",
        },
        headers=_auth(),
    ).json()
    assert [p["amount_cents"] for p in plan["payments"]] == [5000, 5000]

    first_id = plan["payments"][0]["id"]
    paid = client.post(f"/api/installment-payments/{first_id}/pay", headers=_auth())
    assert paid.status_code == 200
    assert paid.json()["expense"]["description"] == "Phone (Cuota 1/2)"
    assert paid.json()["payment"]["is_paid"] is True

    again = client.post(f"/api/installment-payments/{first_id}/pay", headers=_auth())
    assert again.status_code == 409

    blocked = client.delete(f"/api/installment-plans/{plan['id']}", headers=_auth())
    assert blocked.status_code == 409

    second_id = plan["payments"][1]["id"]
    client.post(f"/api/installment-payments/{second_id}/pay", headers=_auth())
    plans = client.get("/api/installment-plans", headers=_auth()).json()
    assert plans[0]["status"] == "completed"

    expenses = client.get("/api/expenses", headers=_auth()).json()
    assert len(expenses) == 2


def test_budgets_include_progress(client):
    today = local_today().isoformat()
    client.post(
        "/api/expenses",
        json={"description": "Lunch", "amount_cents": 1500, "date": today},
        headers=_auth(),
    )
    client.post(
        "/api/budgets",
        json={
            "name": "Everything",
            "amount_cents": 10000,
            "period": "yearly",
            "start_date": "2020-01-01",
        },
        headers=_auth(),
    )

    [budget] = client.get("/api/budgets", headers=_auth()).json()

    assert budget["spent_cents"] == 1500
    assert budget["remaining_cents"] == 8500


def test_expense_period_filter(client):
    for day in ("2024-01-31", "2024-02-01", "2024-02-29", "2024-03-01"):
        client.post(
            "/api/expenses",
            json={"description": day, "amount_cents": 100, "date": day},
            headers=_auth(),
        )

    response = client.get(
        "/api/expenses",
        params={"period": "custom", "start": "2024-02-01", "end": "2024-02-29"},
        headers=_auth(),
    )
    assert sorted(e["date"] for e in response.json()) == ["2024-02-01", "2024-02-29"]

    bad = client.get("/api/expenses", params={"period": "custom"}, headers=_auth())
    assert bad.status_code == 400


def test_duplicate_tag_conflicts_and_list_has_counts(client):
    tag = client.post("/api/tags", json={"name": "Home"}, headers=_auth()).json()
    duplicate = client.post("/api/tags", json={"name": "Home"}, headers=_auth())
    assert duplicate.status_code == 409

    client.post(
        "/api/todos", json={"title": "Fix sink", "tag_ids": [tag["id"]]}, headers=_auth()
    )
    [listed] = client.get("/api/tags", headers=_auth()).json()
    assert listed["todo_count"] == 1
    assert listed["event_count"] == 0


def test_settings_get_or_create(client):
    settings = client.get("/api/settings", headers=_auth()).json()
    assert settings["finance_enabled"] is False

    patched = client.patch(
        "/api/settings", json={"finance_enabled": True}, headers=_auth()
    )
    assert patched.json()["finance_enabled"] is True


def test_unexpected_errors_are_generic(client, monkeypatch):
    import services

    def boom(self):
        raise RuntimeError("db exploded")

    monkeypatch.setattr(services.NoteService, "list", boom)

    response = client.get("/api/notes", headers=_auth())
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


def test_any_resolver_can_be_plugged_in(client, monkeypatch):
    class FixedResolver:
        def resolve(self, request):
            return "sso-user"

    monkeypatch.setattr(app.state, "identity_resolver", FixedResolver())

    me = client.get("/api/me")
    assert me.status_code == 200
    assert me.json()["principal"] == "sso-user"

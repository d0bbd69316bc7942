"""
Shared fixtures: a throwaway SQLite database, an app client with a fixed
rate table and a recording notification sender, and one user per role.
"""
import os
import tempfile
from datetime import date, timedelta
from decimal import Decimal

_db_dir = tempfile.mkdtemp(prefix="budget_tracker_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["FX_REFRESH_ON_STARTUP"] = "false"
os.environ["EMAIL_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from budget_tracker.core.security import create_access_token, get_password_hash
from budget_tracker.db.session import SessionLocal, drop_db, init_db
from budget_tracker.main import app
from budget_tracker.models import Category, User, UserRole
from budget_tracker.services.fx_service import CurrencyNormalizer

# 1 USD = rate units of currency
TEST_RATES = {
    "USD": Decimal("1"),
    "EUR": Decimal("1.1"),
    "GBP": Decimal("0.8"),
    "JPY": Decimal("150"),
}

PASSWORD = "password123"


class RecordingSender:
    """Stands in for NotificationSender and keeps every send call."""

    def __init__(self):
        self.sent = []

    def send(self, recipient, template_kind, payload):
        self.sent.append((recipient, template_kind, payload))
        return True

    def kinds(self):
        return [kind for _, kind, _ in self.sent]


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def client(sender):
    drop_db()
    init_db()
    with TestClient(app) as test_client:
        app.state.currency_normalizer = CurrencyNormalizer(rates=TEST_RATES)
        app.state.notification_sender = sender
        yield test_client


@pytest.fixture
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, name, email, role, department):
    user = User(
        name=name,
        email=email,
        hashed_password=get_password_hash(PASSWORD),
        role=role,
        department=department,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def users(db):
    return {
        "admin": _make_user(db, "Ada Admin", "admin@example.com", UserRole.ADMIN, "Finance"),
        "manager": _make_user(db, "Max Manager", "manager@example.com", UserRole.MANAGER, "Engineering"),
        "user": _make_user(db, "Uma User", "user@example.com", UserRole.USER, "Engineering"),
        "other": _make_user(db, "Otto Other", "other@example.com", UserRole.USER, "Sales"),
    }


@pytest.fixture
def headers(users):
    return {
        key: {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}
        for key, user in users.items()
    }


@pytest.fixture
def category(db, users):
    travel = Category(name="Travel", description="Trips and lodging", created_by_id=users["admin"].id)
    db.add(travel)
    db.commit()
    db.refresh(travel)
    return travel


@pytest.fixture
def make_budget(client, headers, category):
    """Create a budget through the API; ``activate`` runs submit and approval."""
    def _make(amount="1000", currency="USD", alert_threshold=80, owner="user", activate=True, **extra):
        today = date.today()
        body = {
            "name": "Team travel",
            "amount": str(amount),
            "currency": currency,
            "period": "monthly",
            "start_date": (today - timedelta(days=10)).isoformat(),
            "end_date": (today + timedelta(days=20)).isoformat(),
            "category_id": category.id,
            "alert_threshold": alert_threshold,
        }
        body.update(extra)
        response = client.post("/api/budgets", json=body, headers=headers[owner])
        assert response.status_code == 201, response.text
        budget = response.json()
        if activate:
            assert client.post(f"/api/budgets/{budget['id']}/submit", headers=headers[owner]).status_code == 200
            response = client.post(f"/api/budgets/{budget['id']}/approve", headers=headers["manager"])
            assert response.status_code == 200, response.text
            budget = response.json()
        return budget
    return _make


@pytest.fixture
def make_expense(client, headers, category):
    """Submit an expense through the API as ``submitter``."""
    def _make(amount="100", currency="USD", budget_id=None, submitter="user", **extra):
        body = {
            "title": "Hotel",
            "amount": str(amount),
            "currency": currency,
            "date": date.today().isoformat(),
            "category_id": category.id,
            "budget_id": budget_id,
            "payment_method": "credit_card",
        }
        body.update(extra)
        response = client.post("/api/expenses", json=body, headers=headers[submitter])
        assert response.status_code == 201, response.text
        return response.json()
    return _make

"""
Tests for budget endpoints.
"""
from datetime import date, timedelta
from decimal import Decimal


def budget_body(category_id, **overrides):
    today = date.today()
    body = {
        "name": "Conference season",
        "amount": "2500",
        "currency": "USD",
        "period": "quarterly",
        "start_date": today.isoformat(),
        "end_date": (today + timedelta(days=90)).isoformat(),
        "category_id": category_id,
    }
    body.update(overrides)
    return body


def test_create_budget_starts_as_draft(client, headers, users, category):
    response = client.post("/api/budgets", json=budget_body(category.id), headers=headers["user"])

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "draft"
    assert data["owner"]["id"] == users["user"].id
    assert data["department"] == "Engineering"
    assert Decimal(data["spent_amount"]) == Decimal("0")
    assert data["usage_percentage"] == 0
    assert data["allocation_rules"]["require_receipt_above"] in ("25", "25.00")
    assert [entry["action"] for entry in data["audit_log"]] == ["created"]


def test_create_budget_rejects_inverted_dates(client, headers, category):
    today = date.today()
    body = budget_body(category.id, start_date=today.isoformat(), end_date=(today - timedelta(days=1)).isoformat())

    response = client.post("/api/budgets", json=body, headers=headers["user"])

    assert response.status_code == 400
    assert response.json()["code"] == "InvalidDateRange"


def test_create_budget_rejects_unsupported_currency(client, headers, category):
    response = client.post("/api/budgets", json=budget_body(category.id, currency="xyz"), headers=headers["user"])

    assert response.status_code == 400
    assert response.json()["code"] == "UnsupportedCurrency"


def test_recurring_budget_gets_renewal_date(client, headers, category):
    body = budget_body(category.id, recurring={"is_recurring": True, "frequency": "monthly"})

    data = client.post("/api/budgets", json=body, headers=headers["user"]).json()

    assert data["recurring"]["next_renewal_date"] is not None


def test_approval_workflow(client, headers, category):
    budget = client.post("/api/budgets", json=budget_body(category.id), headers=headers["user"]).json()

    submitted = client.post(f"/api/budgets/{budget['id']}/submit", headers=headers["user"])
    assert submitted.json()["status"] == "pending"

    denied = client.post(f"/api/budgets/{budget['id']}/approve", headers=headers["user"])
    assert denied.status_code == 403
    assert denied.json() == {"detail": "Not permitted", "code": "InvalidActor"}

    approved = client.post(f"/api/budgets/{budget['id']}/approve", headers=headers["manager"])
    assert approved.status_code == 200
    assert approved.json()["status"] == "active"
    actions = [entry["action"] for entry in approved.json()["audit_log"]]
    assert actions == ["created", "submitted", "approved", "activated"]

    again = client.post(f"/api/budgets/{budget['id']}/approve", headers=headers["manager"])
    assert again.status_code == 409
    assert again.json()["code"] == "NotPending"


def test_reject_requires_reason(client, headers, category):
    budget = client.post("/api/budgets", json=budget_body(category.id), headers=headers["user"]).json()
    client.post(f"/api/budgets/{budget['id']}/submit", headers=headers["user"])

    missing = client.post(f"/api/budgets/{budget['id']}/reject", json={}, headers=headers["manager"])
    assert missing.status_code == 400
    assert missing.json()["code"] == "MissingReason"

    rejected = client.post(
        f"/api/budgets/{budget['id']}/reject", json={"reason": "Over plan"}, headers=headers["manager"]
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"


def test_submit_twice_conflicts(client, headers, make_budget):
    budget = make_budget(activate=False)
    client.post(f"/api/budgets/{budget['id']}/submit", headers=headers["user"])

    response = client.post(f"/api/budgets/{budget['id']}/submit", headers=headers["user"])
    assert response.status_code == 409
    assert response.json()["code"] == "NotDraft"


def test_budget_visibility_is_role_scoped(client, headers, make_budget):
    own = make_budget()
    make_budget(owner="other")

    user_list = client.get("/api/budgets", headers=headers["user"]).json()
    assert [b["id"] for b in user_list["data"]] == [own["id"]]
    assert user_list["pagination"]["total"] == 1

    # manager is in the user's department but not the other user's
    manager_list = client.get("/api/budgets", headers=headers["manager"]).json()
    assert manager_list["count"] == 1

    admin_list = client.get("/api/budgets", headers=headers["admin"]).json()
    assert admin_list["count"] == 2

    assert client.get(f"/api/budgets/{own['id']}", headers=headers["other"]).status_code == 403


def test_list_pagination_and_status_filter(client, headers, make_budget):
    for _ in range(3):
        make_budget()
    make_budget(activate=False)

    page = client.get("/api/budgets", params={"page": 2, "limit": 2}, headers=headers["user"]).json()
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 4, "pages": 2}
    assert page["count"] == 2

    drafts = client.get("/api/budgets", params={"status": "draft"}, headers=headers["user"]).json()
    assert drafts["count"] == 1


def test_ledger_counts_approved_expenses(client, headers, make_budget, make_expense):
    budget = make_budget(amount="1000")
    first = make_expense(amount="300", budget_id=budget["id"])
    make_expense(amount="200", budget_id=budget["id"])
    client.put(f"/api/expenses/{first['id']}/review", json={"status": "approved"}, headers=headers["manager"])

    ledger = client.get(f"/api/budgets/{budget['id']}/ledger", headers=headers["user"]).json()

    assert Decimal(ledger["spent_amount"]) == Decimal("300")
    assert Decimal(ledger["remaining_amount"]) == Decimal("700")
    assert ledger["usage_percentage"] == 30
    assert ledger["expense_count"] == 1
    assert ledger["is_over_threshold"] is False


def test_lowering_amount_fires_alert(client, headers, sender, make_budget, make_expense):
    budget = make_budget(amount="1000")
    expense = make_expense(amount="700", budget_id=budget["id"])
    client.put(f"/api/expenses/{expense['id']}/review", json={"status": "approved"}, headers=headers["manager"])
    assert "budget_alert" not in sender.kinds()

    response = client.put(f"/api/budgets/{budget['id']}", json={"amount": "800"}, headers=headers["user"])

    assert response.status_code == 200
    assert response.json()["usage_percentage"] == 88
    assert sender.kinds().count("budget_alert") == 1
    assert response.json()["audit_log"][-1]["changes"]["amount"] == ["1000.00", "800"]


def test_update_by_non_owner_is_forbidden(client, headers, make_budget):
    budget = make_budget()

    response = client.put(f"/api/budgets/{budget['id']}", json={"name": "Mine now"}, headers=headers["other"])
    assert response.status_code == 403


def test_policy_endpoint(client, headers, make_budget):
    budget = make_budget(allocation_rules={"auto_approval_limit": "100", "require_receipt_above": "50",
                                           "multiple_approval_above": "500"})

    small = client.get(f"/api/budgets/{budget['id']}/policy", params={"amount": "40"}, headers=headers["user"]).json()
    assert small["approval_required"] is False
    assert small["receipt_required"] is False

    large = client.get(f"/api/budgets/{budget['id']}/policy", params={"amount": "600"}, headers=headers["user"]).json()
    assert large["approval_required"] and large["receipt_required"] and large["multiple_approval_required"]


def test_delete_budget_with_expenses_conflicts(client, headers, make_budget, make_expense):
    budget = make_budget()
    make_expense(budget_id=budget["id"])

    response = client.delete(f"/api/budgets/{budget['id']}", headers=headers["user"])
    assert response.status_code == 409
    assert response.json()["code"] == "HasExpenses"

    empty = make_budget()
    assert client.delete(f"/api/budgets/{empty['id']}", headers=headers["user"]).status_code == 200
    assert client.get(f"/api/budgets/{empty['id']}", headers=headers["user"]).status_code == 404


def test_budget_analytics(client, headers, make_budget, make_expense):
    budget = make_budget(amount="1000")
    make_budget(amount="500", activate=False)
    expense = make_expense(amount="250", budget_id=budget["id"])
    client.put(f"/api/expenses/{expense['id']}/review", json={"status": "approved"}, headers=headers["manager"])

    data = client.get("/api/budgets/analytics", headers=headers["user"]).json()

    assert data["overview"]["total_budgets"] == 2
    assert Decimal(str(data["overview"]["total_allocated"])) == Decimal("1500")
    assert Decimal(str(data["overview"]["total_spent"])) == Decimal("250")
    assert data["status_breakdown"]["active"] == 1
    assert data["status_breakdown"]["draft"] == 1


def test_sync_status_requires_reviewer(client, headers, make_budget):
    make_budget()

    assert client.post("/api/budgets/sync-status", headers=headers["user"]).status_code == 403
    response = client.post("/api/budgets/sync-status", headers=headers["manager"])
    assert response.status_code == 200
    assert response.json()["updated"] == 0


def test_currency_change_without_rate_is_not_saved(client, headers, make_budget, make_expense):
    budget = make_budget(amount="1000")
    expense = make_expense(amount="300", budget_id=budget["id"])
    client.put(f"/api/expenses/{expense['id']}/review", json={"status": "approved"}, headers=headers["manager"])

    # the test rate table has no CAD rate
    response = client.put(f"/api/budgets/{budget['id']}", json={"currency": "CAD"}, headers=headers["user"])

    assert response.status_code == 503
    assert response.json()["code"] == "RateUnavailable"
    saved = client.get(f"/api/budgets/{budget['id']}", headers=headers["user"]).json()
    assert saved["currency"] == "USD"
    assert Decimal(saved["spent_amount"]) == Decimal("300")

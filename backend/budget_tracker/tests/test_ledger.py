"""
Tests for the budget ledger computation.
"""
from decimal import Decimal

import pytest

from budget_tracker.core.exceptions import DependencyError
from budget_tracker.models import Budget, Expense, ExpenseStatus
from budget_tracker.services.fx_service import CurrencyNormalizer
from budget_tracker.services.ledger_service import compute_ledger


def make_budget(amount="1000", currency="USD", alert_threshold=80, budget_id=1):
    return Budget(id=budget_id, name="Ops", amount=Decimal(amount), currency=currency, alert_threshold=alert_threshold)


def make_expense(amount, status=ExpenseStatus.APPROVED, currency="USD", budget_id=1, converted=None, converted_currency=None):
    return Expense(
        budget_id=budget_id,
        amount=Decimal(amount),
        currency=currency,
        converted_amount=Decimal(converted if converted is not None else amount),
        converted_currency=converted_currency or currency,
        status=status
    )


def test_ledger_is_idempotent():
    budget = make_budget()
    expenses = [make_expense("300"), make_expense("125.50", status=ExpenseStatus.REIMBURSED)]

    first = compute_ledger(budget, expenses)
    second = compute_ledger(budget, expenses)

    assert first == second
    assert first.spent_amount == Decimal("425.50")
    assert first.remaining_amount == Decimal("574.50")
    assert first.usage_percentage == 43


def test_only_approved_and_reimbursed_count():
    budget = make_budget()
    expenses = [
        make_expense("100"),
        make_expense("200", status=ExpenseStatus.PENDING),
        make_expense("400", status=ExpenseStatus.REJECTED),
        make_expense("50", status=ExpenseStatus.REIMBURSED),
    ]

    ledger = compute_ledger(budget, expenses)

    assert ledger.spent_amount == Decimal("150.00")
    assert ledger.expense_count == 2


def test_approving_increments_spent_by_exact_converted_amount():
    budget = make_budget(currency="EUR")
    pending = make_expense("100", status=ExpenseStatus.PENDING, converted="110.00", converted_currency="EUR")
    expenses = [make_expense("20", currency="EUR"), pending]

    before = compute_ledger(budget, expenses)
    pending.status = ExpenseStatus.APPROVED
    after = compute_ledger(budget, expenses)

    assert after.spent_amount - before.spent_amount == Decimal("110.00")


def test_expenses_of_other_budgets_are_ignored():
    budget = make_budget()
    ledger = compute_ledger(budget, [make_expense("100"), make_expense("900", budget_id=2)])

    assert ledger.spent_amount == Decimal("100.00")


def test_zero_amount_budget_has_zero_usage():
    budget = make_budget(amount="0")
    ledger = compute_ledger(budget, [make_expense("40")])

    assert ledger.usage_percentage == 0
    assert ledger.spent_amount == Decimal("40.00")
    assert ledger.remaining_amount == Decimal("-40.00")
    assert ledger.is_over_threshold is False


def test_overspent_budget_has_negative_remaining():
    ledger = compute_ledger(make_budget(amount="100"), [make_expense("150")])

    assert ledger.remaining_amount == Decimal("-50.00")
    assert ledger.usage_percentage == 150
    assert ledger.is_over_threshold is True


def test_usage_rounds_half_up():
    ledger = compute_ledger(make_budget(amount="200"), [make_expense("169")])

    # 84.5% rounds up
    assert ledger.usage_percentage == 85
    assert ledger.is_over_threshold is True


def test_threshold_is_inclusive():
    ledger = compute_ledger(make_budget(), [make_expense("800")])

    assert ledger.usage_percentage == 80
    assert ledger.is_over_threshold is True


def test_foreign_expense_converted_through_normalizer():
    normalizer = CurrencyNormalizer(rates={"USD": Decimal("1"), "EUR": Decimal("0.5")})
    budget = make_budget(currency="EUR")
    # locked against the base currency, so it is re-converted into EUR
    expense = make_expense("100", currency="USD", converted="100", converted_currency="USD")

    ledger = compute_ledger(budget, [expense], normalizer)

    assert ledger.spent_amount == Decimal("50.00")


def test_missing_rate_raises_dependency_error():
    normalizer = CurrencyNormalizer(rates={"USD": Decimal("1")})
    budget = make_budget(currency="USD")
    expense = make_expense("100", currency="EUR", converted="100", converted_currency="EUR")

    with pytest.raises(DependencyError) as exc_info:
        compute_ledger(budget, [expense], normalizer)
    assert exc_info.value.code == "RateUnavailable"


def test_foreign_expense_without_normalizer_raises_dependency_error():
    budget = make_budget(currency="USD")
    expense = make_expense("100", currency="EUR", converted="100", converted_currency="EUR")

    with pytest.raises(DependencyError) as exc_info:
        compute_ledger(budget, [expense])
    assert exc_info.value.code == "RateUnavailable"


def test_zero_decimal_currency_quantization():
    budget = make_budget(amount="10000", currency="JPY")
    ledger = compute_ledger(budget, [make_expense("2500.4", currency="JPY", converted="2500.4")])

    assert ledger.spent_amount == Decimal("2500")
    assert ledger.remaining_amount == Decimal("7500")

"""
Ledger service: derived spent/remaining/usage figures for a budget.

The ledger is recomputed from the current expense set on every call and is
never written back to the budget record.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from budget_tracker.core.exceptions import DependencyError
from budget_tracker.core.utils import quantize_money, round_half_up
from budget_tracker.models.budget import Budget, DEFAULT_ALERT_THRESHOLD
from budget_tracker.models.expense import Expense, SPENT_STATUSES
from budget_tracker.services.fx_service import CurrencyNormalizer


@dataclass(frozen=True)
class LedgerSnapshot:
    """Derived financial view of a budget."""
    spent_amount: Decimal
    remaining_amount: Decimal
    usage_percentage: int
    is_over_threshold: bool
    currency: str
    expense_count: int = 0


def expense_value_in(expense: Expense, currency: str, normalizer: Optional[CurrencyNormalizer]) -> Decimal:
    """
    An expense's amount expressed in ``currency``.

    The converted amount locked at submission is used when it is already in
    the requested currency; anything else goes through the normalizer.
    """
    if expense.converted_amount is not None and (expense.converted_currency or "").upper() == currency.upper():
        return Decimal(str(expense.converted_amount))
    if (expense.currency or "").upper() == currency.upper():
        return Decimal(str(expense.amount))
    if normalizer is None:
        raise DependencyError(
            f"No exchange rates available to convert {expense.currency} to {currency}",
            code="RateUnavailable"
        )
    return normalizer.convert(Decimal(str(expense.amount)), expense.currency, currency)


def compute_ledger(
    budget: Budget,
    expenses: Iterable[Expense],
    normalizer: Optional[CurrencyNormalizer] = None
) -> LedgerSnapshot:
    """
    Compute the ledger for ``budget`` from ``expenses``.

    Only expenses linked to the budget with status approved or reimbursed
    count. Raises DependencyError when a required rate is unavailable.
    """
    currency = budget.currency or "USD"
    amount = Decimal(str(budget.amount or 0))
    threshold = budget.alert_threshold if budget.alert_threshold is not None else DEFAULT_ALERT_THRESHOLD

    spent = Decimal("0")
    count = 0
    for expense in expenses:
        if expense.budget_id != budget.id or expense.status not in SPENT_STATUSES:
            continue
        spent += expense_value_in(expense, currency, normalizer)
        count += 1

    spent = quantize_money(spent, currency)
    remaining = quantize_money(amount - spent, currency)
    if amount == 0:
        usage = 0
    else:
        usage = round_half_up(spent / amount * 100)

    return LedgerSnapshot(
        spent_amount=spent,
        remaining_amount=remaining,
        usage_percentage=usage,
        is_over_threshold=usage >= threshold,
        currency=currency,
        expense_count=count
    )

"""
Analytics service for budget and expense dashboards.
All totals are expressed in the normalizer's base currency.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List

from budget_tracker.core.utils import quantize_money, round_half_up
from budget_tracker.models.budget import Budget, BudgetStatus
from budget_tracker.models.expense import Expense, ExpenseStatus
from budget_tracker.services.fx_service import CurrencyNormalizer
from budget_tracker.services.ledger_service import compute_ledger, expense_value_in


def budget_analytics(
    budgets: Iterable[Budget],
    expenses_by_budget: Dict[int, List[Expense]],
    normalizer: CurrencyNormalizer
) -> dict:
    """Totals, status breakdown and per-category allocation for a set of budgets."""
    base = normalizer.base_currency
    total_allocated = Decimal("0")
    total_spent = Decimal("0")
    status_breakdown = {status.value: 0 for status in BudgetStatus}
    category_breakdown = defaultdict(lambda: {"allocated": Decimal("0"), "spent": Decimal("0"), "count": 0})
    count = 0

    for budget in budgets:
        count += 1
        ledger = compute_ledger(budget, expenses_by_budget.get(budget.id, []), normalizer)
        allocated = normalizer.convert(budget.amount, budget.currency, base)
        spent = normalizer.convert(ledger.spent_amount, budget.currency, base)

        total_allocated += allocated
        total_spent += spent
        status_breakdown[BudgetStatus(budget.status).value] += 1

        category_name = budget.category.name if budget.category else "Uncategorized"
        category_breakdown[category_name]["allocated"] += allocated
        category_breakdown[category_name]["spent"] += spent
        category_breakdown[category_name]["count"] += 1

    overall_usage = round_half_up(total_spent / total_allocated * 100) if total_allocated > 0 else 0
    return {
        "currency": base,
        "overview": {
            "total_budgets": count,
            "total_allocated": quantize_money(total_allocated, base),
            "total_spent": quantize_money(total_spent, base),
            "total_remaining": quantize_money(total_allocated - total_spent, base),
            "overall_usage": overall_usage,
        },
        "status_breakdown": status_breakdown,
        "category_breakdown": dict(category_breakdown),
    }


def expense_analytics(expenses: Iterable[Expense], normalizer: CurrencyNormalizer) -> dict:
    """Totals per status, per category and per month for a set of expenses."""
    base = normalizer.base_currency
    totals = {status.value: Decimal("0") for status in ExpenseStatus}
    status_breakdown = {status.value: 0 for status in ExpenseStatus}
    category_breakdown = defaultdict(lambda: {"amount": Decimal("0"), "count": 0})
    monthly_trend: Dict[str, Decimal] = defaultdict(Decimal)
    total_amount = Decimal("0")
    count = 0

    for expense in expenses:
        count += 1
        value = expense_value_in(expense, base, normalizer)
        status = ExpenseStatus(expense.status).value
        total_amount += value
        totals[status] += value
        status_breakdown[status] += 1

        category_name = expense.category.name if expense.category else "Uncategorized"
        category_breakdown[category_name]["amount"] += value
        category_breakdown[category_name]["count"] += 1
        monthly_trend[expense.date.strftime("%Y-%m")] += value

    return {
        "currency": base,
        "overview": {
            "total_expenses": count,
            "total_amount": quantize_money(total_amount, base),
            "approved_amount": quantize_money(totals["approved"], base),
            "pending_amount": quantize_money(totals["pending"], base),
            "rejected_amount": quantize_money(totals["rejected"], base),
            "reimbursed_amount": quantize_money(totals["reimbursed"], base),
        },
        "status_breakdown": status_breakdown,
        "category_breakdown": dict(category_breakdown),
        "monthly_trend": dict(sorted(monthly_trend.items())),
    }

"""Models package - Import all models for SQLAlchemy registration."""
from budget_tracker.models.user import User, UserRole
from budget_tracker.models.category import Category
from budget_tracker.models.budget import (
    Budget, BudgetAuditEntry, BudgetAuditAction, BudgetPeriod, BudgetStatus, RecurringFrequency
)
from budget_tracker.models.expense import (
    Expense, ExpenseAuditEntry, ExpenseAuditAction, ExpenseReceipt, ExpenseStatus,
    PaymentMethod, RecurringPeriod
)

__all__ = [
    "User",
    "UserRole",
    "Category",
    "Budget",
    "BudgetAuditEntry",
    "BudgetAuditAction",
    "BudgetPeriod",
    "BudgetStatus",
    "RecurringFrequency",
    "Expense",
    "ExpenseAuditEntry",
    "ExpenseAuditAction",
    "ExpenseReceipt",
    "ExpenseStatus",
    "PaymentMethod",
    "RecurringPeriod",
]

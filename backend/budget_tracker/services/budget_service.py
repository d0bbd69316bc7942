"""
Budget lifecycle service.

    draft -> pending -> approved -> active -> expired
    pending -> rejected
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from dateutil.relativedelta import relativedelta

from budget_tracker.core.exceptions import AuthorizationError, StateError, ValidationError
from budget_tracker.models.budget import (
    Budget, BudgetAuditAction, BudgetAuditEntry, BudgetStatus, RecurringFrequency
)
from budget_tracker.models.user import User, UserRole, REVIEWER_ROLES
from budget_tracker.services.fx_service import is_supported_currency

logger = logging.getLogger(__name__)

RENEWAL_STEPS = {
    RecurringFrequency.MONTHLY: relativedelta(months=1),
    RecurringFrequency.QUARTERLY: relativedelta(months=3),
    RecurringFrequency.YEARLY: relativedelta(years=1),
}


def validate_budget(budget: Budget):
    """Field-level checks that must hold before a budget is persisted."""
    if budget.start_date is None or budget.end_date is None:
        raise ValidationError("Start date and end date are required", code="InvalidDateRange")
    if budget.end_date <= budget.start_date:
        raise ValidationError("End date must be after start date", code="InvalidDateRange")
    if budget.amount is None or Decimal(str(budget.amount)) < 0:
        raise ValidationError("Budget amount cannot be negative", code="InvalidAmount")
    if budget.alert_threshold is not None and not 0 <= budget.alert_threshold <= 100:
        raise ValidationError("Alert threshold must be between 0 and 100", code="InvalidThreshold")
    if budget.currency and not is_supported_currency(budget.currency):
        raise ValidationError(f"Unsupported currency: {budget.currency}", code="UnsupportedCurrency")
    if budget.is_recurring and budget.recurring_frequency is None:
        raise ValidationError("Recurring budgets need a frequency", code="MissingFrequency")


def next_renewal_date(end_date: date, frequency: RecurringFrequency) -> date:
    return end_date + RENEWAL_STEPS[RecurringFrequency(frequency)]


def prepare_for_save(budget: Budget, today: Optional[date] = None) -> Optional[BudgetStatus]:
    """
    Validate and fill derived fields before persistence. Returns the new
    status when a date-driven transition happened.
    """
    validate_budget(budget)
    if budget.is_recurring and budget.next_renewal_date is None:
        budget.next_renewal_date = next_renewal_date(budget.end_date, budget.recurring_frequency)
    return sync_status(budget, today)


def sync_status(budget: Budget, today: Optional[date] = None) -> Optional[BudgetStatus]:
    """Apply date-driven transitions (approved -> active -> expired)."""
    today = today or date.today()
    if budget.status == BudgetStatus.APPROVED and budget.start_date <= today <= budget.end_date:
        budget.status = BudgetStatus.ACTIVE
        return BudgetStatus.ACTIVE
    if budget.status == BudgetStatus.ACTIVE and today > budget.end_date:
        budget.status = BudgetStatus.EXPIRED
        return BudgetStatus.EXPIRED
    return None


def add_audit_entry(
    budget: Budget,
    action: BudgetAuditAction,
    actor: User,
    changes: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None
) -> BudgetAuditEntry:
    entry = BudgetAuditEntry(
        action=action,
        performed_by_id=actor.id,
        timestamp=datetime.utcnow(),
        changes=changes,
        reason=reason
    )
    budget.audit_log.append(entry)
    return entry


def record_transition(budget: Budget, transition: Optional[BudgetStatus], actor: User):
    if transition == BudgetStatus.ACTIVE:
        add_audit_entry(budget, BudgetAuditAction.ACTIVATED, actor)
    elif transition == BudgetStatus.EXPIRED:
        add_audit_entry(budget, BudgetAuditAction.EXPIRED, actor)


def _status_value(status) -> str:
    return status.value if isinstance(status, BudgetStatus) else status


def submit(budget: Budget, actor: User):
    """Send a draft budget for approval."""
    assert_can_modify(budget, actor)
    if budget.status != BudgetStatus.DRAFT:
        raise StateError("Only draft budgets can be submitted", code="NotDraft")
    budget.status = BudgetStatus.PENDING
    add_audit_entry(budget, BudgetAuditAction.SUBMITTED, actor, changes={"status": ["draft", "pending"]})


def approve(budget: Budget, actor: User, today: Optional[date] = None):
    if actor.role not in REVIEWER_ROLES:
        raise AuthorizationError(code="InvalidActor")
    if budget.status != BudgetStatus.PENDING:
        raise StateError("Budget is not pending approval", code="NotPending")
    budget.status = BudgetStatus.APPROVED
    add_audit_entry(budget, BudgetAuditAction.APPROVED, actor, changes={"status": ["pending", "approved"]})
    record_transition(budget, sync_status(budget, today), actor)
    logger.info(f"Budget {budget.id} approved by user {actor.id} (now {_status_value(budget.status)})")


def reject(budget: Budget, actor: User, reason: Optional[str]):
    if actor.role not in REVIEWER_ROLES:
        raise AuthorizationError(code="InvalidActor")
    if budget.status != BudgetStatus.PENDING:
        raise StateError("Budget is not pending approval", code="NotPending")
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required", code="MissingReason")
    budget.status = BudgetStatus.REJECTED
    add_audit_entry(
        budget, BudgetAuditAction.REJECTED, actor,
        changes={"status": ["pending", "rejected"]}, reason=reason.strip()
    )
    logger.info(f"Budget {budget.id} rejected by user {actor.id}")


def assert_can_view(budget: Budget, actor: User):
    if actor.role == UserRole.USER and budget.owner_id != actor.id:
        raise AuthorizationError()


def assert_can_modify(budget: Budget, actor: User):
    if actor.role == UserRole.USER and budget.owner_id != actor.id:
        raise AuthorizationError()


def assert_deletable(budget: Budget, actor: User, linked_expense_count: int):
    if actor.role != UserRole.ADMIN and budget.owner_id != actor.id:
        raise AuthorizationError()
    if linked_expense_count > 0:
        raise StateError("Cannot delete budget with associated expenses", code="HasExpenses")

"""
Approval gate for expense submission and review.

Transitions:
    pending -> approved | rejected
    approved -> reimbursed
Nothing leaves rejected or reimbursed.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from budget_tracker.core.exceptions import AuthorizationError, StateError, ValidationError
from budget_tracker.models.budget import (
    Budget, BudgetStatus, DEFAULT_AUTO_APPROVAL_LIMIT, DEFAULT_MULTIPLE_APPROVAL_ABOVE,
    DEFAULT_REQUIRE_RECEIPT_ABOVE
)
from budget_tracker.models.expense import Expense, ExpenseAuditAction, ExpenseAuditEntry, ExpenseStatus
from budget_tracker.models.user import User, UserRole

logger = logging.getLogger(__name__)

SUBMITTABLE_BUDGET_STATUSES = (BudgetStatus.ACTIVE, BudgetStatus.APPROVED)
REVIEW_DECISIONS = (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED)


@dataclass
class ReviewOutcome:
    """Result of a review plus the follow-up work the caller must perform."""
    expense: Expense
    decision: ExpenseStatus
    reevaluate_budget_id: Optional[int] = None
    notify_user_id: Optional[int] = None


@dataclass
class PolicyFlags:
    """Advisory allocation-rule signals for an expense amount."""
    approval_required: bool
    receipt_required: bool
    multiple_approval_required: bool
    reasons: List[str] = field(default_factory=list)


def _rule(value, default) -> Decimal:
    return Decimal(str(value if value is not None else default))


def is_approval_required(budget: Budget, amount: Decimal) -> bool:
    return Decimal(str(amount)) > _rule(budget.auto_approval_limit, DEFAULT_AUTO_APPROVAL_LIMIT)


def requires_receipt(budget: Budget, amount: Decimal) -> bool:
    return Decimal(str(amount)) > _rule(budget.require_receipt_above, DEFAULT_REQUIRE_RECEIPT_ABOVE)


def requires_multiple_approval(budget: Budget, amount: Decimal) -> bool:
    return Decimal(str(amount)) > _rule(budget.multiple_approval_above, DEFAULT_MULTIPLE_APPROVAL_ABOVE)


def policy_flags(budget: Budget, amount: Decimal) -> PolicyFlags:
    """Collect all allocation-rule signals. These are advisory, not enforced."""
    flags = PolicyFlags(
        approval_required=is_approval_required(budget, amount),
        receipt_required=requires_receipt(budget, amount),
        multiple_approval_required=requires_multiple_approval(budget, amount),
    )
    if flags.approval_required:
        flags.reasons.append("Amount exceeds the auto-approval limit")
    if flags.receipt_required:
        flags.reasons.append("A receipt is required for this amount")
    if flags.multiple_approval_required:
        flags.reasons.append("Multiple approvals are required for this amount")
    return flags


def can_submit(expense_date: date, budget: Budget) -> None:
    """
    Check that an expense dated ``expense_date`` may be filed against ``budget``.

    Raises:
        StateError: code ``BudgetInactive`` if the budget is not active or approved
        ValidationError: code ``OutOfPeriod`` if the date is outside the budget window
    """
    if budget.status not in SUBMITTABLE_BUDGET_STATUSES:
        raise StateError("Budget is not active", code="BudgetInactive")
    if expense_date < budget.start_date or expense_date > budget.end_date:
        raise ValidationError("Expense date is outside budget period", code="OutOfPeriod")


def add_audit_entry(
    expense: Expense,
    action: ExpenseAuditAction,
    actor: User,
    changes: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None
) -> ExpenseAuditEntry:
    entry = ExpenseAuditEntry(
        action=action,
        performed_by_id=actor.id,
        timestamp=now or datetime.utcnow(),
        changes=changes,
        reason=reason
    )
    expense.audit_log.append(entry)
    return entry


def _require_reviewer(actor: User):
    if actor is None or not actor.is_reviewer:
        raise AuthorizationError(code="InvalidActor")


def check_review(expense: Expense, decision: str, actor: User, reason: Optional[str] = None) -> ExpenseStatus:
    """
    Run every review precondition without touching the expense.

    Returns the parsed decision. Checks run in order: actor role, decision
    value, pending status, rejection reason.
    """
    _require_reviewer(actor)

    try:
        decision = ExpenseStatus(decision)
    except ValueError:
        raise ValidationError("Invalid status. Must be approved or rejected", code="InvalidDecision")
    if decision not in REVIEW_DECISIONS:
        raise ValidationError("Invalid status. Must be approved or rejected", code="InvalidDecision")

    if expense.status != ExpenseStatus.PENDING:
        raise StateError("Expense is not pending review", code="NotPending")

    if decision == ExpenseStatus.REJECTED and not (reason and reason.strip()):
        raise ValidationError("Rejection reason is required when rejecting an expense", code="MissingReason")
    return decision


def review(
    expense: Expense,
    decision: str,
    actor: User,
    reason: Optional[str] = None,
    now: Optional[datetime] = None
) -> ReviewOutcome:
    """
    Approve or reject a pending expense in place.

    The caller persists the expense and performs the follow-ups named on
    the returned outcome (budget alert re-evaluation, submitter notification).
    """
    decision = check_review(expense, decision, actor, reason)
    reason = reason.strip() if reason else None

    now = now or datetime.utcnow()
    previous = expense.status.value if isinstance(expense.status, ExpenseStatus) else expense.status
    expense.status = decision

    if decision == ExpenseStatus.APPROVED:
        expense.approved_by_id = actor.id
        expense.approver = actor
        if expense.approval_date is None:
            expense.approval_date = now
        add_audit_entry(
            expense, ExpenseAuditAction.APPROVED, actor,
            changes={"status": [previous, decision.value]}, now=now
        )
    else:
        expense.rejection_reason = reason
        add_audit_entry(
            expense, ExpenseAuditAction.REJECTED, actor,
            changes={"status": [previous, decision.value]}, reason=reason, now=now
        )

    logger.info(f"Expense {expense.id} {decision.value} by user {actor.id}")
    return ReviewOutcome(
        expense=expense,
        decision=decision,
        reevaluate_budget_id=expense.budget_id,
        notify_user_id=expense.submitted_by_id
    )


def reimburse(expense: Expense, actor: User, now: Optional[datetime] = None) -> Expense:
    """Mark an approved expense as reimbursed."""
    _require_reviewer(actor)
    if expense.status != ExpenseStatus.APPROVED:
        raise StateError("Only approved expenses can be reimbursed", code="NotApproved")

    expense.status = ExpenseStatus.REIMBURSED
    add_audit_entry(
        expense, ExpenseAuditAction.REIMBURSED, actor,
        changes={"status": [ExpenseStatus.APPROVED.value, ExpenseStatus.REIMBURSED.value]}, now=now
    )
    logger.info(f"Expense {expense.id} reimbursed by user {actor.id}")
    return expense


def assert_can_view(expense: Expense, actor: User):
    if actor.role == UserRole.USER and expense.submitted_by_id != actor.id:
        raise AuthorizationError()


def assert_editable(expense: Expense, actor: User):
    """Users may only edit their own pending expenses; reviewers may edit any."""
    if actor.role == UserRole.USER:
        if expense.submitted_by_id != actor.id:
            raise AuthorizationError()
        if expense.status != ExpenseStatus.PENDING:
            raise StateError("Cannot edit expense that is not pending", code="NotPending")


def assert_deletable(expense: Expense, actor: User):
    """Only admins delete other users' expenses; users delete only pending ones."""
    if actor.role != UserRole.ADMIN and expense.submitted_by_id != actor.id:
        raise AuthorizationError()
    if actor.role == UserRole.USER and expense.status != ExpenseStatus.PENDING:
        raise StateError("Cannot delete expense that is not pending", code="NotPending")

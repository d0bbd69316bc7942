"""
Budget management routes.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from budget_tracker.api.dependencies import (
    get_current_user, get_currency_normalizer, get_notification_sender, require_roles
)
from budget_tracker.core.config import settings
from budget_tracker.core.utils import paginate
from budget_tracker.db.session import get_db
from budget_tracker.models.budget import Budget, BudgetAuditAction, BudgetStatus
from budget_tracker.models.category import Category
from budget_tracker.models.expense import Expense
from budget_tracker.models.user import User, UserRole
from budget_tracker.schemas.budget import (
    AllocationRules, BudgetCreate, BudgetDetailResponse, BudgetListResponse, BudgetResponse,
    BudgetReview, BudgetUpdate, LedgerResponse, PolicyResponse, RecurringSettings
)
from budget_tracker.services import alert_service, budget_service
from budget_tracker.services.analytics_service import budget_analytics
from budget_tracker.services.approval_service import policy_flags
from budget_tracker.services.fx_service import CurrencyNormalizer
from budget_tracker.services.ledger_service import LedgerSnapshot, compute_ledger
from budget_tracker.services.notification_service import NotificationSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/budgets", tags=["budgets"])

# Fields whose change can move a budget's usage
USAGE_FIELDS = ("amount", "currency", "alert_threshold")


def get_budget_or_404(budget_id: int, db: Session) -> Budget:
    budget = db.query(Budget).filter(Budget.id == budget_id).first()
    if not budget:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Budget not found"
        )
    return budget


def compute_budget_ledger(budget: Budget, db: Session, normalizer: CurrencyNormalizer) -> LedgerSnapshot:
    """Recompute a budget's ledger from a fresh read of its expenses."""
    expenses = db.query(Expense).filter(Expense.budget_id == budget.id).all()
    return compute_ledger(budget, expenses, normalizer)


def queue_budget_alert(
    background_tasks: BackgroundTasks,
    sender: NotificationSender,
    budget: Budget,
    ledger: LedgerSnapshot,
    previous: Optional[LedgerSnapshot] = None
):
    """Evaluate the alert rule and schedule the notification after the response."""
    decision = alert_service.evaluate(budget, ledger, previous, mode=settings.ALERT_MODE)
    notification = alert_service.build_notification(decision, budget, ledger)
    if notification is not None:
        background_tasks.add_task(sender.send, *notification)


def scope_budgets(query, current_user: User):
    """Users see their own budgets; managers also see their department's."""
    if current_user.role == UserRole.USER:
        return query.filter(Budget.owner_id == current_user.id)
    if current_user.role == UserRole.MANAGER:
        return query.filter(or_(
            Budget.owner_id == current_user.id,
            Budget.department == current_user.department
        ))
    return query


def build_budget_response(budget: Budget, ledger: LedgerSnapshot, detail: bool = False) -> BudgetResponse:
    data = dict(
        id=budget.id,
        name=budget.name,
        description=budget.description,
        amount=budget.amount,
        currency=budget.currency,
        period=budget.period,
        start_date=budget.start_date,
        end_date=budget.end_date,
        category_id=budget.category_id,
        department=budget.department,
        alert_threshold=budget.alert_threshold,
        notes=budget.notes,
        status=budget.status,
        is_active=budget.is_active,
        owner=budget.owner,
        category=budget.category,
        approvers=budget.approvers,
        allocation_rules=AllocationRules(
            auto_approval_limit=budget.auto_approval_limit,
            require_receipt_above=budget.require_receipt_above,
            multiple_approval_above=budget.multiple_approval_above
        ),
        recurring=RecurringSettings(
            is_recurring=budget.is_recurring,
            frequency=budget.recurring_frequency,
            next_renewal_date=budget.next_renewal_date,
            auto_renew=budget.auto_renew
        ),
        spent_amount=ledger.spent_amount,
        remaining_amount=ledger.remaining_amount,
        usage_percentage=ledger.usage_percentage,
        is_over_threshold=ledger.is_over_threshold,
        created_at=budget.created_at,
        updated_at=budget.updated_at
    )
    if detail:
        return BudgetDetailResponse(**data, audit_log=budget.audit_log)
    return BudgetResponse(**data)


def _load_category(category_id: int, db: Session) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category or not category.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category not found or inactive"
        )
    return category


def _load_approvers(approver_ids: List[int], db: Session) -> List[User]:
    if not approver_ids:
        return []
    approvers = db.query(User).filter(User.id.in_(approver_ids)).all()
    if len(approvers) != len(set(approver_ids)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One or more approvers do not exist"
        )
    return approvers


def _audit_value(value):
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return getattr(value, "value", None) or str(value)


@router.get("", response_model=BudgetListResponse)
async def list_budgets(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    status_filter: Optional[BudgetStatus] = Query(None, alias="status"),
    department: Optional[str] = None,
    category_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """List budgets visible to the current user, each with its ledger."""
    query = scope_budgets(db.query(Budget), current_user)
    if status_filter:
        query = query.filter(Budget.status == status_filter)
    if department:
        query = query.filter(Budget.department == department)
    if category_id:
        query = query.filter(Budget.category_id == category_id)

    total = query.count()
    budgets = query.order_by(Budget.created_at.desc(), Budget.id.desc()).offset((page - 1) * limit).limit(limit).all()
    data = [build_budget_response(b, compute_budget_ledger(b, db, normalizer)) for b in budgets]

    return BudgetListResponse(count=len(data), pagination=paginate(page, limit, total), data=data)


@router.get("/analytics")
async def get_budget_analytics(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Totals, status and category breakdowns across visible budgets."""
    budgets = scope_budgets(db.query(Budget), current_user).all()
    budget_ids = [b.id for b in budgets]
    expenses_by_budget = {budget_id: [] for budget_id in budget_ids}
    if budget_ids:
        for expense in db.query(Expense).filter(Expense.budget_id.in_(budget_ids)).all():
            expenses_by_budget[expense.budget_id].append(expense)
    return budget_analytics(budgets, expenses_by_budget, normalizer)


@router.post("/sync-status")
async def sync_budget_statuses(
    current_user: User = Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Apply date-driven transitions (activation, expiry) to all approved and active budgets."""
    budgets = db.query(Budget).filter(
        Budget.status.in_([BudgetStatus.APPROVED, BudgetStatus.ACTIVE])
    ).all()
    changed = 0
    for budget in budgets:
        transition = budget_service.sync_status(budget)
        if transition:
            budget_service.record_transition(budget, transition, current_user)
            changed += 1
    db.commit()
    logger.info(f"Budget status sync updated {changed} budget(s)")
    return {"message": "Budget statuses synchronized", "updated": changed}


@router.post("", response_model=BudgetDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_budget(
    budget_data: BudgetCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Create a draft budget owned by the current user."""
    _load_category(budget_data.category_id, db)
    approvers = _load_approvers(budget_data.approver_ids, db)

    rules = budget_data.allocation_rules
    recurring = budget_data.recurring
    budget = Budget(
        name=budget_data.name,
        description=budget_data.description,
        amount=budget_data.amount,
        currency=budget_data.currency,
        period=budget_data.period,
        start_date=budget_data.start_date,
        end_date=budget_data.end_date,
        category_id=budget_data.category_id,
        department=budget_data.department or current_user.department,
        owner_id=current_user.id,
        status=BudgetStatus.DRAFT,
        alert_threshold=budget_data.alert_threshold,
        notes=budget_data.notes,
        is_active=True,
        auto_approval_limit=rules.auto_approval_limit,
        require_receipt_above=rules.require_receipt_above,
        multiple_approval_above=rules.multiple_approval_above,
        is_recurring=recurring.is_recurring,
        recurring_frequency=recurring.frequency,
        next_renewal_date=recurring.next_renewal_date,
        auto_renew=recurring.auto_renew,
        approvers=approvers
    )
    budget_service.prepare_for_save(budget)
    budget_service.add_audit_entry(budget, BudgetAuditAction.CREATED, current_user)

    db.add(budget)
    db.commit()
    db.refresh(budget)
    logger.info(f"Budget {budget.id} created by user {current_user.id}")

    return build_budget_response(budget, compute_budget_ledger(budget, db, normalizer), detail=True)


@router.get("/{budget_id}", response_model=BudgetDetailResponse)
async def get_budget(
    budget_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    budget = get_budget_or_404(budget_id, db)
    budget_service.assert_can_view(budget, current_user)
    return build_budget_response(budget, compute_budget_ledger(budget, db, normalizer), detail=True)


@router.get("/{budget_id}/ledger", response_model=LedgerResponse)
async def get_budget_ledger(
    budget_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Spent, remaining and usage figures derived from the budget's expenses."""
    budget = get_budget_or_404(budget_id, db)
    budget_service.assert_can_view(budget, current_user)
    ledger = compute_budget_ledger(budget, db, normalizer)
    return LedgerResponse(
        budget_id=budget.id,
        currency=ledger.currency,
        amount=budget.amount,
        spent_amount=ledger.spent_amount,
        remaining_amount=ledger.remaining_amount,
        usage_percentage=ledger.usage_percentage,
        alert_threshold=budget.alert_threshold,
        is_over_threshold=ledger.is_over_threshold,
        expense_count=ledger.expense_count
    )


@router.get("/{budget_id}/policy", response_model=PolicyResponse)
async def get_budget_policy(
    budget_id: int,
    amount: Decimal = Query(..., ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Advisory allocation-rule signals for a prospective expense amount."""
    budget = get_budget_or_404(budget_id, db)
    budget_service.assert_can_view(budget, current_user)
    flags = policy_flags(budget, amount)
    return PolicyResponse(
        budget_id=budget.id,
        amount=amount,
        approval_required=flags.approval_required,
        receipt_required=flags.receipt_required,
        multiple_approval_required=flags.multiple_approval_required,
        reasons=flags.reasons
    )


@router.put("/{budget_id}", response_model=BudgetDetailResponse)
async def update_budget(
    budget_id: int,
    budget_data: BudgetUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer),
    sender: NotificationSender = Depends(get_notification_sender)
):
    """Update budget fields. Amount changes re-evaluate the alert threshold."""
    budget = get_budget_or_404(budget_id, db)
    budget_service.assert_can_modify(budget, current_user)

    updates = budget_data.model_dump(exclude_unset=True)
    previous = compute_budget_ledger(budget, db, normalizer) if any(f in updates for f in USAGE_FIELDS) else None

    if "category_id" in updates:
        _load_category(updates["category_id"], db)
    if "approver_ids" in updates:
        budget.approvers = _load_approvers(updates.pop("approver_ids") or [], db)
    rules = updates.pop("allocation_rules", None)
    if rules is not None:
        updates.update(rules)
    recurring = updates.pop("recurring", None)
    if recurring is not None:
        updates.update({
            "is_recurring": recurring["is_recurring"],
            "recurring_frequency": recurring["frequency"],
            "next_renewal_date": recurring["next_renewal_date"],
            "auto_renew": recurring["auto_renew"],
        })

    changes = {}
    for field, value in updates.items():
        old = getattr(budget, field)
        if old != value:
            changes[field] = [_audit_value(old), _audit_value(value)]
            setattr(budget, field, value)

    transition = budget_service.prepare_for_save(budget)
    if changes:
        budget_service.add_audit_entry(budget, BudgetAuditAction.UPDATED, current_user, changes=changes)
    budget_service.record_transition(budget, transition, current_user)

    # A currency without a usable rate fails here, before anything is saved
    ledger = compute_budget_ledger(budget, db, normalizer)
    db.commit()
    db.refresh(budget)

    if previous is not None:
        queue_budget_alert(background_tasks, sender, budget, ledger, previous)
    return build_budget_response(budget, ledger, detail=True)


@router.post("/{budget_id}/submit", response_model=BudgetDetailResponse)
async def submit_budget(
    budget_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Send a draft budget for approval."""
    budget = get_budget_or_404(budget_id, db)
    budget_service.submit(budget, current_user)
    db.commit()
    db.refresh(budget)
    return build_budget_response(budget, compute_budget_ledger(budget, db, normalizer), detail=True)


@router.post("/{budget_id}/approve", response_model=BudgetDetailResponse)
async def approve_budget(
    budget_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Approve a pending budget; it becomes active once its period has started."""
    budget = get_budget_or_404(budget_id, db)
    budget_service.approve(budget, current_user)
    db.commit()
    db.refresh(budget)
    return build_budget_response(budget, compute_budget_ledger(budget, db, normalizer), detail=True)


@router.post("/{budget_id}/reject", response_model=BudgetDetailResponse)
async def reject_budget(
    budget_id: int,
    review: BudgetReview,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    budget = get_budget_or_404(budget_id, db)
    budget_service.reject(budget, current_user, review.reason)
    db.commit()
    db.refresh(budget)
    return build_budget_response(budget, compute_budget_ledger(budget, db, normalizer), detail=True)


@router.delete("/{budget_id}")
async def delete_budget(
    budget_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a budget. Budgets with linked expenses cannot be deleted."""
    budget = get_budget_or_404(budget_id, db)
    linked = db.query(Expense).filter(Expense.budget_id == budget_id).count()
    budget_service.assert_deletable(budget, current_user, linked)

    db.delete(budget)
    db.commit()
    logger.info(f"Budget {budget_id} deleted by user {current_user.id}")
    return {"message": "Budget deleted successfully"}

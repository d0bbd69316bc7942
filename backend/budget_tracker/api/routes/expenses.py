"""
Expense management routes.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from budget_tracker.api.dependencies import (
    get_current_user, get_currency_normalizer, get_notification_sender
)
from budget_tracker.api.routes.budgets import compute_budget_ledger, queue_budget_alert
from budget_tracker.core.config import settings
from budget_tracker.core.exceptions import ValidationError
from budget_tracker.core.utils import paginate, quantize_money
from budget_tracker.db.session import get_db
from budget_tracker.models.budget import Budget
from budget_tracker.models.category import Category
from budget_tracker.models.expense import (
    Expense, ExpenseAuditAction, ExpenseReceipt, ExpenseStatus
)
from budget_tracker.models.user import User, UserRole
from budget_tracker.schemas.expense import (
    ExpenseCreate, ExpenseDetailResponse, ExpenseListResponse, ExpensePolicy, ExpenseResponse,
    ExpenseReview, ExpenseUpdate, ReceiptCreate
)
from budget_tracker.services import approval_service
from budget_tracker.services.analytics_service import expense_analytics
from budget_tracker.services.fx_service import CurrencyNormalizer, is_supported_currency
from budget_tracker.services.notification_service import NotificationSender, Recipient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["expenses"])

RATE_QUANTUM = Decimal("0.00000001")
CONVERSION_FIELDS = ("amount", "currency")


def get_expense_or_404(expense_id: int, db: Session) -> Expense:
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Expense not found"
        )
    return expense


def scope_expenses(query, current_user: User):
    """Users see their own expenses; managers also see their department's."""
    if current_user.role == UserRole.USER:
        return query.filter(Expense.submitted_by_id == current_user.id)
    if current_user.role == UserRole.MANAGER:
        return query.filter(or_(
            Expense.submitted_by_id == current_user.id,
            Expense.department == current_user.department
        ))
    return query


def apply_conversion(expense: Expense, budget: Optional[Budget], normalizer: CurrencyNormalizer):
    """
    Lock the exchange rate and converted amount for an expense.

    Expenses linked to a budget are converted into the budget's currency,
    unlinked ones into the base currency.
    """
    if not is_supported_currency(expense.currency):
        raise ValidationError(f"Unsupported currency: {expense.currency}", code="UnsupportedCurrency")

    target = budget.currency if budget is not None else normalizer.base_currency
    rate = normalizer.get_rate(expense.currency, target).quantize(RATE_QUANTUM)
    expense.exchange_rate = rate
    expense.converted_currency = target
    expense.converted_amount = quantize_money(Decimal(str(expense.amount)) * rate, target)


def build_expense_response(expense: Expense, detail: bool = False) -> ExpenseResponse:
    policy = None
    if expense.budget is not None:
        flags = approval_service.policy_flags(expense.budget, expense.converted_amount)
        policy = ExpensePolicy(
            approval_required=flags.approval_required,
            receipt_required=flags.receipt_required,
            multiple_approval_required=flags.multiple_approval_required
        )

    data = dict(
        id=expense.id,
        title=expense.title,
        description=expense.description,
        amount=expense.amount,
        currency=expense.currency,
        exchange_rate=expense.exchange_rate,
        converted_amount=expense.converted_amount,
        converted_currency=expense.converted_currency,
        date=expense.date,
        category_id=expense.category_id,
        budget_id=expense.budget_id,
        payment_method=expense.payment_method,
        vendor=expense.vendor,
        tags=expense.tags or [],
        department=expense.department,
        is_recurring=expense.is_recurring,
        recurring_period=expense.recurring_period,
        next_recurring_date=expense.next_recurring_date,
        notes=expense.notes,
        status=expense.status,
        submitter=expense.submitter,
        approver=expense.approver,
        approval_date=expense.approval_date,
        rejection_reason=expense.rejection_reason,
        category=expense.category,
        receipts=expense.receipts,
        policy=policy,
        created_at=expense.created_at,
        updated_at=expense.updated_at
    )
    if detail:
        return ExpenseDetailResponse(**data, audit_log=expense.audit_log)
    return ExpenseResponse(**data)


def _load_category(category_id: int, db: Session) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category or not category.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category not found or inactive"
        )
    return category


def _audit_value(value):
    if value is None or isinstance(value, (bool, int, str, list)):
        return value
    return getattr(value, "value", None) or str(value)


@router.get("", response_model=ExpenseListResponse)
async def list_expenses(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    category_id: Optional[int] = None,
    budget_id: Optional[int] = None,
    department: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List expenses visible to the current user, newest first."""
    query = scope_expenses(db.query(Expense), current_user)
    if status_filter:
        query = query.filter(Expense.status == status_filter)
    if category_id:
        query = query.filter(Expense.category_id == category_id)
    if budget_id:
        query = query.filter(Expense.budget_id == budget_id)
    if department:
        query = query.filter(Expense.department == department)
    if start_date:
        query = query.filter(Expense.date >= start_date)
    if end_date:
        query = query.filter(Expense.date <= end_date)

    total = query.count()
    expenses = query.order_by(Expense.date.desc(), Expense.id.desc()).offset((page - 1) * limit).limit(limit).all()
    data = [build_expense_response(e) for e in expenses]

    return ExpenseListResponse(count=len(data), pagination=paginate(page, limit, total), data=data)


@router.get("/analytics")
async def get_expense_analytics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Status, category and monthly totals across visible expenses."""
    query = scope_expenses(db.query(Expense), current_user)
    if start_date:
        query = query.filter(Expense.date >= start_date)
    if end_date:
        query = query.filter(Expense.date <= end_date)
    return expense_analytics(query.all(), normalizer)


@router.post("", response_model=ExpenseDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer)
):
    """Submit an expense. It starts pending and does not count toward any budget yet."""
    _load_category(expense_data.category_id, db)

    budget = None
    if expense_data.budget_id is not None:
        budget = db.query(Budget).filter(Budget.id == expense_data.budget_id).first()
        if not budget:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Budget not found"
            )
        approval_service.can_submit(expense_data.date, budget)

    expense = Expense(
        **expense_data.model_dump(exclude={"department"}),
        department=expense_data.department or current_user.department,
        status=ExpenseStatus.PENDING,
        submitted_by_id=current_user.id
    )
    apply_conversion(expense, budget, normalizer)
    approval_service.add_audit_entry(expense, ExpenseAuditAction.CREATED, current_user)

    db.add(expense)
    db.commit()
    db.refresh(expense)
    logger.info(f"Expense {expense.id} submitted by user {current_user.id}")

    return build_expense_response(expense, detail=True)


@router.get("/{expense_id}", response_model=ExpenseDetailResponse)
async def get_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    expense = get_expense_or_404(expense_id, db)
    approval_service.assert_can_view(expense, current_user)
    return build_expense_response(expense, detail=True)


@router.put("/{expense_id}", response_model=ExpenseDetailResponse)
async def update_expense(
    expense_id: int,
    expense_data: ExpenseUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer),
    sender: NotificationSender = Depends(get_notification_sender)
):
    """
    Update an expense. Users may only edit their own pending expenses.
    Amount or currency changes re-lock the conversion.
    """
    expense = get_expense_or_404(expense_id, db)
    approval_service.assert_editable(expense, current_user)

    updates = expense_data.model_dump(exclude_unset=True)
    budget = expense.budget
    counts_toward_budget = budget is not None and expense.status in (ExpenseStatus.APPROVED, ExpenseStatus.REIMBURSED)
    reconvert = any(f in updates for f in CONVERSION_FIELDS)
    previous = compute_budget_ledger(budget, db, normalizer) if counts_toward_budget and reconvert else None

    if "category_id" in updates:
        _load_category(updates["category_id"], db)
    if "date" in updates and budget is not None:
        approval_service.can_submit(updates["date"], budget)

    changes = {}
    for field, value in updates.items():
        old = getattr(expense, field)
        if old != value:
            changes[field] = [_audit_value(old), _audit_value(value)]
            setattr(expense, field, value)

    if reconvert:
        apply_conversion(expense, budget, normalizer)
    if changes:
        approval_service.add_audit_entry(expense, ExpenseAuditAction.UPDATED, current_user, changes=changes)

    ledger = compute_budget_ledger(budget, db, normalizer) if previous is not None else None
    db.commit()
    db.refresh(expense)

    if ledger is not None:
        queue_budget_alert(background_tasks, sender, budget, ledger, previous)
    return build_expense_response(expense, detail=True)


@router.put("/{expense_id}/review", response_model=ExpenseDetailResponse)
async def review_expense(
    expense_id: int,
    review: ExpenseReview,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    normalizer: CurrencyNormalizer = Depends(get_currency_normalizer),
    sender: NotificationSender = Depends(get_notification_sender)
):
    """Approve or reject a pending expense (managers and admins)."""
    expense = get_expense_or_404(expense_id, db)
    decision = approval_service.check_review(expense, review.status, current_user, review.rejection_reason)

    # Only approvals move the budget's ledger; rejections never need a rate
    budget = expense.budget if decision == ExpenseStatus.APPROVED else None
    previous = compute_budget_ledger(budget, db, normalizer) if budget is not None else None

    outcome = approval_service.review(expense, decision, current_user, review.rejection_reason)
    ledger = compute_budget_ledger(budget, db, normalizer) if budget is not None else None
    db.commit()
    db.refresh(expense)

    if ledger is not None:
        queue_budget_alert(background_tasks, sender, budget, ledger, previous)

    submitter = expense.submitter
    if submitter is not None and submitter.email:
        payload = {
            "status": outcome.decision.value,
            "title": expense.title,
            "amount": Decimal(str(expense.amount)),
            "currency": expense.currency,
            "date": expense.date,
            "rejection_reason": expense.rejection_reason,
        }
        background_tasks.add_task(sender.send, Recipient.from_user(submitter), "expense_reviewed", payload)

    return build_expense_response(expense, detail=True)


@router.put("/{expense_id}/reimburse", response_model=ExpenseDetailResponse)
async def reimburse_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark an approved expense as paid back to the submitter."""
    expense = get_expense_or_404(expense_id, db)
    approval_service.reimburse(expense, current_user)
    db.commit()
    db.refresh(expense)
    return build_expense_response(expense, detail=True)


@router.post("/{expense_id}/receipts", response_model=ExpenseDetailResponse, status_code=status.HTTP_201_CREATED)
async def add_receipt(
    expense_id: int,
    receipt_data: ReceiptCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Attach receipt metadata to an expense."""
    expense = get_expense_or_404(expense_id, db)
    approval_service.assert_can_view(expense, current_user)

    expense.receipts.append(ExpenseReceipt(file_name=receipt_data.file_name, file_url=receipt_data.file_url))
    approval_service.add_audit_entry(
        expense, ExpenseAuditAction.RECEIPT_ADDED, current_user,
        changes={"file_name": receipt_data.file_name}
    )
    db.commit()
    db.refresh(expense)
    return build_expense_response(expense, detail=True)


@router.delete("/{expense_id}/receipts/{receipt_id}", response_model=ExpenseDetailResponse)
async def remove_receipt(
    expense_id: int,
    receipt_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Detach receipt metadata from an expense."""
    expense = get_expense_or_404(expense_id, db)
    approval_service.assert_can_view(expense, current_user)

    receipt = next((r for r in expense.receipts if r.id == receipt_id), None)
    if receipt is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Receipt not found"
        )

    expense.receipts.remove(receipt)
    approval_service.add_audit_entry(
        expense, ExpenseAuditAction.RECEIPT_REMOVED, current_user,
        changes={"file_name": receipt.file_name}
    )
    db.commit()
    db.refresh(expense)
    logger.info(f"Receipt {receipt_id} removed from expense {expense_id} by user {current_user.id}")
    return build_expense_response(expense, detail=True)


@router.delete("/{expense_id}")
async def delete_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    expense = get_expense_or_404(expense_id, db)
    approval_service.assert_deletable(expense, current_user)

    db.delete(expense)
    db.commit()
    logger.info(f"Expense {expense_id} deleted by user {current_user.id}")
    return {"message": "Expense deleted successfully"}

"""
Pydantic schemas for Budget entity.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import date, datetime
from decimal import Decimal
from budget_tracker.models.budget import BudgetPeriod, BudgetStatus, BudgetAuditAction, RecurringFrequency
from budget_tracker.schemas.category import CategorySummary
from budget_tracker.schemas.user import UserSummary


class AllocationRules(BaseModel):
    """Advisory approval rules applied to expenses filed against a budget."""
    auto_approval_limit: Decimal = Field(Decimal("0"), ge=0)
    require_receipt_above: Decimal = Field(Decimal("25"), ge=0)
    multiple_approval_above: Decimal = Field(Decimal("1000"), ge=0)


class RecurringSettings(BaseModel):
    is_recurring: bool = False
    frequency: Optional[RecurringFrequency] = None
    next_renewal_date: Optional[date] = None
    auto_renew: bool = False


class BudgetBase(BaseModel):
    """Base budget schema."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Decimal = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    period: BudgetPeriod
    start_date: date
    end_date: date
    category_id: int
    department: Optional[str] = Field(None, max_length=50)
    alert_threshold: int = Field(80, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class BudgetCreate(BudgetBase):
    """Schema for budget creation."""
    approver_ids: List[int] = []
    allocation_rules: AllocationRules = AllocationRules()
    recurring: RecurringSettings = RecurringSettings()


class BudgetUpdate(BaseModel):
    """Schema for budget update. Status changes go through the workflow endpoints."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[int] = None
    department: Optional[str] = Field(None, max_length=50)
    alert_threshold: Optional[int] = Field(None, ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None
    approver_ids: Optional[List[int]] = None
    allocation_rules: Optional[AllocationRules] = None
    recurring: Optional[RecurringSettings] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if v else v


class BudgetReview(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BudgetAuditEntryResponse(BaseModel):
    action: BudgetAuditAction
    performed_by_id: int
    timestamp: datetime
    changes: Optional[dict] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class LedgerResponse(BaseModel):
    """Derived ledger figures for a budget."""
    budget_id: int
    currency: str
    amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    usage_percentage: int
    alert_threshold: int
    is_over_threshold: bool
    expense_count: int


class BudgetResponse(BudgetBase):
    """Schema for budget response, including the derived ledger."""
    id: int
    status: BudgetStatus
    is_active: bool
    owner: UserSummary
    category: CategorySummary
    approvers: List[UserSummary] = []
    allocation_rules: AllocationRules
    recurring: RecurringSettings
    spent_amount: Decimal
    remaining_amount: Decimal
    usage_percentage: int
    is_over_threshold: bool
    created_at: datetime
    updated_at: datetime


class BudgetDetailResponse(BudgetResponse):
    audit_log: List[BudgetAuditEntryResponse] = []


class BudgetListResponse(BaseModel):
    count: int
    pagination: Dict[str, int]
    data: List[BudgetResponse]


class PolicyResponse(BaseModel):
    """Advisory allocation-rule signals for an amount."""
    budget_id: int
    amount: Decimal
    approval_required: bool
    receipt_required: bool
    multiple_approval_required: bool
    reasons: List[str] = []

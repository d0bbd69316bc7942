"""
Pydantic schemas for Expense entity.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional
from datetime import date as dt_date, datetime
from decimal import Decimal
from budget_tracker.models.expense import ExpenseAuditAction, ExpenseStatus, PaymentMethod, RecurringPeriod
from budget_tracker.schemas.category import CategorySummary
from budget_tracker.schemas.user import UserSummary


class ExpenseBase(BaseModel):
    """Base expense schema."""
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Decimal = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    date: dt_date
    category_id: int
    budget_id: Optional[int] = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    vendor: Optional[str] = Field(None, max_length=100)
    tags: List[str] = []
    department: Optional[str] = Field(None, max_length=50)
    is_recurring: bool = False
    recurring_period: Optional[RecurringPeriod] = None
    next_recurring_date: Optional[dt_date] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v):
        for tag in v:
            if len(tag) > 30:
                raise ValueError("Tag cannot be more than 30 characters")
        return [tag.strip() for tag in v]


class ExpenseCreate(ExpenseBase):
    """Schema for expense creation. New expenses always start pending."""
    pass


class ExpenseUpdate(BaseModel):
    """Schema for expense update. Status changes go through review."""
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    date: Optional[dt_date] = None
    category_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    vendor: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if v else v


class ExpenseReview(BaseModel):
    """Schema for approving or rejecting an expense."""
    status: str
    rejection_reason: Optional[str] = Field(None, max_length=200)


class ReceiptCreate(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=500)


class ReceiptResponse(ReceiptCreate):
    id: int
    upload_date: datetime

    class Config:
        from_attributes = True


class ExpenseAuditEntryResponse(BaseModel):
    action: ExpenseAuditAction
    performed_by_id: int
    timestamp: datetime
    changes: Optional[dict] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class ExpensePolicy(BaseModel):
    """Advisory signals from the linked budget's allocation rules."""
    approval_required: bool
    receipt_required: bool
    multiple_approval_required: bool


class ExpenseResponse(ExpenseBase):
    """Schema for expense response."""
    id: int
    exchange_rate: Decimal
    converted_amount: Decimal
    converted_currency: str
    status: ExpenseStatus
    submitter: UserSummary
    approver: Optional[UserSummary] = None
    approval_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    category: CategorySummary
    receipts: List[ReceiptResponse] = []
    policy: Optional[ExpensePolicy] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ExpenseDetailResponse(ExpenseResponse):
    audit_log: List[ExpenseAuditEntryResponse] = []


class ExpenseListResponse(BaseModel):
    count: int
    pagination: Dict[str, int]
    data: List[ExpenseResponse]

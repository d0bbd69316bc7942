"""
Expense model for tracking spending against budgets.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Numeric, Date, DateTime, Boolean, ForeignKey,
    Integer, JSON, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from budget_tracker.db.base import Base, BaseModel
import enum


class ExpenseStatus(str, enum.Enum):
    """Expense review status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REIMBURSED = "reimbursed"


# Statuses that count towards a budget's spent amount
SPENT_STATUSES = (ExpenseStatus.APPROVED, ExpenseStatus.REIMBURSED)


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    OTHER = "other"


class RecurringPeriod(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ExpenseAuditAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    APPROVED = "approved"
    REJECTED = "rejected"
    REIMBURSED = "reimbursed"
    RECEIPT_ADDED = "receipt_added"
    RECEIPT_REMOVED = "receipt_removed"


class Expense(BaseModel):
    """Expense model representing a single spending event."""
    __tablename__ = "expenses"

    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    exchange_rate = Column(Numeric(18, 8), nullable=False, default=1)  # 1 currency = rate converted_currency
    converted_amount = Column(Numeric(15, 2), nullable=False)
    converted_currency = Column(String(3), nullable=False)
    date = Column(Date, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    budget_id = Column(Integer, ForeignKey("budgets.id"), nullable=True, index=True)
    payment_method = Column(SQLEnum(PaymentMethod), default=PaymentMethod.OTHER, nullable=False)
    vendor = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=True)
    status = Column(SQLEnum(ExpenseStatus), default=ExpenseStatus.PENDING, nullable=False, index=True)
    submitted_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    rejection_reason = Column(String(200), nullable=True)
    department = Column(String(50), nullable=True, index=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_period = Column(SQLEnum(RecurringPeriod), nullable=True)
    next_recurring_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    category = relationship("Category", back_populates="expenses")
    budget = relationship("Budget", back_populates="expenses")
    submitter = relationship("User", foreign_keys=[submitted_by_id], back_populates="expenses_submitted")
    approver = relationship("User", foreign_keys=[approved_by_id])
    receipts = relationship("ExpenseReceipt", back_populates="expense", cascade="all, delete-orphan")
    audit_log = relationship(
        "ExpenseAuditEntry",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseAuditEntry.id"
    )


class ExpenseReceipt(BaseModel):
    """Receipt attachment metadata. File storage lives outside this service."""
    __tablename__ = "expense_receipts"

    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_url = Column(String(500), nullable=False)
    upload_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    expense = relationship("Expense", back_populates="receipts")


class ExpenseAuditEntry(Base):
    """Append-only audit entry for an expense."""
    __tablename__ = "expense_audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(SQLEnum(ExpenseAuditAction), nullable=False)
    performed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    changes = Column(JSON, nullable=True)
    reason = Column(String(500), nullable=True)

    expense = relationship("Expense", back_populates="audit_log")

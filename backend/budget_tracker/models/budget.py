"""
Budget model with allocation rules, approvers and audit trail.
"""
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Date, DateTime, Boolean, Numeric, ForeignKey,
    Integer, JSON, Table, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from budget_tracker.db.base import Base, BaseModel
import enum

DEFAULT_ALERT_THRESHOLD = 80
DEFAULT_AUTO_APPROVAL_LIMIT = 0
DEFAULT_REQUIRE_RECEIPT_ABOVE = 25
DEFAULT_MULTIPLE_APPROVAL_ABOVE = 1000


class BudgetStatus(str, enum.Enum):
    """Budget lifecycle status."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    EXPIRED = "expired"


class BudgetPeriod(str, enum.Enum):
    """Budget period enumeration."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class RecurringFrequency(str, enum.Enum):
    """Renewal frequency for recurring budgets."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BudgetAuditAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVATED = "activated"
    EXPIRED = "expired"


budget_approvers = Table(
    "budget_approvers",
    Base.metadata,
    Column("budget_id", Integer, ForeignKey("budgets.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Budget(BaseModel):
    """Budget model. Spent amount is always derived from expenses, never stored."""
    __tablename__ = "budgets"

    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    period = Column(SQLEnum(BudgetPeriod), nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    department = Column(String(50), nullable=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(SQLEnum(BudgetStatus), default=BudgetStatus.DRAFT, nullable=False, index=True)
    alert_threshold = Column(Integer, default=DEFAULT_ALERT_THRESHOLD, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)

    # Allocation rules
    auto_approval_limit = Column(Numeric(15, 2), default=DEFAULT_AUTO_APPROVAL_LIMIT, nullable=False)
    require_receipt_above = Column(Numeric(15, 2), default=DEFAULT_REQUIRE_RECEIPT_ABOVE, nullable=False)
    multiple_approval_above = Column(Numeric(15, 2), default=DEFAULT_MULTIPLE_APPROVAL_ABOVE, nullable=False)

    # Recurring settings
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_frequency = Column(SQLEnum(RecurringFrequency), nullable=True)
    next_renewal_date = Column(Date, nullable=True)
    auto_renew = Column(Boolean, default=False, nullable=False)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id], back_populates="budgets")
    category = relationship("Category", back_populates="budgets")
    approvers = relationship("User", secondary=budget_approvers)
    expenses = relationship("Expense", back_populates="budget")
    audit_log = relationship(
        "BudgetAuditEntry",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetAuditEntry.id"
    )


class BudgetAuditEntry(Base):
    """Append-only audit entry for a budget."""
    __tablename__ = "budget_audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    budget_id = Column(Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(SQLEnum(BudgetAuditAction), nullable=False)
    performed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    changes = Column(JSON, nullable=True)
    reason = Column(String(500), nullable=True)

    budget = relationship("Budget", back_populates="audit_log")

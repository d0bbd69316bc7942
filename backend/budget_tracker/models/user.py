"""
User model for authentication and role management.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship
from budget_tracker.db.base import BaseModel
import enum


class UserRole(str, enum.Enum):
    """User role enumeration."""
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


# Roles allowed to review expenses and budgets
REVIEWER_ROLES = (UserRole.MANAGER, UserRole.ADMIN)


class User(BaseModel):
    """User model. Email is the login identifier."""
    __tablename__ = "users"

    name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    department = Column(String(50), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    budgets = relationship("Budget", foreign_keys="Budget.owner_id", back_populates="owner")
    expenses_submitted = relationship("Expense", foreign_keys="Expense.submitted_by_id", back_populates="submitter")
    categories_created = relationship("Category", back_populates="creator")

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

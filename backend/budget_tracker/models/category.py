"""
Category model shared by budgets and expenses.
"""
from sqlalchemy import Column, String, Boolean, ForeignKey, Integer
from sqlalchemy.orm import relationship
from budget_tracker.db.base import BaseModel


class Category(BaseModel):
    """Spending category."""
    __tablename__ = "categories"

    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(200), nullable=True)
    color = Column(String(7), default="#6c757d", nullable=False)
    icon = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Relationships
    creator = relationship("User", back_populates="categories_created")
    budgets = relationship("Budget", back_populates="category")
    expenses = relationship("Expense", back_populates="category")

"""
Category management routes.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from budget_tracker.db.session import get_db
from budget_tracker.models.user import User, UserRole
from budget_tracker.models.category import Category
from budget_tracker.models.budget import Budget
from budget_tracker.models.expense import Expense
from budget_tracker.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from budget_tracker.api.dependencies import get_current_user, require_roles

router = APIRouter(prefix="/categories", tags=["categories"])


def get_category_or_404(category_id: int, db: Session) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Category not found"
        )
    return category


def _check_unique_name(name: str, db: Session, exclude_id: int = None):
    query = db.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category name already exists"
        )


@router.get("", response_model=List[CategoryResponse])
async def list_categories(
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List categories, active ones only unless asked otherwise."""
    query = db.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name).all()


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return get_category_or_404(category_id, db)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    current_user: User = Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Create a category (managers and admins)."""
    _check_unique_name(category_data.name, db)
    category = Category(**category_data.model_dump(), created_by_id=current_user.id)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    category_data: CategoryUpdate,
    current_user: User = Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    category = get_category_or_404(category_id, db)
    updates = category_data.model_dump(exclude_unset=True)
    if "name" in updates:
        _check_unique_name(updates["name"], db, exclude_id=category_id)
    for field, value in updates.items():
        setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Delete a category that no budget or expense references."""
    category = get_category_or_404(category_id, db)

    in_use = (
        db.query(Budget).filter(Budget.category_id == category_id).count()
        + db.query(Expense).filter(Expense.category_id == category_id).count()
    )
    if in_use:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete category that is in use; deactivate it instead"
        )

    db.delete(category)
    db.commit()
    return {"message": "Category deleted successfully"}

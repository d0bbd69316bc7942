"""
User management routes.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from budget_tracker.db.session import get_db
from budget_tracker.schemas.user import AdminUserCreate, UserResponse, UserUpdate
from budget_tracker.models.user import User, UserRole
from budget_tracker.models.budget import Budget
from budget_tracker.models.category import Category
from budget_tracker.models.expense import Expense
from budget_tracker.core.security import get_password_hash
from budget_tracker.api.dependencies import get_current_user, require_roles

router = APIRouter(prefix="/users", tags=["users"])


def get_user_or_404(user_id: int, db: Session) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[UserRole] = None,
    department: Optional[str] = None,
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: Session = Depends(get_db)
):
    """List users. Managers only see their own department."""
    query = db.query(User)
    if current_user.role == UserRole.MANAGER:
        query = query.filter(User.department == current_user.department)
    elif department:
        query = query.filter(User.department == department)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(User.name).all()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: AdminUserCreate,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Create a user with any role."""
    if db.query(User).filter(User.email == user_data.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already exists"
        )

    user = User(
        name=user_data.name,
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        role=user_data.role,
        department=user_data.department
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get user by ID. Regular users may only read themselves."""
    if current_user.role == UserRole.USER and current_user.id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not permitted"
        )
    return get_user_or_404(user_id, db)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update a user. Only admins may change role or active flag, or edit others."""
    is_admin = current_user.role == UserRole.ADMIN
    if not is_admin and (current_user.id != user_id or user_data.role is not None or user_data.is_active is not None):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not permitted"
        )

    user = get_user_or_404(user_id, db)
    updates = user_data.model_dump(exclude_unset=True)

    if "email" in updates and updates["email"] != user.email:
        if db.query(User).filter(User.email == updates["email"]).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already exists"
            )
    if "password" in updates:
        user.hashed_password = get_password_hash(updates.pop("password"))

    for field, value in updates.items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    return user


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db)
):
    """Delete a user without linked records; deactivate them otherwise."""
    user = get_user_or_404(user_id, db)
    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    has_records = (
        db.query(Budget).filter(Budget.owner_id == user_id).count() > 0
        or db.query(Expense).filter(Expense.submitted_by_id == user_id).count() > 0
        or db.query(Category).filter(Category.created_by_id == user_id).count() > 0
    )
    if has_records:
        user.is_active = False
        db.commit()
        return {"message": "User has linked records and was deactivated"}

    db.delete(user)
    db.commit()
    return {"message": "User deleted successfully"}

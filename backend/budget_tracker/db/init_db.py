"""
Database initialization script.

    python -m budget_tracker.db.init_db          # create tables
    python -m budget_tracker.db.init_db --seed   # create tables and demo data
"""
import sys

from sqlalchemy.orm import Session

from budget_tracker.core.security import get_password_hash
from budget_tracker.db.session import SessionLocal, init_db
from budget_tracker.models import Category, User, UserRole

SEED_PASSWORD = "password123"

SEED_USERS = [
    ("Admin User", "admin@erpbudget.com", UserRole.ADMIN, "Management"),
    ("John Manager", "manager@erpbudget.com", UserRole.MANAGER, "Finance"),
    ("Jane Employee", "user@erpbudget.com", UserRole.USER, "Marketing"),
]

SEED_CATEGORIES = [
    ("Office Supplies", "General office supplies and stationery", "#2196F3", "inventory"),
    ("Travel & Transportation", "Business travel expenses", "#FF9800", "flight"),
    ("Marketing", "Marketing and advertising expenses", "#4CAF50", "campaign"),
    ("Technology", "Software, hardware, and IT expenses", "#9C27B0", "computer"),
    ("Training & Education", "Employee training and development", "#F44336", "school"),
    ("Meals & Entertainment", "Business meals and client entertainment", "#607D8B", "restaurant"),
]


def seed(db: Session):
    """Insert demo users and categories that do not exist yet."""
    users = {}
    for name, email, role, department in SEED_USERS:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(
                name=name,
                email=email,
                hashed_password=get_password_hash(SEED_PASSWORD),
                role=role,
                department=department
            )
            db.add(user)
        users[role] = user
    db.flush()

    admin = users[UserRole.ADMIN]
    for name, description, color, icon in SEED_CATEGORIES:
        if not db.query(Category).filter(Category.name == name).first():
            db.add(Category(name=name, description=description, color=color, icon=icon, created_by_id=admin.id))
    db.commit()


if __name__ == "__main__":
    print("Initializing database...")
    init_db()
    if "--seed" in sys.argv[1:]:
        session = SessionLocal()
        try:
            seed(session)
        finally:
            session.close()
        print(f"Seed data created (password: {SEED_PASSWORD})")
    print("Database initialized successfully!")

"""
Main API router that includes all route modules.
"""
from fastapi import APIRouter
from budget_tracker.api.routes import auth, users, categories, budgets, expenses, currency

api_router = APIRouter()

# Include all route modules
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(categories.router)
api_router.include_router(budgets.router)
api_router.include_router(expenses.router)
api_router.include_router(currency.router)

"""
FastAPI entrypoint for the Budget Tracker backend application.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from budget_tracker.api.router import api_router
from budget_tracker.core.config import settings
from budget_tracker.core.exceptions import (
    AuthorizationError, BudgetTrackerError, DependencyError, NotFoundError, StateError, ValidationError
)
from budget_tracker.core.utils import format_error
from budget_tracker.db.session import init_db
from budget_tracker.services.fx_service import CurrencyNormalizer
from budget_tracker.services.notification_service import NotificationSender

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (StateError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    normalizer = CurrencyNormalizer.from_settings(settings)
    app.state.currency_normalizer = normalizer
    app.state.notification_sender = NotificationSender.from_settings(settings)
    await normalizer.start(refresh_now=settings.FX_REFRESH_ON_STARTUP)
    logger.info(f"{settings.APP_NAME} started")
    yield
    await normalizer.stop()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title="Budget Tracker API",
    description="Backend API for budget planning and expense approval",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BudgetTrackerError)
async def budget_tracker_error_handler(request: Request, exc: BudgetTrackerError):
    """Map domain errors to HTTP responses carrying the error code."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break

    message = "Not permitted" if isinstance(exc, AuthorizationError) else exc.message
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=format_error(message, exc.code))


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API is running"}


@app.get("/health")
async def health(request: Request):
    """Health check endpoint."""
    normalizer = request.app.state.currency_normalizer
    return {
        "status": "healthy",
        "currency_rates": {
            "source": normalizer.source,
            "last_updated": normalizer.last_updated,
        }
    }

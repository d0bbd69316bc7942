"""
Shared FastAPI dependencies: authentication, role checks and the
application-owned collaborators.
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from budget_tracker.core.security import decode_access_token
from budget_tracker.db.session import get_db
from budget_tracker.models.user import User, UserRole
from budget_tracker.services.fx_service import CurrencyNormalizer
from budget_tracker.services.notification_service import NotificationSender

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized to access this route",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is deactivated"
        )
    return user


def require_roles(*roles: UserRole):
    """Dependency factory restricting a route to the given roles."""
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not permitted"
            )
        return current_user
    return checker


def get_currency_normalizer(request: Request) -> CurrencyNormalizer:
    return request.app.state.currency_normalizer


def get_notification_sender(request: Request) -> NotificationSender:
    return request.app.state.notification_sender

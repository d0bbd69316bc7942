"""Exception taxonomy for the budget tracker core."""


class BudgetTrackerError(Exception):
    """Base exception for all budget tracker errors.

    Every error carries a machine-readable ``code`` alongside the
    human-readable message.
    """

    code = "BudgetTrackerError"

    def __init__(self, message: str = "", code: str = None):
        self.message = message or (self.__class__.__doc__ or "").strip()
        super().__init__(self.message)
        if code:
            self.code = code


class ValidationError(BudgetTrackerError):
    """Raised when input is malformed or out of range."""

    code = "ValidationError"


class StateError(BudgetTrackerError):
    """Raised when an entity is in an invalid state for the requested transition."""

    code = "StateError"


class AuthorizationError(BudgetTrackerError):
    """Raised when the actor lacks the role required for the action."""

    code = "NotPermitted"


class DependencyError(BudgetTrackerError):
    """Raised when a collaborator (currency rates, storage) fails."""

    code = "DependencyError"


class NotFoundError(BudgetTrackerError):
    """Raised when a referenced entity does not exist."""

    code = "NotFound"

"""Coach Log exceptions."""


class CoachLogError(Exception):
    """Base exception for Coach Log errors."""
    pass


class ValidationError(CoachLogError, ValueError):
    """Raised when input is malformed or out of range."""
    pass


class AuthorizationError(CoachLogError, PermissionError):
    """Raised when the principal may not act on the target entity."""
    pass


class NotFoundError(CoachLogError, LookupError):
    """Raised when a referenced entity does not exist."""
    pass


class DependencyError(CoachLogError):
    """Raised when the datastore or the email collaborator fails."""
    pass

class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input is malformed or logically inconsistent."""


class ConflictError(DomainError):
    """Raised when an operation would violate a session state invariant."""


class NotFoundError(DomainError):
    """Raised when a referenced user or session does not exist."""


class AuthorizationError(DomainError):
    """Raised when the acting user does not own the resource."""

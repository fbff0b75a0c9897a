class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class InsufficientStockError(AppError):
    pass


class InvalidTransitionError(AppError):
    """A status change rejected by an enforcing status policy."""


class AuthorizationError(AppError):
    pass


class IdentityProviderError(AppError):
    """The external identity provider could not be reached or answered garbage."""

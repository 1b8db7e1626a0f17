class AuthError(ValueError):
    """Raised when credentials or a session token are not accepted."""


class AccessDeniedError(ValueError):
    """Raised when a user touches a record owned by someone else."""

"""Error taxonomy for real-time commands.

Every error carries a human-readable message that is sent back to the
originating connection only.
"""


class RetroError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RetroError):
    """Malformed command payload."""


class AuthorizationError(RetroError):
    """Non-host attempting a host-only action, or acting on someone else's item."""


class NotFoundError(RetroError):
    """Referenced entity absent or outside the session."""


class QuotaExceededError(RetroError):
    """Vote budget violation."""


class ConflictError(RetroError):
    """Uniqueness violation such as a duplicate connection."""

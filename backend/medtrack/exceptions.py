"""Errors raised by the reminder pipeline and the collection store."""


class AuthenticationRequired(RuntimeError):
    """Raised when subscribing or writing without a resolved identity."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class StoreUnavailable(RuntimeError):
    """Raised when the collection store cannot be reached."""


class RecordNotFound(LookupError):
    """Raised when an update or delete targets a record that does not exist."""

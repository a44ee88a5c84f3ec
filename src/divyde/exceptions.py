"""Custom exceptions for Divyde."""


class DivydeError(Exception):
    """Base exception for all Divyde errors."""

    pass


class ConfigurationError(DivydeError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(DivydeError):
    """Raised when a request carries an invalid amount, direction or selection."""

    pass


class NotFoundError(DivydeError):
    """Raised when referenced ids do not resolve within the owner's scope."""

    def __init__(self, entity: str, ids: list[str], message: str | None = None):
        self.entity = entity
        self.ids = list(ids)
        super().__init__(
            message
            or f"{entity.capitalize()} not found: {', '.join(self.ids) or '(none)'}"
        )


class StateConflictError(DivydeError):
    """Raised when the storage backend reports a conflicting concurrent write."""

    pass


class StorageError(DivydeError):
    """Raised when a storage backend cannot read or write its data."""

    pass


class ApiError(StorageError):
    """Raised when a request to the Divyde HTTP API fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

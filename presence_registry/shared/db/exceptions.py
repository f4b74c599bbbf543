# Common exceptions so every layer raises the same errors
# (e.g., StoreError, InvalidIdentifierError).
# A missing record is never an error and has no exception here.


class RegistryError(Exception):
    """Base class for every error raised by the presence registry."""

    pass


class StoreError(RegistryError):
    """Raised when the backing store signals a non-success response."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class InvalidIdentifierError(RegistryError, ValueError):
    """Raised when a user or connection identifier is missing or blank."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} must be a non-empty string")

class SavedItemsError(Exception):
    """Base error for the saved items service layer."""


class StorageUnavailableError(SavedItemsError):
    """Raised when the database is unavailable or not configured."""


class StorageModeError(SavedItemsError):
    """Raised when a write is attempted through a read-only storage context."""


class NotFoundError(SavedItemsError):
    """Raised when an entity is absent or not owned by the caller."""

    def __init__(self, message: str, *, key: str = "id", value: str | None = None) -> None:
        super().__init__(message)
        self.key = key
        self.value = value


class ValidationError(SavedItemsError):
    """Raised when input is rejected before any write happens."""


class MalformedRowError(SavedItemsError):
    """Raised when storage returns a value outside the known domain."""


class ParserError(SavedItemsError):
    """Raised when the URL resolution service fails or answers nonsense."""


class UpsertFailure(SavedItemsError):
    """Raised when a save could not be created or re-added."""

    def __init__(self, url: str) -> None:
        super().__init__(f"unable to add item with url: {url}")
        self.url = url


class EmissionError(SavedItemsError):
    """Raised by event sinks; the emitter reports it and never re-raises."""

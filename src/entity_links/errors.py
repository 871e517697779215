"""Exception types raised by entity-links."""

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
RAISE_EXCEPTION = "P0001"


class EntityLinksError(Exception):
    """Base class for entity-links errors."""


class MissingIdentifierError(EntityLinksError, ValueError):
    """Raised when an entity reference without an id is used where a persisted entity is required."""

    def __init__(self, entity_type: str, operation: str | None = None) -> None:
        self.entity_type = entity_type
        self.operation = operation
        where = f" in {operation}" if operation else ""
        super().__init__(f"{entity_type} reference has no id{where}")


class ValidationError(EntityLinksError, ValueError):
    """Raised when a value fails validation before any write is attempted."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidLinkTypeError(ValidationError):
    """Raised when a link type is not allowed between two entity types."""


class NotFoundError(EntityLinksError, LookupError):
    """Raised when a referenced row does not exist."""


class DatabaseError(EntityLinksError):
    """Raised when the persistence layer rejects an operation.

    Carries the raw error code and message reported by the store so callers
    can log them and recognise constraint violations.
    """

    def __init__(self, message: str, code: str | None = None, details: str | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code}] {message}" if code else message)

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION or "duplicate key" in (self.message or "")

    @property
    def is_foreign_key_violation(self) -> bool:
        return self.code == FOREIGN_KEY_VIOLATION

    @property
    def is_membership_violation(self) -> bool:
        """True when a reorder routine rejected ids that do not belong to the parent."""
        return self.is_foreign_key_violation or "do not belong" in (self.message or "")

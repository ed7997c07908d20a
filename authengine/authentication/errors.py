"""
Error taxonomy for authentication configuration operations.

Every failed operation raises exactly one of these; none of them leave a
partial write behind.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class FieldError:
    """A single field-level violation."""
    field: str
    reason: str

    def __str__(self) -> str:
        return f'Incorrect value for field "{self.field}": {self.reason}.'


class AuthConfigError(Exception):
    """Base exception for authentication configuration errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AuthConfigError):
    """
    Raised when input is malformed, out of range or missing a required value.

    Carries every violated field, not only the first one.
    """

    def __init__(self, errors: Sequence[FieldError], title: str = "Invalid parameters"):
        self.errors: List[FieldError] = list(errors)
        self.title = title
        super().__init__(f"{title}: " + " ".join(str(e) for e in self.errors))

    @property
    def field(self) -> Optional[str]:
        return self.errors[0].field if self.errors else None

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]

    @classmethod
    def single(cls, field: str, reason: str, title: str = "Invalid parameters") -> "ValidationError":
        return cls([FieldError(field, reason)], title=title)


class PermissionDenied(AuthConfigError):
    """Raised when the acting principal lacks the required privilege."""

    def __init__(self, message: str = "insufficient privilege"):
        super().__init__(message)


class Conflict(AuthConfigError):
    """Raised when a cross-entity invariant would be violated."""
    pass


class NotFound(AuthConfigError):
    """Raised when a referenced object does not exist."""
    pass


class StorageError(AuthConfigError):
    """Raised when persistence or audit durability fails. Never retried here."""
    pass

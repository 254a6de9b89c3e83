# worksmart/errors.py
from typing import List, Optional


class WorksmartError(Exception):
    """Base class for every error the tracking engine raises."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorksmartError):
    """Malformed input to a state transition or an outreach record."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(WorksmartError):
    def __init__(self, resource: str, resource_id):
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class StorageError(WorksmartError):
    """Opaque persistence failure. Never retried here."""


class PermissionDeniedError(WorksmartError):
    def __init__(self, role: str, action: str):
        super().__init__(f"Role '{role}' is not permitted to {action.replace('_', ' ')}")
        self.role = role
        self.action = action


class ValidationWarning(UserWarning):
    """
    An import row that parsed but is materially incomplete.

    Returned alongside the reconciled client, never raised: the operator
    reviews it after the import finishes.
    """

    def __init__(self, message: str, row_number: Optional[int] = None, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.row_number = row_number
        self.missing_fields = list(missing_fields or [])

    def __eq__(self, other):
        if not isinstance(other, ValidationWarning):
            return NotImplemented
        return (self.message, self.row_number, self.missing_fields) == (other.message, other.row_number, other.missing_fields)

    def __hash__(self):
        return hash((self.message, self.row_number, tuple(self.missing_fields)))

    def __repr__(self):
        return f"ValidationWarning(row={self.row_number}, missing={self.missing_fields}, message={self.message!r})"

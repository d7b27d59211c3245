"""
Error taxonomy for the booking core.

The presentation layer needs to tell "fix your input" apart from "this is no
longer available", so every failure the core raises on purpose is a
BookingError subclass carrying a category and a suggested HTTP status.
"""

from typing import Optional


class ErrorCategory:
    """Error categories for structured error handling"""
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found_error"
    CONFLICT = "conflict_error"
    PERMISSION = "permission_error"
    DEPENDENCY = "dependency_error"


class BookingError(Exception):
    """Base booking error with structured information"""

    def __init__(
        self,
        message: str,
        category: str,
        status_code: int = 500,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.category = category
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": self.category,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BookingError):
    """Malformed input. The caller should re-prompt."""
    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        self.field = field
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            status_code=400,
            details=details,
        )


class NotFoundError(BookingError):
    """A referenced session, request, conversation, review or user does not exist"""
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message=f"{entity} {entity_id} not found",
            category=ErrorCategory.NOT_FOUND,
            status_code=404,
            details={"entity": entity, "id": entity_id},
        )


class ConflictError(BookingError):
    """The state changed underneath the caller (session taken, request no longer pending)"""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.CONFLICT,
            status_code=409,
            details=details,
        )


class PermissionDeniedError(BookingError):
    """The authenticated user may not perform this transition"""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.PERMISSION,
            status_code=403,
            details=details,
        )


class DependencyError(BookingError):
    """Persistence or notification transport failure"""
    def __init__(self, message: str, dependency: str, details: Optional[dict] = None):
        self.dependency = dependency
        super().__init__(
            message=message,
            category=ErrorCategory.DEPENDENCY,
            status_code=503,
            details={"dependency": dependency, **(details or {})},
        )

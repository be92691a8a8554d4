"""
Custom exception classes for the check-in engine.

Provides structured error handling with user-friendly messages and a clear
taxonomy for the review lifecycle: duplicate open reviews, illegal state
transitions, finalization eligibility, authorization and batch consistency.
"""

from __future__ import annotations

from typing import Any


class CheckInError(Exception):
    """Base exception for all check-in engine errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        """Provide a user-friendly version of the error message."""
        return "An unexpected error occurred. Please try again."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(CheckInError):
    """Raised when input validation fails."""

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {field.replace('_', ' ')}: {message}",
        )

    def _get_default_user_message(self) -> str:
        return f"Please check your input for {self.field.replace('_', ' ')} and try again."


class MultipleValidationError(CheckInError):
    """Raised when multiple validation errors occur."""

    def __init__(self, errors: list[ValidationError]):
        self.validation_errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(
            message=f"Multiple validation errors: {'; '.join(messages)}",
            details={
                "errors": [
                    {"field": e.field, "message": e.message, "value": e.value} for e in errors
                ]
            },
            user_message="Please correct the following errors and try again.",
        )


class InvalidRating(ValidationError):
    """Raised when a rating is not part of the target kind's vocabulary."""

    def __init__(self, target_kind: str, rating: Any, allowed: list[Any] | None = None):
        self.target_kind = target_kind
        self.rating = rating
        self.allowed = allowed or []
        super().__init__(
            field="rating",
            message=f"{rating!r} is not a valid {target_kind} rating",
            value=rating,
            details={"target_kind": target_kind, "rating": rating, "allowed": self.allowed},
        )


class DatabaseError(CheckInError):
    """Raised when database operations fail."""

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"Database error during {operation}: {message}",
            details=details or {"operation": operation},
            user_message="A database error occurred. Please try again in a moment.",
        )


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, operation="connection", details=details)
        self.user_message = self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        return "Unable to connect to the database. Please check your connection and try again."


class IntegrityError(DatabaseError):
    """Raised when database integrity constraints are violated."""

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.constraint = constraint
        super().__init__(
            message=message,
            operation="integrity_check",
            details=details or {"constraint": constraint},
        )
        self.user_message = self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        if self.constraint:
            if "unique" in self.constraint.lower():
                return "This record already exists."
            elif "foreign" in self.constraint.lower():
                return "Referenced item no longer exists. Please refresh and try again."
        return "Data integrity error. Please check your input and try again."


class NotFoundError(CheckInError):
    """Raised when a referenced entity does not exist."""

    entity = "record"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(
            message=f"{self.entity.capitalize()} with ID {entity_id} not found",
            details={"entity": self.entity, "id": entity_id},
        )

    def _get_default_user_message(self) -> str:
        return f"The selected {self.entity} could not be found. Please refresh and try again."


class CheckInNotFoundError(NotFoundError):
    entity = "check-in"


class SnapshotNotFoundError(NotFoundError):
    entity = "snapshot"


class TeammateNotFoundError(NotFoundError):
    entity = "teammate"


class TargetNotFoundError(NotFoundError):
    entity = "target"


class DuplicateOpenReview(CheckInError):
    """Raised when a second open check-in is created for the same subject and target."""

    def __init__(self, teammate_id: int, target_kind: str, target_id: int, existing_id: int | None = None):
        self.teammate_id = teammate_id
        self.target_kind = target_kind
        self.target_id = target_id
        self.existing_id = existing_id
        super().__init__(
            message=(
                f"Teammate {teammate_id} already has an open {target_kind} check-in "
                f"for target {target_id}"
            ),
            details={
                "teammate_id": teammate_id,
                "target_kind": target_kind,
                "target_id": target_id,
                "existing_check_in_id": existing_id,
            },
        )

    def _get_default_user_message(self) -> str:
        return "A check-in is already open for this item. Continue the existing one instead."


class InvalidTransition(CheckInError):
    """Raised when a check-in side cannot move to the requested state."""

    def __init__(self, message: str, check_in_id: int | None = None, state: str | None = None):
        self.check_in_id = check_in_id
        self.state = state
        super().__init__(
            message=message,
            details={"check_in_id": check_in_id, "state": state},
        )

    def _get_default_user_message(self) -> str:
        return "This check-in cannot be changed in its current state."


class NotEligibleForFinalization(CheckInError):
    """Reported for a finalization selection whose check-in is not ready."""

    def __init__(self, check_in_id: int, reason: str, state: str | None = None):
        self.check_in_id = check_in_id
        self.reason = reason
        self.state = state
        super().__init__(
            message=f"Check-in {check_in_id} is not eligible for finalization: {reason}",
            details={"check_in_id": check_in_id, "reason": reason, "state": state},
        )

    def _get_default_user_message(self) -> str:
        return "Both the employee and the manager must complete their check-in before it can be finalized."


class Forbidden(CheckInError):
    """Raised when an actor lacks the capability required for an operation."""

    def __init__(self, actor_id: int | None, operation: str, details: dict[str, Any] | None = None):
        self.actor_id = actor_id
        self.operation = operation
        super().__init__(
            message=f"Actor {actor_id} is not allowed to {operation}",
            details=details or {"actor_id": actor_id, "operation": operation},
        )

    def _get_default_user_message(self) -> str:
        return "You don't have permission to perform this operation."


class SnapshotConsistencyFailure(CheckInError):
    """Raised when a finalization batch fails part-way and is rolled back."""

    def __init__(self, message: str, check_in_ids: list[int] | None = None, details: dict[str, Any] | None = None):
        self.check_in_ids = check_in_ids or []
        super().__init__(
            message=message,
            details=details or {"check_in_ids": self.check_in_ids},
        )

    def _get_default_user_message(self) -> str:
        return "Finalization failed and no changes were saved. Please try again."


class BusinessLogicError(CheckInError):
    """Raised when business logic constraints are violated."""

    def __init__(
        self, message: str, rule: str | None = None, details: dict[str, Any] | None = None
    ):
        self.rule = rule
        super().__init__(
            message=message,
            details=details or {"rule": rule},
            user_message="This operation cannot be completed due to business rules.",
        )


def handle_database_error(e: Exception, operation: str = "database operation") -> DatabaseError:
    """
    Convert generic database exceptions to appropriate custom exceptions.

    Args:
        e: The original exception
        operation: Description of the operation that failed

    Returns:
        Appropriate DatabaseError subclass

    Example:
        >>> try:
        ...     session.commit()
        >>> except Exception as e:
        ...     raise handle_database_error(e, "commit transaction")
    """
    error_msg = str(e).lower()

    if "connection" in error_msg or "timeout" in error_msg:
        return ConnectionError(str(e))
    elif "unique constraint" in error_msg or "duplicate" in error_msg:
        return IntegrityError(str(e), constraint="unique")
    elif "foreign key" in error_msg or "foreign_key" in error_msg:
        return IntegrityError(str(e), constraint="foreign_key")
    elif "check constraint" in error_msg:
        return IntegrityError(str(e), constraint="check")
    else:
        return DatabaseError(str(e), operation)


def create_user_friendly_error_message(error: Exception) -> str:
    """
    Create a user-friendly error message from any exception.

    Example:
        >>> error = ValidationError("rating", "cannot be empty")
        >>> create_user_friendly_error_message(error)
        'Invalid rating: cannot be empty'
    """
    if isinstance(error, CheckInError):
        return error.user_message

    error_type = type(error).__name__
    messages = {
        "ValueError": "Invalid input provided. Please check your data and try again.",
        "KeyError": "Required information is missing. Please check your input.",
        "TypeError": "Incorrect data type provided. Please check your input format.",
    }
    return messages.get(
        error_type, "An unexpected error occurred. Please try again or contact support."
    )


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Args:
        error: The exception to log
        context: Additional context information

    Returns:
        Dictionary with structured error details
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, CheckInError):
        details.update({"user_message": error.user_message, "error_details": error.details})

    return details

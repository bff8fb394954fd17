"""Domain error vocabulary shared by services, storage and UI."""
from __future__ import annotations

from typing import Optional


INVALID_RANGE_MESSAGE = "end time must be after start time"
MIDNIGHT_MESSAGE = "a segment cannot cross midnight — split it into two days"
REVERTED_MESSAGE = "changes were reverted"


class PlannerError(Exception):
    """Base class for every error raised by the scheduling engine."""

    message = "operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(PlannerError):
    """Input rejected before it reached persistence."""

    def __init__(self, field: str, code: str, message: Optional[str] = None):
        super().__init__(message or f"{field}: {code}")
        self.field = field
        self.code = code


class InvalidTimeRangeError(ValidationError):
    def __init__(self, field: str = "end_time"):
        super().__init__(field, "valid_times", INVALID_RANGE_MESSAGE)


class MidnightCrossingError(ValidationError):
    def __init__(self, field: str = "end_time"):
        super().__init__(field, "no_midnight_cross", MIDNIGHT_MESSAGE)


class NotFoundError(PlannerError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class PersistenceError(PlannerError):
    message = "storage operation failed"


class ChangesRevertedError(PlannerError):
    """A mutation failed after its optimistic state was shown; the view was restored."""

    message = REVERTED_MESSAGE

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__()
        self.cause = cause


_CONSTRAINT_ERRORS = {
    "valid_times": InvalidTimeRangeError,
    "no_midnight_cross": MidnightCrossingError,
}


def translate_constraint(detail: str) -> PlannerError:
    """Map a raw CHECK-constraint failure onto the domain vocabulary."""

    text = detail or ""
    for name, error_cls in _CONSTRAINT_ERRORS.items():
        if name in text:
            return error_cls()
    if "tasks_not_self_parent" in text:
        return ValidationError("parent_task_id", "self_parent", "a task cannot be its own parent")
    return PersistenceError(text or None)


__all__ = [
    "INVALID_RANGE_MESSAGE",
    "MIDNIGHT_MESSAGE",
    "REVERTED_MESSAGE",
    "PlannerError",
    "ValidationError",
    "InvalidTimeRangeError",
    "MidnightCrossingError",
    "NotFoundError",
    "PersistenceError",
    "ChangesRevertedError",
    "translate_constraint",
]

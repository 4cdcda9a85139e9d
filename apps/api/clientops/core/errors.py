from __future__ import annotations

from typing import Any


class LifecycleError(Exception):
    """Base error for lifecycle engine and client port failures."""

    code = "lifecycle_error"

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class InvalidTransition(LifecycleError):
    """Raised when a proposed state change is not in the transition table.

    Local validation only; these never reach the billing/CRM service and
    the entity keeps its prior state.
    """

    code = "invalid_transition"

    def __init__(self, entity_type: str, entity_id: str, current: str, target: str, reason: str | None = None) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.target = target
        self.reason = reason
        message = f"{entity_type} {entity_id}: {current} -> {target} is not allowed"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)

    def to_detail(self) -> dict[str, Any]:
        return {
            **super().to_detail(),
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "current": self.current,
            "target": self.target,
        }


class ActionNotApplicable(InvalidTransition):
    """Raised when a guarded action is attempted in a status that disables it."""

    code = "action_not_applicable"

    def __init__(self, entity_type: str, entity_id: str, current: str, action: str) -> None:
        self.action = action
        super().__init__(entity_type, entity_id, current, action, reason=f"{action} requires ACTIVE")


class NotFound(LifecycleError):
    code = "not_found"

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class Conflict(LifecycleError):
    """Concurrent mutation detected; callers refetch instead of merging."""

    code = "conflict"
    refetch = True

    def __init__(self, entity_type: str, entity_id: str, message: str = "concurrent modification") -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id}: {message}")

    def to_detail(self) -> dict[str, Any]:
        return {**super().to_detail(), "refetch": self.refetch}


class ActionInFlight(Conflict):
    """A previous mutating request for the same entity has not completed."""

    code = "action_in_flight"
    refetch = False

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(entity_type, entity_id, "a request for this entity is already in flight")


class PartialBatchFailure(LifecycleError):
    code = "partial_batch_failure"

    def __init__(self, action: str, result: Any) -> None:
        self.action = action
        self.result = result
        super().__init__(f"{action}: {len(result.failed)} of {result.total} items failed")


class MalformedResponse(LifecycleError):
    """The billing/CRM service answered 2xx with a body that does not parse."""

    code = "malformed_response"

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation}: malformed response: {message}")


class Unavailable(LifecycleError):
    """Network failure or timeout talking to the billing/CRM service."""

    code = "unavailable"

    def __init__(self, operation: str, message: str = "billing service unavailable") -> None:
        self.operation = operation
        super().__init__(f"{operation}: {message}")


def as_lifecycle_error(operation: str, exc: Exception) -> LifecycleError:
    """Return ``exc`` unchanged when it is already a ``LifecycleError``, else wrap it."""
    if isinstance(exc, LifecycleError):
        return exc
    return LifecycleError(f"{operation}: {exc}")

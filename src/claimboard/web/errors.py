"""Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status the outer layer
maps it to. The core itself never touches HTTP.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.replace("_", " ").capitalize())
        self.message = message or str(self.args[0])

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotAuthorized(WorkflowError):
    code = "not_authorized"
    status_code = 403


class NotFound(WorkflowError):
    code = "not_found"
    status_code = 404


class ValidationError(WorkflowError):
    code = "validation_error"
    status_code = 422


class AlreadyClaimed(WorkflowError):
    code = "already_claimed"
    status_code = 409


class InvalidTransition(WorkflowError):
    code = "invalid_transition"
    status_code = 409


class VersionConflict(WorkflowError):
    code = "version_conflict"
    status_code = 409

    def __init__(self, message: str = "", current_version: int | None = None) -> None:
        super().__init__(message)
        self.current_version = current_version

    def to_dict(self) -> dict:
        return {**super().to_dict(), "current_version": self.current_version}


class ClaimOwnershipConflict(WorkflowError):
    code = "claim_ownership_conflict"
    status_code = 409

    def __init__(self, current_claimant: int | None, message: str = "") -> None:
        super().__init__(message or "Task is claimed by another user")
        self.current_claimant = current_claimant

    def to_dict(self) -> dict:
        return {**super().to_dict(), "current_claimant": self.current_claimant}


class SessionAlreadyActive(WorkflowError):
    code = "session_already_active"
    status_code = 409


class TaskTypeAlreadyExists(WorkflowError):
    code = "task_type_already_exists"
    status_code = 409


class TaskTypeInUse(WorkflowError):
    code = "task_type_in_use"
    status_code = 409


class DbError(WorkflowError):
    """Opaque infrastructure failure; the message is not shown to clients."""

    code = "db_error"
    status_code = 500

    def to_dict(self) -> dict:
        return {"detail": "Database error", "code": self.code}

"""
Workflow exception type.

Why this module exists:
  Every failure the workflow engine exposes to callers is a ``WorkflowError``
  tagged with an ``ErrorKind``.  The transport status is derived from the tag
  alone (``status_for``), so a route layer needs one handler, not one per
  failure mode.

Usage:
    from specflow.core.exceptions import ErrorKind, WorkflowError

    raise WorkflowError(ErrorKind.NOT_FOUND, "Project not found", code=E.PROJECT_NOT_FOUND)
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    TRANSITION_NOT_ALLOWED = "TRANSITION_NOT_ALLOWED"
    VERSION_CONFLICT = "VERSION_CONFLICT"


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_PERMISSIONS: 403,
    ErrorKind.TRANSITION_NOT_ALLOWED: 422,
    ErrorKind.VERSION_CONFLICT: 409,
}


def status_for(kind: ErrorKind) -> int:
    """HTTP-style status class for an error kind."""
    return _STATUS_BY_KIND[ErrorKind(kind)]


class WorkflowError(Exception):
    """Raised by the workflow engine for not-found, permission, sequencing and conflict failures.

    Args:
        kind: Error tag; drives the status class.
        message: Human-readable reason, shown to end users verbatim.
        code: Stable machine-readable code. Defaults to the kind's value.
        phase: Phase involved in the failed operation, if any.
        details: Optional structured payload (e.g. expected/actual version).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: str | None = None,
        phase: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.kind = ErrorKind(kind)
        self.message = message
        self.code = code or self.kind.value
        self.phase = phase.value if isinstance(phase, Enum) else phase
        self.details = details or {}
        super().__init__(message)

    @property
    def status(self) -> int:
        return status_for(self.kind)

    def __repr__(self):
        return f"<WorkflowError {self.code} status={self.status} phase={self.phase}>"

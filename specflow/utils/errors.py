"""Standardised error codes and payloads.

Usage
-----
    from specflow.utils.errors import E, error_payload

    raise WorkflowError(ErrorKind.NOT_FOUND, "Document not found", code=E.DOCUMENT_NOT_FOUND)

    body, status = error_payload(exc)
"""

from __future__ import annotations

from specflow.core.exceptions import WorkflowError


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Not-found – 404
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    PHASE_NOT_FOUND = "PHASE_NOT_FOUND"

    # Permissions – 403
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # Workflow gate – 422
    TRANSITION_NOT_ALLOWED = "TRANSITION_NOT_ALLOWED"
    PHASE_CHANGED = "PHASE_CHANGED"

    # Optimistic concurrency – 409
    VERSION_CONFLICT = "VERSION_CONFLICT"


def error_payload(exc: WorkflowError) -> tuple[dict, int]:
    """Render a WorkflowError as ``(body, status)`` for any transport layer.

    The status depends only on ``exc.kind``.
    """
    body: dict = {
        "error": exc.message,
        "code": exc.code,
        "kind": exc.kind.value,
    }
    if exc.phase:
        body["phase"] = exc.phase
    if exc.details:
        body["details"] = exc.details
    return body, exc.status

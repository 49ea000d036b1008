"""
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for workflow events.
"""

import json
from datetime import UTC, datetime

from specflow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_RESOURCES = {"project", "document"}

AUDIT_ACTIONS = {
    "phase_transition",
    "phase_approval",
    "document_update",
    "auto_ai_review",
}


class AuditLog(db.Model):
    """
    Immutable audit trail entry.

    One row per action. ``details_json`` carries the action payload
    (phases, versions, AI score, error message on failure).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_resource", "resource", "resource_id"),
        db.Index("idx_audit_project", "project_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.String(36), nullable=True)
    user_id = db.Column(db.String(64), nullable=False, default="system")
    action = db.Column(
        db.String(60), nullable=False,
        comment="phase_transition | phase_approval | document_update | auto_ai_review",
    )
    resource = db.Column(db.String(30), nullable=False, comment="project | document")
    resource_id = db.Column(db.String(64), nullable=False)
    details_json = db.Column(db.Text, default="{}")
    success = db.Column(db.Boolean, nullable=False, default=True)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    @property
    def details(self) -> dict:
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "details": self.details,
            "success": self.success,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.resource}/{self.resource_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    user_id: str,
    action: str,
    resource: str,
    resource_id,
    project_id: str | None = None,
    details: dict | None = None,
    success: bool = True,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Raises:
        ValueError: *action* or *resource* is not a known audit vocabulary term.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action!r}")
    if resource not in AUDIT_RESOURCES:
        raise ValueError(f"Unknown audit resource: {resource!r}")

    log = AuditLog(
        project_id=project_id,
        user_id=user_id or "system",
        action=action,
        resource=resource,
        resource_id=str(resource_id),
        details_json=json.dumps(details or {}, default=str),
        success=success,
    )
    db.session.add(log)
    db.session.flush()
    return log

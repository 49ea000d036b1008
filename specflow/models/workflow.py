"""
Workflow bookkeeping models.

Models:
    - PhaseTransition: append-only log of phase changes (never updated or deleted).
    - PhaseApproval: one live approval per (project, phase, user) with a finite
      lifetime; a newer approval from the same user overwrites the older one.
"""

from datetime import datetime, timezone

from specflow.models import db


class PhaseTransition(db.Model):
    """Immutable record of a project moving from one phase to the next."""

    __tablename__ = "phase_transitions"
    __table_args__ = (
        db.Index("ix_phase_transitions_project_ts", "project_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("specification_projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_phase = db.Column(db.String(20), nullable=False)
    to_phase = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    approval_comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "from_phase": self.from_phase,
            "to_phase": self.to_phase,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
            "user_id": self.user_id,
            "approval_comment": self.approval_comment,
        }

    def __repr__(self):
        return f"<PhaseTransition {self.project_id}: {self.from_phase} -> {self.to_phase}>"


class PhaseApproval(db.Model):
    """
    Approval of a phase by a single user.

    Business rules:
    - At most one row per (project, phase, user); re-approving overwrites it.
    - Counts toward quorum only while ``expires_at`` is in the future.
      Expired rows are not deleted, they are filtered out at read time.
    """

    __tablename__ = "phase_approvals"
    __table_args__ = (
        db.UniqueConstraint("project_id", "phase", "user_id", name="uq_phase_approval_user"),
        db.Index("ix_phase_approvals_live", "project_id", "phase", "expires_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("specification_projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    phase = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    approved = db.Column(db.Boolean, nullable=False, default=True)
    comment = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "timestamp": self.approved_at.isoformat() if self.approved_at else None,
            "comment": self.comment,
            "approved": bool(self.approved),
        }

    def __repr__(self):
        return f"<PhaseApproval {self.project_id}/{self.phase} by {self.user_id}>"

"""
AI review persistence.

Models:
    - AIReview: standalone record of one AI review of a specification document.
"""

import json
from datetime import datetime, timezone

from specflow.models import db


def _loads(raw, default):
    try:
        return json.loads(raw) if raw else default
    except (json.JSONDecodeError, TypeError):
        return default


class AIReview(db.Model):
    """Stored AI review; JSON payloads kept as text for SQLite/PostgreSQL parity."""

    __tablename__ = "ai_reviews"

    id = db.Column(db.Integer, primary_key=True)
    review_key = db.Column(db.String(64), nullable=True,
                           comment="Id assigned by the review gateway")
    document_id = db.Column(
        db.Integer,
        db.ForeignKey("specification_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase = db.Column(db.String(20), nullable=False)
    overall_score = db.Column(db.Integer, nullable=False, default=0)
    suggestions_json = db.Column(db.Text, default="[]")
    completeness_json = db.Column(db.Text, default="{}")
    quality_metrics_json = db.Column(db.Text, default="{}")
    compliance_issues_json = db.Column(db.Text, default="[]")
    trigger = db.Column(db.String(30), nullable=False, default="manual",
                        comment="manual | phase_transition")
    created_by = db.Column(db.String(64), nullable=False, default="system")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_key": self.review_key,
            "document_id": self.document_id,
            "phase": self.phase,
            "overall_score": self.overall_score,
            "suggestions": _loads(self.suggestions_json, []),
            "completeness": _loads(self.completeness_json, {}),
            "quality_metrics": _loads(self.quality_metrics_json, {}),
            "compliance_issues": _loads(self.compliance_issues_json, []),
            "trigger": self.trigger,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AIReview #{self.id} doc={self.document_id} score={self.overall_score}>"

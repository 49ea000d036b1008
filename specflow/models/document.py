"""
Specification document models.

Models:
    - SpecificationDocument: one row per (project, phase) holding the live content.
    - DocumentVersion: append-only snapshot of a document's previous content,
      written before every content update so history can be replayed.
"""

from datetime import datetime, timezone
from enum import Enum

from specflow.models import db


class DocumentStatus(str, Enum):
    DRAFT = "DRAFT"
    REVIEW = "REVIEW"
    APPROVED = "APPROVED"


class SpecificationDocument(db.Model):
    """
    Live document for one phase of a project.

    Business rules:
    - ``version`` starts at 1 and increases by exactly 1 per content update.
    - Any edit resets ``status`` to DRAFT.
    """

    __tablename__ = "specification_documents"
    __table_args__ = (
        db.UniqueConstraint("project_id", "phase", name="uq_spec_documents_project_phase"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("specification_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase = db.Column(db.String(20), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    version = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(20), nullable=False, default=DocumentStatus.DRAFT.value,
                       comment="DRAFT | REVIEW | APPROVED")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    versions = db.relationship(
        "DocumentVersion", backref="document", lazy="dynamic",
        order_by="DocumentVersion.version",
        cascade="all, delete-orphan",
    )

    @classmethod
    def for_phase(cls, project_id: str, phase: str):
        """Compound unique lookup by (project_id, phase)."""
        return cls.query.filter_by(project_id=project_id, phase=phase).first()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase": self.phase,
            "content": self.content,
            "version": self.version,
            "status": self.status,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SpecificationDocument {self.project_id}/{self.phase} v{self.version}>"


class DocumentVersion(db.Model):
    """Immutable snapshot of a document as it was *before* an update."""

    __tablename__ = "document_versions"
    __table_args__ = (
        db.Index("ix_document_versions_doc_version", "document_id", "version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer,
        db.ForeignKey("specification_documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    version = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "version": self.version,
            "content": self.content,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

"""
Specification project domain models.

Models:
    - SpecificationProject: one specification effort moving through the phases.
    - ProjectTeamMember: membership row (role + status) used for permission checks.

Enumerations:
    - Phase: REQUIREMENTS < DESIGN < TASKS < IMPLEMENTATION (strict order).
    - TeamRole / MemberStatus: team membership vocabulary.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from specflow.models import db


class Phase(str, Enum):
    REQUIREMENTS = "REQUIREMENTS"
    DESIGN = "DESIGN"
    TASKS = "TASKS"
    IMPLEMENTATION = "IMPLEMENTATION"


# Total order used by every sequencing decision.
PHASE_ORDER: tuple[Phase, ...] = (
    Phase.REQUIREMENTS,
    Phase.DESIGN,
    Phase.TASKS,
    Phase.IMPLEMENTATION,
)


def phase_index(phase) -> int:
    """Position of *phase* in PHASE_ORDER; raises ValueError for unknown values."""
    return PHASE_ORDER.index(Phase(phase))


def next_phase(phase) -> Phase | None:
    idx = phase_index(phase)
    if idx + 1 < len(PHASE_ORDER):
        return PHASE_ORDER[idx + 1]
    return None


class TeamRole(str, Enum):
    LEAD = "LEAD"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"


def _uuid() -> str:
    return str(uuid.uuid4())


class SpecificationProject(db.Model):
    """Specification project; ``current_phase`` is written only by the workflow engine."""

    __tablename__ = "specification_projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(db.String(64), nullable=False, index=True)
    current_phase = db.Column(
        db.String(20), nullable=False, default=Phase.REQUIREMENTS.value,
        comment="REQUIREMENTS | DESIGN | TASKS | IMPLEMENTATION",
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    team = db.relationship(
        "ProjectTeamMember", backref="project", lazy="select",
        cascade="all, delete-orphan",
    )
    documents = db.relationship(
        "SpecificationDocument", backref="project", lazy="select",
        cascade="all, delete-orphan",
    )

    def member(self, user_id: str):
        """Return the team membership row for *user_id*, or None."""
        for m in self.team:
            if m.user_id == user_id:
                return m
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "current_phase": self.current_phase,
            "team": [m.to_dict() for m in self.team],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SpecificationProject {self.id} phase={self.current_phase}>"


class ProjectTeamMember(db.Model):
    """Team membership; only ACTIVE rows grant any rights."""

    __tablename__ = "project_team_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_team_project_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("specification_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=TeamRole.MEMBER.value,
                     comment="LEAD | MEMBER | VIEWER")
    status = db.Column(db.String(20), nullable=False, default=MemberStatus.ACTIVE.value,
                       comment="ACTIVE | INACTIVE | PENDING")
    joined_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE.value

    @property
    def is_active_lead(self) -> bool:
        return self.is_active and self.role == TeamRole.LEAD.value

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "status": self.status,
        }

    def __repr__(self):
        return f"<ProjectTeamMember {self.user_id} {self.role}/{self.status}>"

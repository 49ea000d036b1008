"""
Project service: project creation, team membership, document history.

Usage:
    from specflow.services.project_service import create_project

    project = create_project("Checkout revamp", owner_id="u-1")
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from specflow.core.exceptions import ErrorKind, WorkflowError
from specflow.models import db
from specflow.models.document import DocumentStatus, DocumentVersion, SpecificationDocument
from specflow.models.project import (
    PHASE_ORDER,
    MemberStatus,
    Phase,
    ProjectTeamMember,
    SpecificationProject,
    TeamRole,
)
from specflow.services.cache_service import WorkflowCache
from specflow.utils.errors import E

logger = logging.getLogger(__name__)


def create_project(
    name: str,
    owner_id: str,
    *,
    description: str | None = None,
    initial_contents: dict | None = None,
) -> SpecificationProject:
    """
    Create a project at REQUIREMENTS with one DRAFT v1 document per phase.

    ``initial_contents`` maps phase names to starting text; missing phases
    start empty.
    """
    if not (name or "").strip():
        raise ValueError("Project name is required")

    contents = {Phase(k).value: v for k, v in (initial_contents or {}).items()}
    project = SpecificationProject(
        name=name.strip(),
        description=description,
        owner_id=owner_id,
        current_phase=Phase.REQUIREMENTS.value,
    )
    try:
        db.session.add(project)
        db.session.flush()
        for phase in PHASE_ORDER:
            db.session.add(SpecificationDocument(
                project_id=project.id,
                phase=phase.value,
                content=contents.get(phase.value, ""),
                version=1,
                status=DocumentStatus.DRAFT.value,
            ))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Project creation failed", extra={"user_id": owner_id})
        raise

    logger.info("Project created: %s", project.name,
                extra={"project_id": project.id, "user_id": owner_id})
    return project


def add_team_member(
    project_id: str,
    user_id: str,
    role: str = TeamRole.MEMBER.value,
    status: str = MemberStatus.ACTIVE.value,
    *,
    cache: WorkflowCache | None = None,
) -> ProjectTeamMember:
    """Insert or update a membership row; role/status changes affect permissions immediately."""
    role = TeamRole(role).value
    status = MemberStatus(status).value

    project = db.session.get(SpecificationProject, project_id)
    if project is None:
        raise WorkflowError(ErrorKind.NOT_FOUND, "Project not found", code=E.PROJECT_NOT_FOUND)

    member = project.member(user_id)
    if member is None:
        member = ProjectTeamMember(project_id=project_id, user_id=user_id)
        db.session.add(member)
    member.role = role
    member.status = status
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    (cache or WorkflowCache()).invalidate(project_id)
    return member


def list_document_versions(project_id: str, phase) -> list[dict]:
    """Snapshots of the phase document, oldest version first."""
    document = SpecificationDocument.for_phase(project_id, Phase(phase).value)
    if document is None:
        raise WorkflowError(
            ErrorKind.NOT_FOUND, "Document not found", code=E.DOCUMENT_NOT_FOUND, phase=phase,
        )
    rows = db.session.execute(
        select(DocumentVersion)
        .where(DocumentVersion.document_id == document.id)
        .order_by(DocumentVersion.version.asc(), DocumentVersion.id.asc())
    ).scalars().all()
    return [r.to_dict() for r in rows]

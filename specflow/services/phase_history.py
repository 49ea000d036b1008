"""
Phase history store: append-only log of phase transitions.

``append_transition`` only adds and flushes; the workflow engine commits it
together with the phase change so the log and ``current_phase`` never
disagree.
"""

from __future__ import annotations

from sqlalchemy import select

from specflow.models import db
from specflow.models.workflow import PhaseTransition


def append_transition(
    project_id: str,
    from_phase: str,
    to_phase: str,
    user_id: str,
    approval_comment: str | None = None,
    *,
    created_at=None,
) -> PhaseTransition:
    entry = PhaseTransition(
        project_id=project_id,
        from_phase=from_phase,
        to_phase=to_phase,
        user_id=user_id,
        approval_comment=approval_comment,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.session.add(entry)
    db.session.flush()
    return entry


def list_transitions(project_id: str) -> list[PhaseTransition]:
    """Full history for *project_id*, oldest first."""
    return list(db.session.execute(
        select(PhaseTransition)
        .where(PhaseTransition.project_id == project_id)
        .order_by(PhaseTransition.created_at.asc(), PhaseTransition.id.asc())
    ).scalars().all())

"""
Phase approval store.

One row per (project, phase, user); re-approving overwrites the earlier
row and restarts its lifetime.  Rows past ``expires_at`` stay in the table
but are invisible to ``live_approvals``.

Functions flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from specflow.models import db
from specflow.models.workflow import PhaseApproval

logger = logging.getLogger(__name__)

APPROVAL_TTL_SECONDS = 24 * 60 * 60


def _find(project_id: str, phase: str, user_id: str) -> PhaseApproval | None:
    return db.session.execute(
        select(PhaseApproval).where(
            PhaseApproval.project_id == project_id,
            PhaseApproval.phase == phase,
            PhaseApproval.user_id == user_id,
        )
    ).scalar_one_or_none()


def record_approval(
    project_id: str,
    phase: str,
    user_id: str,
    *,
    now: datetime,
    comment: str | None = None,
    approved: bool = True,
    ttl_seconds: int = APPROVAL_TTL_SECONDS,
) -> PhaseApproval:
    """Upsert the approval of *user_id* for (*project_id*, *phase*).

    Last write wins.  A concurrent insert of the same key is resolved by
    overwriting the row that won the race.
    """
    row = _find(project_id, phase, user_id)
    if row is None:
        row = PhaseApproval(project_id=project_id, phase=phase, user_id=user_id,
                            approved_at=now, expires_at=now)
        try:
            with db.session.begin_nested():
                db.session.add(row)
        except IntegrityError:
            logger.debug("Approval insert raced for %s/%s/%s; updating", project_id, phase, user_id)
            row = _find(project_id, phase, user_id)

    row.approved = approved
    row.comment = (comment or "").strip() or None
    row.approved_at = now
    row.expires_at = now + timedelta(seconds=ttl_seconds)
    db.session.flush()
    return row


def live_approvals(project_id: str, phase: str, now: datetime) -> list[PhaseApproval]:
    """Approvals for (*project_id*, *phase*) whose lifetime has not ended, oldest first."""
    return list(db.session.execute(
        select(PhaseApproval)
        .where(
            PhaseApproval.project_id == project_id,
            PhaseApproval.phase == phase,
            PhaseApproval.expires_at > now,
        )
        .order_by(PhaseApproval.approved_at.asc(), PhaseApproval.id.asc())
    ).scalars().all())


def count_live_approvals(project_id: str, phase: str, now: datetime) -> int:
    return sum(1 for a in live_approvals(project_id, phase, now) if a.approved)

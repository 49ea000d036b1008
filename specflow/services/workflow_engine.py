"""
Specification Workflow Engine

Phase-gated state machine for specification projects:
  - Phase sequencing and transition eligibility (owner / active LEAD only)
  - Completion scoring: static rules plus optional AI review
  - Approval quorum over live (non-expired) approvals
  - Versioned, snapshot-first document updates with compare-and-set
  - Atomic transitions (phase, history, document reset, audit in one commit)
  - Cached workflow-state projection, invalidated on every write

Usage:
    from specflow.services.workflow_engine import create_workflow_service

    service = create_workflow_service(current_app.config)
    check = service.can_transition_to_phase(project_id, "DESIGN", user_id)
    state = service.transition_phase(project_id, "DESIGN", user_id,
                                     approval_comment="Signed off")
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from specflow.ai.review import AIReviewResult, map_phase_to_ai_phase
from specflow.core.exceptions import ErrorKind, WorkflowError
from specflow.models import db
from specflow.models.ai import AIReview
from specflow.models.audit import write_audit
from specflow.models.document import DocumentStatus, DocumentVersion, SpecificationDocument
from specflow.models.project import PHASE_ORDER, Phase, SpecificationProject, next_phase, phase_index
from specflow.services.approval_store import (
    APPROVAL_TTL_SECONDS,
    count_live_approvals,
    live_approvals,
    record_approval,
)
from specflow.services.cache_service import WorkflowCache
from specflow.services.phase_history import append_transition, list_transitions
from specflow.services.validation_rules import evaluate_static_rules, required_approvals
from specflow.utils.errors import E

logger = logging.getLogger(__name__)

AI_UNAVAILABLE_WARNING = "AI validation temporarily unavailable"
DEFAULT_AI_MIN_SCORE = 70

_BLOCKING_SUGGESTION_SEVERITIES = ("critical", "high")
_BLOCKING_COMPLIANCE_SEVERITIES = ("high",)

_CODE_BY_KIND = {
    ErrorKind.NOT_FOUND: E.PROJECT_NOT_FOUND,
    ErrorKind.INSUFFICIENT_PERMISSIONS: E.INSUFFICIENT_PERMISSIONS,
    ErrorKind.TRANSITION_NOT_ALLOWED: E.TRANSITION_NOT_ALLOWED,
    ErrorKind.VERSION_CONFLICT: E.VERSION_CONFLICT,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _percent(passed: int, total: int) -> int:
    """Half-up rounded percentage."""
    if total <= 0:
        return 100
    return (200 * passed + total) // (2 * total)


# ═════════════════════════════════════════════════════════════════════════════
# Result types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ValidationResult:
    """Completion verdict for one phase; computed fresh, never persisted."""
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    completion_percentage: int = 0
    ai_review: AIReviewResult | None = None
    ai_validation_score: int | None = None

    def to_dict(self) -> dict:
        data = {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "completion_percentage": self.completion_percentage,
        }
        if self.ai_review is not None:
            data["ai_review"] = self.ai_review.to_dict()
        if self.ai_validation_score is not None:
            data["ai_validation_score"] = self.ai_validation_score
        return data


@dataclass
class TransitionCheck:
    can_transition: bool
    reason: str | None = None
    kind: ErrorKind | None = None

    def to_dict(self) -> dict:
        return {
            "can_transition": self.can_transition,
            "reason": self.reason,
            "kind": self.kind.value if self.kind else None,
        }


@dataclass
class WorkflowState:
    """Read-optimised projection cached as JSON under ``workflow:<project_id>``."""
    project_id: str
    current_phase: str
    phase_history: list[dict]
    document_statuses: dict[str, str]
    approvals: dict[str, list[dict]]
    can_progress: bool
    next_phase: str | None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> WorkflowState | None:
        """Rebuild from a cached dict; returns None on any shape mismatch."""
        if not isinstance(data, dict):
            return None
        try:
            state = cls(
                project_id=data["project_id"],
                current_phase=data["current_phase"],
                phase_history=data["phase_history"],
                document_statuses=data["document_statuses"],
                approvals=data["approvals"],
                can_progress=data["can_progress"],
                next_phase=data["next_phase"],
            )
        except (KeyError, TypeError):
            return None

        valid_phases = {p.value for p in PHASE_ORDER}
        if (
            not isinstance(state.project_id, str)
            or state.current_phase not in valid_phases
            or not isinstance(state.phase_history, list)
            or not all(isinstance(h, dict) for h in state.phase_history)
            or not isinstance(state.document_statuses, dict)
            or not isinstance(state.approvals, dict)
            or not all(isinstance(v, list) for v in state.approvals.values())
            or not isinstance(state.can_progress, bool)
            or (state.next_phase is not None and state.next_phase not in valid_phases)
        ):
            return None
        return state


# ═════════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════════

class SpecificationWorkflowService:
    """
    Per-request workflow engine with injected collaborators.

    Args:
        cache: WorkflowCache (defaults to the process-wide backend).
        ai_reviewer: object exposing ``review(content, phase_hint, project_id)``;
            None disables AI validation entirely.
        clock: zero-arg callable returning an aware UTC datetime.
        approval_ttl: approval lifetime in seconds.
        ai_min_score: minimum AI score counted as a passed check.
    """

    def __init__(
        self,
        *,
        cache: WorkflowCache | None = None,
        ai_reviewer=None,
        clock: Callable[[], datetime] | None = None,
        approval_ttl: int = APPROVAL_TTL_SECONDS,
        ai_min_score: int = DEFAULT_AI_MIN_SCORE,
    ):
        self.cache = cache or WorkflowCache()
        self.ai_reviewer = ai_reviewer
        self.clock = clock or _utcnow
        self.approval_ttl = approval_ttl
        self.ai_min_score = ai_min_score

    # ── Lookups & permissions ────────────────────────────────────────────

    @staticmethod
    def _phase(value) -> Phase:
        try:
            return Phase(value)
        except ValueError:
            raise WorkflowError(
                ErrorKind.NOT_FOUND, f"Unknown phase: {value}", code=E.PHASE_NOT_FOUND,
            ) from None

    @staticmethod
    def _get_project(project_id: str) -> SpecificationProject:
        project = db.session.get(SpecificationProject, project_id)
        if project is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "Project not found", code=E.PROJECT_NOT_FOUND)
        return project

    @staticmethod
    def can_update_documents(project: SpecificationProject, user_id: str) -> bool:
        """Owner, or any ACTIVE team member regardless of role."""
        if project.owner_id == user_id:
            return True
        member = project.member(user_id)
        return member is not None and member.is_active

    @staticmethod
    def can_initiate_transition(project: SpecificationProject, user_id: str) -> bool:
        """Owner, or an ACTIVE team member with role LEAD."""
        if project.owner_id == user_id:
            return True
        member = project.member(user_id)
        return member is not None and member.is_active_lead

    def _invalidate(self, project_id: str):
        self.cache.invalidate(project_id)

    def _audit_best_effort(self, **kwargs):
        """Write and commit one audit row; failures are logged, never raised."""
        try:
            write_audit(**kwargs)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(
                "Audit write failed: %s", kwargs.get("action"),
                extra={"project_id": kwargs.get("project_id"), "event_type": kwargs.get("action")},
            )

    # ── 1. Completion validation ─────────────────────────────────────────

    def validate_phase_completion(self, project_id: str, phase) -> ValidationResult:
        """
        Score the document of *phase* against its rules. Read-only.

        AI review (when configured) folds critical/high suggestions and high
        compliance issues into errors and everything else into warnings.  Any
        reviewer failure becomes a single warning and no score.
        """
        phase = self._phase(phase)
        document = SpecificationDocument.for_phase(project_id, phase.value)
        if document is None:
            return ValidationResult(
                is_valid=False, errors=["Document not found for phase"], completion_percentage=0,
            )

        static = evaluate_static_rules(phase, document.content)
        errors = list(static.errors)
        warnings = list(static.warnings)
        passed = static.checks_passed
        total = len(static.checks)

        ai_review = None
        ai_score = None
        if self.ai_reviewer is not None:
            try:
                ai_review = self.ai_reviewer.review(
                    document.content, map_phase_to_ai_phase(phase), project_id,
                )
            except Exception as exc:
                logger.warning(
                    "AI validation unavailable: %s", exc,
                    extra={"project_id": project_id, "phase": phase.value},
                )
                warnings.append(AI_UNAVAILABLE_WARNING)
            else:
                for suggestion in ai_review.suggestions:
                    message = f"AI: {suggestion.get('title', 'Suggestion')}"
                    if suggestion.get("severity") in _BLOCKING_SUGGESTION_SEVERITIES:
                        errors.append(message)
                    else:
                        warnings.append(message)
                for issue in ai_review.compliance_issues:
                    message = f"AI Compliance: {issue.get('description', '')}"
                    if issue.get("severity") in _BLOCKING_COMPLIANCE_SEVERITIES:
                        errors.append(message)
                    else:
                        warnings.append(message)
                ai_score = ai_review.overall_score
                total += 1
                if ai_score >= self.ai_min_score:
                    passed += 1

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            completion_percentage=_percent(passed, total),
            ai_review=ai_review,
            ai_validation_score=ai_score,
        )

    # ── 2. Transition eligibility ────────────────────────────────────────

    def can_transition_to_phase(self, project_id: str, target_phase, user_id: str) -> TransitionCheck:
        """
        Decide whether *user_id* may move the project to *target_phase*.

        Order: project exists, target adjacent (or equal), permission,
        same-phase no-op, current-phase validation, approval quorum.
        """
        project = db.session.get(SpecificationProject, project_id)
        if project is None:
            return TransitionCheck(False, "Project not found", ErrorKind.NOT_FOUND)

        target = self._phase(target_phase)
        current = Phase(project.current_phase)
        current_idx = phase_index(current)
        target_idx = phase_index(target)

        if target_idx not in (current_idx, current_idx + 1):
            return TransitionCheck(
                False, "Invalid phase transition. Phases must be sequential",
                ErrorKind.TRANSITION_NOT_ALLOWED,
            )

        if not self.can_initiate_transition(project, user_id):
            return TransitionCheck(False, "Insufficient permissions", ErrorKind.INSUFFICIENT_PERMISSIONS)

        if target_idx == current_idx:
            return TransitionCheck(True)

        validation = self.validate_phase_completion(project_id, current)
        if not validation.is_valid:
            reason = f"Current phase validation failed: {validation.errors[0]}"
            if len(validation.errors) > 1:
                reason += f" (+{len(validation.errors) - 1} more)"
            return TransitionCheck(False, reason, ErrorKind.TRANSITION_NOT_ALLOWED)

        required = required_approvals(current)
        found = count_live_approvals(project_id, current.value, self.clock())
        if found < required:
            return TransitionCheck(
                False, f"Insufficient approvals. Required: {required}, Found: {found}",
                ErrorKind.TRANSITION_NOT_ALLOWED,
            )

        return TransitionCheck(True)

    # ── 3. Transition execution ──────────────────────────────────────────

    def transition_phase(
        self,
        project_id: str,
        target_phase,
        user_id: str,
        *,
        approval_comment: str | None = None,
    ) -> WorkflowState:
        """
        Move the project to *target_phase* and return the fresh state.

        Raises:
            WorkflowError: NOT_FOUND, INSUFFICIENT_PERMISSIONS or
                TRANSITION_NOT_ALLOWED, tagged with the target phase.
        """
        target = self._phase(target_phase)
        check = self.can_transition_to_phase(project_id, target, user_id)
        if not check.can_transition:
            logger.info(
                "Transition refused: %s", check.reason,
                extra={"project_id": project_id, "target_phase": target.value,
                       "user_id": user_id, "code": _CODE_BY_KIND[check.kind]},
            )
            raise WorkflowError(check.kind, check.reason, code=_CODE_BY_KIND[check.kind], phase=target)

        project = self._get_project(project_id)
        previous = project.current_phase
        if previous == target.value:
            return self.get_workflow_state(project_id)

        now = self.clock()
        try:
            # Compare-and-set so two concurrent transitions cannot both apply.
            result = db.session.execute(
                update(SpecificationProject)
                .where(
                    SpecificationProject.id == project_id,
                    SpecificationProject.current_phase == previous,
                )
                .values(current_phase=target.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                raise WorkflowError(
                    ErrorKind.TRANSITION_NOT_ALLOWED,
                    "Project phase changed concurrently; reload and retry",
                    code=E.PHASE_CHANGED, phase=target,
                )

            append_transition(project_id, previous, target.value, user_id, approval_comment,
                              created_at=now)

            document = SpecificationDocument.for_phase(project_id, target.value)
            if document is not None:
                document.status = DocumentStatus.DRAFT.value
                document.updated_at = now

            write_audit(
                user_id=user_id,
                action="phase_transition",
                resource="project",
                resource_id=project_id,
                project_id=project_id,
                details={
                    "fromPhase": previous,
                    "toPhase": target.value,
                    "approvalComment": approval_comment,
                },
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(
                "Phase transition rolled back",
                extra={"project_id": project_id, "target_phase": target.value},
            )
            raise

        logger.info(
            "Phase transition %s -> %s", previous, target.value,
            extra={"project_id": project_id, "phase": previous,
                   "target_phase": target.value, "user_id": user_id,
                   "event_type": "phase_transition"},
        )

        try:
            self.trigger_auto_ai_review(project_id, target, user_id)
        except Exception:
            logger.exception(
                "Automatic AI review after transition failed",
                extra={"project_id": project_id, "phase": target.value},
            )

        self._invalidate(project_id)
        return self.get_workflow_state(project_id)

    # ── 4. Document update ───────────────────────────────────────────────

    def update_document(
        self,
        project_id: str,
        phase,
        content: str,
        user_id: str,
        *,
        version: int | None = None,
    ) -> dict:
        """
        Replace the content of a phase document.

        The previous (version, content) is snapshotted and flushed before the
        row is overwritten; both land in one commit.  When *version* is given
        it must match the stored version.

        Returns:
            The updated document as a dict.

        Raises:
            WorkflowError: NOT_FOUND, INSUFFICIENT_PERMISSIONS or VERSION_CONFLICT.
        """
        phase = self._phase(phase)
        project = self._get_project(project_id)
        if not self.can_update_documents(project, user_id):
            raise WorkflowError(
                ErrorKind.INSUFFICIENT_PERMISSIONS,
                "Insufficient permissions to update document",
                code=E.INSUFFICIENT_PERMISSIONS, phase=phase,
            )

        document = SpecificationDocument.for_phase(project_id, phase.value)
        if document is None:
            raise WorkflowError(
                ErrorKind.NOT_FOUND, "Document not found", code=E.DOCUMENT_NOT_FOUND, phase=phase,
            )

        previous_version = document.version
        if version is not None and version != previous_version:
            raise WorkflowError(
                ErrorKind.VERSION_CONFLICT,
                f"Document has changed (expected version {version}, found {previous_version})",
                code=E.VERSION_CONFLICT, phase=phase,
                details={"expected_version": version, "current_version": previous_version},
            )

        now = self.clock()
        new_version = previous_version + 1
        document_id = document.id
        try:
            db.session.add(DocumentVersion(
                document_id=document_id,
                version=previous_version,
                content=document.content,
                created_by=user_id,
                created_at=now,
            ))
            db.session.flush()

            result = db.session.execute(
                update(SpecificationDocument)
                .where(
                    SpecificationDocument.id == document_id,
                    SpecificationDocument.version == previous_version,
                )
                .values(
                    content=content,
                    version=new_version,
                    status=DocumentStatus.DRAFT.value,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.session.rollback()
                raise WorkflowError(
                    ErrorKind.VERSION_CONFLICT,
                    "Document was modified concurrently; reload and retry",
                    code=E.VERSION_CONFLICT, phase=phase,
                    details={"expected_version": previous_version},
                )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(
                "Document update rolled back",
                extra={"project_id": project_id, "phase": phase.value},
            )
            raise

        self._audit_best_effort(
            user_id=user_id,
            action="document_update",
            resource="document",
            resource_id=document_id,
            project_id=project_id,
            details={"phase": phase.value, "version": new_version},
        )
        self._invalidate(project_id)

        logger.info(
            "Document updated to v%d", new_version,
            extra={"project_id": project_id, "phase": phase.value,
                   "user_id": user_id, "version": new_version},
        )
        document = db.session.get(SpecificationDocument, document_id)
        return document.to_dict()

    # ── 5. Workflow state ────────────────────────────────────────────────

    def get_workflow_state(self, project_id: str) -> WorkflowState:
        """
        Cached projection of the project's workflow.

        A cache entry that fails to decode or has the wrong shape is treated
        as a miss.  ``can_progress`` is evaluated as the project owner.
        """
        cached = self.cache.get(project_id)
        if cached is not None:
            state = WorkflowState.from_dict(cached)
            if state is not None and state.project_id == project_id:
                return state
            logger.debug("Discarding malformed workflow cache entry", extra={"project_id": project_id})

        state = self._build_state(project_id)
        self.cache.set(project_id, state.to_dict())
        return state

    def _build_state(self, project_id: str) -> WorkflowState:
        project = self._get_project(project_id)
        now = self.clock()

        document_statuses = {doc.phase: doc.status for doc in project.documents}
        approvals = {
            phase.value: [a.to_dict() for a in live_approvals(project_id, phase.value, now)]
            for phase in PHASE_ORDER
        }
        upcoming = next_phase(project.current_phase)
        can_progress = (
            upcoming is not None
            and self.can_transition_to_phase(project_id, upcoming, project.owner_id).can_transition
        )

        return WorkflowState(
            project_id=project.id,
            current_phase=project.current_phase,
            phase_history=[t.to_dict() for t in list_transitions(project_id)],
            document_statuses=document_statuses,
            approvals=approvals,
            can_progress=can_progress,
            next_phase=upcoming.value if upcoming else None,
        )

    # ── 6. Approvals ─────────────────────────────────────────────────────

    def approve_phase(self, project_id: str, phase, user_id: str, comment: str | None = None) -> dict:
        """Record (or refresh) *user_id*'s approval of *phase*. Quorum is not checked here."""
        phase = self._phase(phase)
        self._get_project(project_id)

        try:
            approval = record_approval(
                project_id, phase.value, user_id,
                now=self.clock(), comment=comment, ttl_seconds=self.approval_ttl,
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Approval write failed", extra={"project_id": project_id, "phase": phase.value})
            raise
        payload = approval.to_dict()

        self._audit_best_effort(
            user_id=user_id,
            action="phase_approval",
            resource="project",
            resource_id=project_id,
            project_id=project_id,
            details={"phase": phase.value, "comment": comment, "approved": True},
        )
        self._invalidate(project_id)

        logger.info(
            "Phase approved", extra={"project_id": project_id, "phase": phase.value, "user_id": user_id},
        )
        return payload

    # ── 7. AI review ─────────────────────────────────────────────────────

    def trigger_auto_ai_review(self, project_id: str, phase, user_id: str) -> AIReviewResult | None:
        """
        Review the phase document and persist the result.

        Returns None when no reviewer is configured, the document is missing,
        or the reviewer fails; a failure is recorded as an unsuccessful audit
        entry.
        """
        if self.ai_reviewer is None:
            return None

        phase = self._phase(phase)
        document = SpecificationDocument.for_phase(project_id, phase.value)
        if document is None:
            return None

        try:
            review = self.ai_reviewer.review(document.content, map_phase_to_ai_phase(phase), project_id)
        except Exception as exc:
            logger.warning(
                "Automatic AI review failed: %s", exc,
                extra={"project_id": project_id, "phase": phase.value},
            )
            self._audit_best_effort(
                user_id=user_id,
                action="auto_ai_review",
                resource="project",
                resource_id=project_id,
                project_id=project_id,
                details={"phase": phase.value, "error": str(exc), "trigger": "phase_transition"},
                success=False,
            )
            return None

        try:
            record = AIReview(
                review_key=review.id,
                document_id=document.id,
                phase=phase.value,
                overall_score=review.overall_score,
                trigger="phase_transition",
                created_by=user_id,
            )
            record.suggestions_json = _dumps(review.suggestions)
            record.completeness_json = _dumps(review.completeness_check)
            record.quality_metrics_json = _dumps(review.quality_metrics)
            record.compliance_issues_json = _dumps(review.compliance_issues)
            db.session.add(record)
            db.session.flush()

            write_audit(
                user_id=user_id,
                action="auto_ai_review",
                resource="document",
                resource_id=document.id,
                project_id=project_id,
                details={
                    "phase": phase.value,
                    "projectId": project_id,
                    "overallScore": review.overall_score,
                    "suggestionsCount": len(review.suggestions),
                    "trigger": "phase_transition",
                },
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info(
            "Automatic AI review stored: score=%d", review.overall_score,
            extra={"project_id": project_id, "phase": phase.value, "event_type": "auto_ai_review"},
        )
        return review

    def get_phase_ai_validation(self, project_id: str, phase) -> dict:
        """
        AI-only verdict for a phase.

        Returns:
            {"available": bool, "is_valid": bool, "score": int | None, "issues": [str]}
        """
        if self.ai_reviewer is None:
            return {"available": False, "is_valid": True, "score": 100, "issues": []}

        validation = self.validate_phase_completion(project_id, phase)
        review = validation.ai_review
        if review is None:
            return {"available": False, "is_valid": True, "score": None, "issues": []}

        issues = [
            f"{s.get('title', 'Suggestion')}: {s.get('description', '')}"
            for s in review.suggestions
            if s.get("severity") in _BLOCKING_SUGGESTION_SEVERITIES
        ]
        issues += [
            f"{c.get('type', 'compliance')}: {c.get('description', '')}"
            for c in review.compliance_issues
            if c.get("severity") in _BLOCKING_COMPLIANCE_SEVERITIES
        ]
        score = review.overall_score
        return {
            "available": True,
            "is_valid": score >= self.ai_min_score and not issues,
            "score": score,
            "issues": issues,
        }


def _dumps(value) -> str:
    return json.dumps(value, default=str)


# ═════════════════════════════════════════════════════════════════════════════
# Factory
# ═════════════════════════════════════════════════════════════════════════════

def create_workflow_service(app_config, *, ai_reviewer=None, clock=None) -> SpecificationWorkflowService:
    """
    Build an engine from a Flask config mapping.

    An explicit *ai_reviewer* wins; otherwise one is constructed only when
    ``AI_REVIEW_ENABLED`` is set.  Unless ``AI_REVIEW_STUB_FALLBACK`` is on, a
    model whose provider has no API key fails every review, so validation
    reports AI as unavailable instead of scoring against the local stub.
    """
    if ai_reviewer is None and app_config.get("AI_REVIEW_ENABLED"):
        from specflow.ai.gateway import LLMGateway
        from specflow.ai.review import AIReviewGateway

        ai_reviewer = AIReviewGateway(
            LLMGateway(
                model=app_config.get("AI_REVIEW_MODEL", "gpt-4o-mini"),
                timeout=app_config.get("AI_REVIEW_TIMEOUT", 30.0),
                max_retries=app_config.get("AI_REVIEW_MAX_RETRIES", 3),
                stub_fallback=app_config.get("AI_REVIEW_STUB_FALLBACK", False),
            ),
            cache_ttl=app_config.get("AI_REVIEW_CACHE_TTL", 3600),
        )

    return SpecificationWorkflowService(
        cache=WorkflowCache(ttl=app_config.get("WORKFLOW_CACHE_TTL", 300)),
        ai_reviewer=ai_reviewer,
        clock=clock,
        approval_ttl=app_config.get("APPROVAL_TTL_SECONDS", APPROVAL_TTL_SECONDS),
        ai_min_score=app_config.get("AI_MIN_PASSING_SCORE", DEFAULT_AI_MIN_SCORE),
    )

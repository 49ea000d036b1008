"""
Shared pytest fixtures for the specflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB + cache reset (autouse)
    - clock: controllable UTC clock injected into the engine
    - service: workflow engine without AI, wired to ``clock``
    - docs: phase document builders that satisfy (or deliberately miss) the rules
    - make_project: project factory with optional initial contents
    - FakeReviewer: AI reviewer double returning a fixed result or raising
"""

from datetime import datetime, timedelta, timezone

import pytest

from specflow import create_app
from specflow.ai.review import AIReviewResult
from specflow.models import db as _db
from specflow.services import cache_service
from specflow.services.cache_service import WorkflowCache
from specflow.services.project_service import create_project
from specflow.services.workflow_engine import SpecificationWorkflowService


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cache_service.clear_all()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        cache_service.clear_all()


# ── Engine fixtures ──────────────────────────────────────────────────────


class FakeClock:
    """Callable clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


class FakeReviewer:
    """AI reviewer double: returns ``result`` or raises ``error``; records calls."""

    def __init__(self, result: AIReviewResult | None = None, error: Exception | None = None,
                 fail_for: tuple[str, ...] = ()):
        self.result = result
        self.error = error
        self.fail_for = fail_for
        self.calls = []

    def review(self, content, phase_hint, project_id=None):
        self.calls.append((phase_hint, project_id))
        if self.error is not None and (not self.fail_for or phase_hint in self.fail_for):
            raise self.error
        return self.result


def make_review(score=85, suggestions=(), compliance_issues=()) -> AIReviewResult:
    return AIReviewResult(
        overall_score=score,
        suggestions=list(suggestions),
        completeness_check={"score": score, "missingElements": [], "recommendations": []},
        quality_metrics={"clarity": score, "completeness": score, "consistency": score,
                         "testability": score, "traceability": score},
        compliance_issues=list(compliance_issues),
    )


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def service(clock):
    return SpecificationWorkflowService(cache=WorkflowCache(), clock=clock)


@pytest.fixture()
def ai_service(clock):
    """Factory: engine wired to a given reviewer."""
    def _make(reviewer):
        return SpecificationWorkflowService(cache=WorkflowCache(), ai_reviewer=reviewer, clock=clock)
    return _make


# ── Document builders ────────────────────────────────────────────────────


def _filler(n: int, stem: str = "detail") -> str:
    return " ".join(f"{stem}{i}" for i in range(n))


class SpecDocs:
    """Markdown documents for each phase."""

    @staticmethod
    def requirements(words: int = 220) -> str:
        return (
            "# Introduction\n\n"
            "This document captures the checkout requirements.\n\n"
            "## Requirements\n\n"
            "### Requirement 1\n\n"
            "**User Story:** As a shopper, I want to save my cart, so that I can finish later.\n\n"
            "1. WHEN the shopper adds an item THEN the system SHALL persist the cart.\n\n"
            + _filler(words)
        )

    @staticmethod
    def design(words: int = 520, *, sections=("Overview", "Architecture", "Components")) -> str:
        parts = [f"## {s}\n\nSection text.\n" for s in sections]
        return (
            "\n".join(parts)
            + "\n```mermaid\ngraph TD; A-->B\n```\n"
            + "The data model uses a relational database schema. "
            + "Each endpoint of the API is versioned.\n\n"
            + _filler(words)
        )

    @staticmethod
    def tasks(words: int = 320) -> str:
        return (
            "# Implementation Plan\n\n"
            "- [ ] 1. Set up the project skeleton\n"
            "  - [ ] 1.1 Create the cart table\n"
            "  _Requirements: 1.1, 1.2_\n\n"
            + _filler(words)
        )

    @staticmethod
    def implementation(words: int = 120) -> str:
        return "# Implementation Notes\n\n" + _filler(words)


@pytest.fixture()
def docs():
    return SpecDocs()


@pytest.fixture()
def make_project():
    """Factory: create a project; ``contents`` maps phase name to text."""
    def _make(owner_id="owner-1", name="Checkout revamp", **contents):
        initial = {phase.upper(): text for phase, text in contents.items()}
        return create_project(name, owner_id, initial_contents=initial)
    return _make


@pytest.fixture()
def fake_reviewer():
    return FakeReviewer


@pytest.fixture()
def review_factory():
    return make_review

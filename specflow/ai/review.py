"""
Specflow
AI Review Gateway.

Reviews a specification document for one phase and returns an
``AIReviewResult``.  Content is sanitised before it leaves the process,
responses are parsed leniently, and results are cached per
(phase, content hash) for an hour.

Usage:
    from specflow.ai.review import AIReviewGateway
    reviewer = AIReviewGateway(LLMGateway(model="gpt-4o-mini"))
    result = reviewer.review(content, "requirements", project_id)
"""

import hashlib
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from specflow.ai.gateway import AIServiceError, LLMGateway, to_service_error
from specflow.models.project import Phase
from specflow.services import cache_service

logger = logging.getLogger(__name__)

AI_PHASES = ("requirements", "design", "tasks")

_PHASE_TO_AI = {
    Phase.REQUIREMENTS: "requirements",
    Phase.DESIGN: "design",
    Phase.TASKS: "tasks",
    Phase.IMPLEMENTATION: "tasks",  # reviewed against the task rubric
}


def map_phase_to_ai_phase(phase) -> str:
    return _PHASE_TO_AI[Phase(phase)]


# ── Result type ──────────────────────────────────────────────────────────────

_DEFAULT_METRICS = ("clarity", "completeness", "consistency", "testability", "traceability")


@dataclass
class AIReviewResult:
    """Structured outcome of one AI review call."""
    overall_score: int
    suggestions: list = field(default_factory=list)
    completeness_check: dict = field(default_factory=dict)
    quality_metrics: dict = field(default_factory=dict)
    compliance_issues: list = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    generated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "overall_score": self.overall_score,
            "suggestions": self.suggestions,
            "completeness_check": self.completeness_check,
            "quality_metrics": self.quality_metrics,
            "compliance_issues": self.compliance_issues,
            "generated_at": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AIReviewResult":
        return cls(
            id=data["id"],
            overall_score=int(data["overall_score"]),
            suggestions=list(data.get("suggestions") or []),
            completeness_check=dict(data.get("completeness_check") or {}),
            quality_metrics=dict(data.get("quality_metrics") or {}),
            compliance_issues=list(data.get("compliance_issues") or []),
            generated_at=data.get("generated_at") or datetime.now(timezone.utc).isoformat(),
        )


# ── Sanitising ───────────────────────────────────────────────────────────────

_REDACTIONS = (
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN]"),
    (re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"), "[CARD]"),
    (re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"), "[IP]"),
    (re.compile(r"\b[A-Z0-9]{20,}\b"), "[TOKEN]"),
)


def sanitize_content(content: str) -> str:
    """Redact e-mail addresses, SSNs, card numbers, IPs and long tokens."""
    for pattern, replacement in _REDACTIONS:
        content = pattern.sub(replacement, content)
    return content


# ── Prompts ──────────────────────────────────────────────────────────────────

_RESPONSE_SCHEMA = """{
  "overallScore": number (0-100),
  "suggestions": [
    {"id": "unique-id", "type": "improvement|error|warning|enhancement",
     "severity": "low|medium|high|critical", "title": "Brief title",
     "description": "Detailed description", "reasoning": "Why it matters",
     "category": "structure|clarity|completeness|format|best_practice"}
  ],
  "completenessCheck": {"score": number, "missingElements": [], "recommendations": []},
  "qualityMetrics": {"clarity": number, "completeness": number, "consistency": number,
                     "testability": number, "traceability": number},
  "complianceIssues": [
    {"id": "unique-id", "type": "ears_format|user_story|acceptance_criteria|structure",
     "severity": "low|medium|high", "description": "Issue description",
     "suggestion": "How to fix"}
  ]
}"""

_FOCUS = {
    "requirements": (
        "EARS format compliance (WHEN/IF/THEN structure)",
        "User story completeness (As a/I want/So that)",
        "Acceptance criteria clarity and testability",
        "Missing edge cases or error conditions",
        "Requirement traceability and numbering",
    ),
    "design": (
        "Architecture clarity and scalability",
        "Component interface definitions",
        "Data model completeness",
        "Error handling strategy",
        "Testing approach coverage",
        "Security considerations",
    ),
    "tasks": (
        "Task clarity and actionability",
        "Proper breakdown and sequencing",
        "Dependencies and prerequisites",
        "Test coverage requirements",
        "Missing integration points",
    ),
}

_SYSTEM_PROMPT = (
    "You review software specification documents. "
    "Respond with a single JSON object and nothing else."
)


def build_review_prompt(ai_phase: str, content: str) -> str:
    focus = "\n".join(f"{i}. {item}" for i, item in enumerate(_FOCUS[ai_phase], 1))
    return (
        f"Review the following {ai_phase} document for a specification-based "
        f"development project. Respond with JSON of this structure:\n\n"
        f"{_RESPONSE_SCHEMA}\n\nFocus on:\n{focus}\n\nDocument:\n{content}\n"
    )


# ── Parsing ──────────────────────────────────────────────────────────────────

def _parse_response(content: str) -> dict | None:
    cleaned = (content or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _clamp_score(value) -> int:
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return 0


def parse_review(content: str) -> AIReviewResult:
    """
    Turn a raw model response into an AIReviewResult.

    An unparseable response yields a neutral score of 50 with a single
    medium-severity suggestion describing the parse failure.
    """
    parsed = _parse_response(content)
    if parsed is None:
        logger.warning("AI review response was not valid JSON")
        return AIReviewResult(
            overall_score=50,
            suggestions=[{
                "id": str(uuid.uuid4()),
                "type": "warning",
                "severity": "medium",
                "title": "AI Response Parsing Failed",
                "description": "The AI service returned an invalid response format.",
                "reasoning": "Technical issue with AI service response parsing",
                "category": "structure",
            }],
            completeness_check={"score": 50, "missingElements": [], "recommendations": []},
            quality_metrics={name: 50 for name in _DEFAULT_METRICS},
        )

    suggestions = [s for s in parsed.get("suggestions") or [] if isinstance(s, dict)]
    issues = [i for i in parsed.get("complianceIssues") or [] if isinstance(i, dict)]
    return AIReviewResult(
        overall_score=_clamp_score(parsed.get("overallScore", 0)),
        suggestions=suggestions,
        completeness_check=parsed.get("completenessCheck")
        or {"score": 0, "missingElements": [], "recommendations": []},
        quality_metrics=parsed.get("qualityMetrics") or {name: 0 for name in _DEFAULT_METRICS},
        compliance_issues=issues,
    )


# ── Gateway ──────────────────────────────────────────────────────────────────

class AIReviewGateway:
    """
    Phase-aware document reviewer on top of LLMGateway.

    ``review`` either returns an AIReviewResult or raises AIServiceError.
    """

    def __init__(self, llm: LLMGateway | None = None, *, cache_ttl: int = cache_service.AI_REVIEW_TTL,
                 cache_backend=None):
        self.llm = llm or LLMGateway()
        self.cache_ttl = cache_ttl
        self.cache_backend = cache_backend

    @staticmethod
    def cache_key(ai_phase: str, content: str) -> str:
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        return cache_service.ai_review_key(ai_phase, digest)

    def review(self, content: str, phase_hint: str, project_id=None) -> AIReviewResult:
        if phase_hint not in AI_PHASES:
            raise ValueError(f"Unknown review phase: {phase_hint!r}")

        key = self.cache_key(phase_hint, content)
        cached = cache_service.get_cached(key, backend=self.cache_backend)
        if isinstance(cached, dict):
            try:
                return AIReviewResult.from_dict(cached)
            except (KeyError, TypeError, ValueError):
                logger.debug("Discarding malformed AI review cache entry %s", key)

        messages = [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": build_review_prompt(phase_hint, sanitize_content(content))},
        ]
        try:
            response = self.llm.chat(messages)
        except AIServiceError as exc:
            logger.warning(
                "AI review failed for %s: %s", phase_hint, exc.message,
                extra={"project_id": project_id, "ai_code": exc.code.value},
            )
            raise AIServiceError(
                f"Failed to review {phase_hint} specification", exc.code, exc.retryable,
            ) from exc
        except Exception as exc:
            raise to_service_error(exc, f"Failed to review {phase_hint} specification") from exc

        result = parse_review(response.get("content", ""))
        cache_service.set_cached(key, result.to_dict(), ttl=self.cache_ttl, backend=self.cache_backend)
        logger.info(
            "AI review complete: phase=%s score=%d", phase_hint, result.overall_score,
            extra={"project_id": project_id},
        )
        return result

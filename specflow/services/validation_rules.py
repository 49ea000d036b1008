"""
Phase Validation Rule Set

Static, per-phase completion rules: required sections, minimum word count,
approval quorum and format validators.  Everything here is a pure function
of the document text.

Usage:
    from specflow.services.validation_rules import evaluate_static_rules

    result = evaluate_static_rules(Phase.REQUIREMENTS, content)
    # -> StaticEvaluation(errors=[...], warnings=[...], checks=[...])
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from specflow.models.project import PHASE_ORDER, Phase


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class FormatCheck:
    """Outcome of a phase-specific format validator."""
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class PhaseRule:
    """Completion rule for one phase."""
    phase: Phase
    required_sections: tuple[str, ...]
    minimum_word_count: int
    required_approvals: int
    missing_section_severity: Severity
    format_validator: Callable[[str], FormatCheck] | None = None
    format_checks: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "required_sections": list(self.required_sections),
            "minimum_word_count": self.minimum_word_count,
            "required_approvals": self.required_approvals,
            "missing_section_severity": self.missing_section_severity.value,
            "custom_validations": list(self.format_checks),
        }


@dataclass
class StaticEvaluation:
    """Errors, warnings and the pass/fail list of scored checks."""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    checks: list[tuple[str, bool]] = field(default_factory=list)

    @property
    def checks_passed(self) -> int:
        return sum(1 for _, ok in self.checks if ok)


# ═════════════════════════════════════════════════════════════════════════════
# Text helpers
# ═════════════════════════════════════════════════════════════════════════════

# Markdown punctuation that carries structure, not words.
_STRUCTURAL_PUNCTUATION = re.compile(r"[#*`>|_\[\]\-=~]+")


def count_words(content: str) -> int:
    """Whitespace-delimited word count after stripping structural punctuation."""
    return len(_STRUCTURAL_PUNCTUATION.sub(" ", content or "").split())


def has_section(content: str, section: str) -> bool:
    """Case-insensitive substring presence of a section name."""
    return section.lower() in (content or "").lower()


# ═════════════════════════════════════════════════════════════════════════════
# Format validators: phase-specific pattern checks
# ═════════════════════════════════════════════════════════════════════════════

_USER_STORY = re.compile(r"As an? .+?, I want .+?, so that .+", re.IGNORECASE)
_EARS = re.compile(r"\b(WHEN|IF)\b.+\bTHEN\b.+\bSHALL\b", re.IGNORECASE)
_NUMBERED_REQUIREMENT = re.compile(r"###\s+Requirement\s+\d+", re.IGNORECASE)

_ARCHITECTURE = re.compile(r"architecture|diagram|```mermaid", re.IGNORECASE)
_DATA_MODEL = re.compile(r"data model|database|schema", re.IGNORECASE)
_API_DESIGN = re.compile(r"\bapi\b|endpoint|interface", re.IGNORECASE)

_CHECKBOX = re.compile(r"- \[[ xX]\]")
_REQUIREMENT_REF = re.compile(r"_Requirements?: [\d., ]+_", re.IGNORECASE)
_NESTED_CHECKBOX = re.compile(r"^[ \t]+- \[[ xX]\]", re.MULTILINE)
_NUMBERED_SUBTASK = re.compile(r"\d+\.\d+")


def validate_requirements_format(content: str) -> FormatCheck:
    """User stories are mandatory; EARS criteria and numbered headings are recommended."""
    errors = []
    warnings = []

    if not _USER_STORY.search(content):
        errors.append(
            'No user stories found. Use format: "As a [role], I want [feature], so that [benefit]"'
        )
    if not _EARS.search(content):
        warnings.append(
            'Consider using EARS format for acceptance criteria: '
            '"WHEN [event] THEN [system] SHALL [response]"'
        )
    if not _NUMBERED_REQUIREMENT.search(content):
        warnings.append("Consider numbering requirements for better traceability")

    return FormatCheck(errors=tuple(errors), warnings=tuple(warnings))


def validate_design_format(content: str) -> FormatCheck:
    """All design checks are recommendations."""
    warnings = []
    if not _ARCHITECTURE.search(content):
        warnings.append("Consider adding architecture diagrams or detailed architecture descriptions")
    if not _DATA_MODEL.search(content):
        warnings.append("Consider adding data model descriptions")
    if not _API_DESIGN.search(content):
        warnings.append("Consider adding API design specifications")
    return FormatCheck(warnings=tuple(warnings))


def validate_tasks_format(content: str) -> FormatCheck:
    """Checkbox markers are mandatory; requirement references and nesting are recommended."""
    errors = []
    warnings = []

    if not _CHECKBOX.search(content):
        errors.append('No task checkboxes found. Use format: "- [ ] Task description"')
    if not _REQUIREMENT_REF.search(content):
        warnings.append('Consider adding requirement references to tasks: "_Requirements: 1.1, 1.2_"')
    if not (_NESTED_CHECKBOX.search(content) or _NUMBERED_SUBTASK.search(content)):
        warnings.append("Consider organizing tasks in a hierarchical structure")

    return FormatCheck(errors=tuple(errors), warnings=tuple(warnings))


# ═════════════════════════════════════════════════════════════════════════════
# Rule table (read-only)
# ═════════════════════════════════════════════════════════════════════════════

# Missing sections block REQUIREMENTS and IMPLEMENTATION but only warn for
# DESIGN and TASKS.
VALIDATION_RULES: MappingProxyType[Phase, PhaseRule] = MappingProxyType({
    Phase.REQUIREMENTS: PhaseRule(
        phase=Phase.REQUIREMENTS,
        required_sections=("Introduction", "Requirements"),
        minimum_word_count=200,
        required_approvals=1,
        missing_section_severity=Severity.ERROR,
        format_validator=validate_requirements_format,
        format_checks=(
            "User stories format (As a [role], I want [feature], so that [benefit])",
            "EARS format for acceptance criteria (WHEN/IF/THEN/SHALL)",
            "Numbered requirements for traceability",
        ),
    ),
    Phase.DESIGN: PhaseRule(
        phase=Phase.DESIGN,
        required_sections=("Overview", "Architecture", "Components"),
        minimum_word_count=500,
        required_approvals=1,
        missing_section_severity=Severity.WARNING,
        format_validator=validate_design_format,
        format_checks=(
            "Architecture diagrams or detailed descriptions",
            "Data model specifications",
            "API design documentation",
        ),
    ),
    Phase.TASKS: PhaseRule(
        phase=Phase.TASKS,
        required_sections=("Implementation Plan",),
        minimum_word_count=300,
        required_approvals=1,
        missing_section_severity=Severity.WARNING,
        format_validator=validate_tasks_format,
        format_checks=(
            "Task checkboxes format (- [ ] Task description)",
            "Requirement references (_Requirements: 1.1, 1.2_)",
            "Hierarchical task organization",
        ),
    ),
    Phase.IMPLEMENTATION: PhaseRule(
        phase=Phase.IMPLEMENTATION,
        required_sections=("Implementation Notes",),
        minimum_word_count=100,
        required_approvals=0,
        missing_section_severity=Severity.ERROR,
    ),
})


def rule_for(phase) -> PhaseRule:
    return VALIDATION_RULES[Phase(phase)]


def required_approvals(phase) -> int:
    return rule_for(phase).required_approvals


def describe_validation_rules() -> dict:
    """Serialisable view of the rule table, keyed by phase name."""
    return {phase.value: VALIDATION_RULES[phase].to_dict() for phase in PHASE_ORDER}


# ═════════════════════════════════════════════════════════════════════════════
# Evaluation
# ═════════════════════════════════════════════════════════════════════════════

def evaluate_static_rules(phase, content: str) -> StaticEvaluation:
    """
    Run section, word-count and format checks for *phase*.

    Every missing section is reported on its own line, routed to errors or
    warnings by the phase's ``missing_section_severity``.  Each section, the
    word count and (when the phase has one) the format validator contribute
    one scored check.
    """
    rule = rule_for(phase)
    content = content or ""
    result = StaticEvaluation()

    # 1. Required sections
    for section in rule.required_sections:
        present = has_section(content, section)
        if not present:
            message = f"Missing required section: {section}"
            if rule.missing_section_severity == Severity.ERROR:
                result.errors.append(message)
            else:
                result.warnings.append(message)
        result.checks.append((f"section:{section}", present))

    # 2. Word count
    word_count = count_words(content)
    long_enough = word_count >= rule.minimum_word_count
    if not long_enough:
        result.errors.append(
            f"Document too short. Minimum {rule.minimum_word_count} words required, "
            f"found {word_count}"
        )
    result.checks.append(("word_count", long_enough))

    # 3. Format validator
    if rule.format_validator is not None:
        fmt = rule.format_validator(content)
        result.errors.extend(fmt.errors)
        result.warnings.extend(fmt.warnings)
        result.checks.append(("format", fmt.passed))

    return result

"""Immutable value objects for the agent choreography core.

All value objects are frozen dataclasses.  They are created once (a request
at ingress, a bid during routing, an assessment per iteration) and never
mutated afterwards; each new observation produces a new instance.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .enums import (
    CompletionReason,
    HandleStatus,
    InsightCategory,
    Intent,
    RevisionStrategy,
    RiskCategory,
    SecurityAction,
    Severity,
)


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value}")


# ---------------------------------------------------------------------------
# Request / Bid
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConversationTurn:
    """One prior turn of the conversation."""

    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class Request:
    """Immutable user request: content, prior history and caller identity."""

    content: str
    history: tuple[ConversationTurn, ...] = ()
    identity: str = "anonymous"
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    def recent_history(self, turns: int) -> tuple[ConversationTurn, ...]:
        """Return the last *turns* entries of the history."""
        if turns <= 0:
            return ()
        return self.history[-turns:]


@dataclass(frozen=True)
class Bid:
    """An agent's self-reported confidence that it should handle a request."""

    agent_id: str
    confidence: float
    reasoning: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_unit_interval("confidence", self.confidence)

    @property
    def failed(self) -> bool:
        """True when the bid is a substitute for a failed backend call."""
        return bool(self.metadata.get("llm_error", False))


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def score_label(score: float) -> str:
    """Human-readable badge for a [0, 1] quality score."""
    if score >= 0.9:
        return "Excellent"
    if score >= 0.7:
        return "Good"
    if score >= 0.5:
        return "Acceptable"
    if score >= 0.3:
        return "Needs work"
    return "Poor"


@dataclass(frozen=True)
class QualityAssessment:
    """Calibrated evaluation of one artifact.

    ``scores`` holds the calibrated per-dimension values; ``raw_scores`` keeps
    what the backend (or heuristic) originally produced so calibration can
    be audited.
    """

    scores: Mapping[str, float]
    confidence: float
    needs_revision: bool
    actions: tuple[str, ...] = ()
    feedback: str = ""
    raw_scores: Mapping[str, float] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_unit_interval("confidence", self.confidence)
        for name, value in self.scores.items():
            _check_unit_interval(f"score '{name}'", value)

    @property
    def label(self) -> str:
        return score_label(self.confidence)

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.get("llm_error", False))


# ---------------------------------------------------------------------------
# Metacognition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RootCauseAnalysis:
    """Diagnosis of why an artifact scored low, plus what to do about it."""

    root_cause: str
    will_revision_help: bool
    strategy: RevisionStrategy
    action_plan: tuple[str, ...] = ()
    pattern_recommendations: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyContext:
    """Inputs to the trend-based strategy recommender."""

    previous_attempts: int
    confidence_trend: tuple[float, ...]
    time_remaining: float
    iteration_limit: int


@dataclass(frozen=True)
class EffectivenessPrediction:
    """Whether a proposed change is expected to improve quality."""

    effective: bool
    confidence: float
    reasoning: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SynthesisPlan:
    """Creative combination of retrieved patterns."""

    base_pattern: str
    borrowed_elements: tuple[str, ...] = ()
    original_additions: tuple[str, ...] = ()
    rationale: str = ""

    def render(self) -> str:
        lines = [f"Base pattern: {self.base_pattern}"]
        if self.borrowed_elements:
            lines.append("Borrow: " + "; ".join(self.borrowed_elements))
        if self.original_additions:
            lines.append("Add (original): " + "; ".join(self.original_additions))
        if self.rationale:
            lines.append(f"Rationale: {self.rationale}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Learning
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkflowOutcome:
    """Measured result of one completed workflow."""

    confidence: float
    duration_seconds: float
    iterations: int

    def __post_init__(self) -> None:
        _check_unit_interval("confidence", self.confidence)


@dataclass(frozen=True)
class MemoryRecord:
    """A remembered workflow outcome used for retrieval."""

    domain: str
    context: str
    approach: str
    outcome: WorkflowOutcome
    patterns_used: frozenset[str] = frozenset()
    what_worked: tuple[str, ...] = ()
    what_did_not_work: tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)

    @property
    def time_saved(self) -> float | None:
        """Wall-clock time of a first-try success, else ``None``."""
        if self.outcome.iterations == 1:
            return self.outcome.duration_seconds
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "context": self.context,
            "approach": self.approach,
            "outcome": {
                "confidence": self.outcome.confidence,
                "duration_seconds": self.outcome.duration_seconds,
                "iterations": self.outcome.iterations,
            },
            "patterns_used": sorted(self.patterns_used),
            "what_worked": list(self.what_worked),
            "what_did_not_work": list(self.what_did_not_work),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MemoryRecord:
        return cls(
            domain=data["domain"],
            context=data.get("context", ""),
            approach=data.get("approach", ""),
            outcome=WorkflowOutcome(**data["outcome"]),
            patterns_used=frozenset(data.get("patterns_used", ())),
            what_worked=tuple(data.get("what_worked", ())),
            what_did_not_work=tuple(data.get("what_did_not_work", ())),
            timestamp=data.get("timestamp", time.time()),
        )


@dataclass(frozen=True)
class FailureRecord:
    """A remembered failed approach."""

    domain: str
    approach: str
    reason: str
    timestamp: float = field(default_factory=time.time)

    def render(self) -> str:
        return f"{self.approach}: {self.reason}"


@dataclass(frozen=True)
class OutcomePrediction:
    """Expected confidence of an approach, based on similar past workflows."""

    expected_confidence: float
    reasoning: str
    sample_size: int = 0


# ---------------------------------------------------------------------------
# Insight board
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Insight:
    """A lesson one agent published for the others.

    ``usage_count`` and ``success_rate`` are updated by the board each time
    another agent reports having used the insight.
    """

    agent_id: str
    category: InsightCategory
    domain: str
    text: str
    confidence: float
    tags: frozenset[str] = frozenset()
    evidence: tuple[str, ...] = ()
    usage_count: int = 0
    success_rate: float = 1.0
    insight_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        _check_unit_interval("confidence", self.confidence)
        _check_unit_interval("success_rate", self.success_rate)

    def render(self) -> str:
        return f"{self.agent_id} ({self.category.value}): {self.text}"


# ---------------------------------------------------------------------------
# Pattern library
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DesignPattern:
    """A curated, reusable solution shape."""

    pattern_id: str
    name: str
    category: str
    description: str
    when_to_use: tuple[str, ...] = ()
    advantages: tuple[str, ...] = ()
    related_patterns: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class PatternRecommendation:
    """A pattern scored against a request context."""

    pattern: DesignPattern
    relevance: float
    success_probability: float

    @property
    def score(self) -> float:
        return self.relevance * self.success_probability

    def render(self) -> str:
        return (
            f"{self.pattern.name} ({self.pattern.category}): "
            f"{self.pattern.description}"
        )


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Risk:
    """One detected risk."""

    category: RiskCategory
    severity: Severity
    evidence: str = ""
    confidence: float = 0.8
    layer: str = "pattern"  # "pattern" | "semantic" | "intent"

    def __post_init__(self) -> None:
        _check_unit_interval("confidence", self.confidence)


@dataclass(frozen=True)
class IntentAssessment:
    """Intent classification of a request in its conversational context."""

    intent: Intent
    confidence: float
    reasoning: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SecurityAssessment:
    """Union of all security layers for one request."""

    risks: tuple[Risk, ...]
    safe: bool
    recommended_action: SecurityAction
    severity: Severity = Severity.NONE  # effective, after trust escalation
    intent: Intent = Intent.GENUINE
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def highest_raw_severity(self) -> Severity:
        if not self.risks:
            return Severity.NONE
        return max((r.severity for r in self.risks), key=lambda s: s.rank)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkflowResult:
    """Output of one agent's build workflow."""

    agent_id: str
    artifact: str
    confidence: float
    iterations: int
    completion_reason: CompletionReason
    assessment: QualityAssessment | None = None
    confidence_history: tuple[float, ...] = ()
    reasoning_trace: tuple[str, ...] = ()
    patterns_used: tuple[str, ...] = ()


@dataclass(frozen=True)
class HandleResult:
    """The single value returned to the transport layer."""

    artifact: str
    confidence: float
    agent: str
    status: HandleStatus = HandleStatus.COMPLETED
    metadata: Mapping[str, Any] = field(default_factory=dict)

"""Domain enumerations for the agent choreography core.

These enums capture the fixed vocabularies used across the domain layer:
quality standards, workflow stages and completion reasons, revision
strategies, security categories, severities and actions, and request intents.
Every decision a backend produces is coerced into one of these before use.
"""

from enum import Enum


class QualityStandard(Enum):
    """Rubric family an artifact is evaluated against."""

    CODE = "code_quality"
    RESEARCH = "research_quality"
    CONVERSATION = "conversation_quality"


class WorkflowStage(Enum):
    """States of the iterative build state machine."""

    REASONING = "reasoning"
    KNOWLEDGE_RETRIEVAL = "knowledge_retrieval"
    SYNTHESIS = "synthesis"
    GENERATION = "generation"
    EVALUATION = "evaluation"
    REVISION = "revision"
    COMPLETE = "complete"


class CompletionReason(Enum):
    """Why a build workflow reached ``COMPLETE``."""

    QUALITY_MET = "quality_met"
    MAX_ITERATIONS = "max_iterations"  # forced completion
    EVALUATION_FAILURES = "evaluation_failures"
    STRATEGY_ABORT = "strategy_abort"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    CANCELLED = "cancelled"


class RevisionStrategy(Enum):
    """Strategy chosen by root-cause analysis."""

    TARGETED_REVISION = "TARGETED_REVISION"
    CHANGE_APPROACH = "CHANGE_APPROACH"
    ABORT = "ABORT"


class StrategyRecommendation(Enum):
    """Outcome of the trend-based strategy recommender."""

    CONTINUE = "CONTINUE"
    CHANGE_APPROACH = "CHANGE_APPROACH"
    ABORT = "ABORT"


class RiskCategory(Enum):
    """Classes of adversarial input."""

    JAILBREAK = "jailbreak"
    SOCIAL_ENGINEERING = "social_engineering"
    PROMPT_INJECTION = "prompt_injection"
    DATA_EXFILTRATION = "data_exfiltration"
    PRIVILEGE_ESCALATION = "privilege_escalation"


class Severity(Enum):
    """Ordered risk severity."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def escalate(self) -> "Severity":
        """Return the next severity level up (``CRITICAL`` stays ``CRITICAL``)."""
        return _SEVERITY_ORDER[min(self.rank + 1, len(_SEVERITY_ORDER) - 1)]


_SEVERITY_ORDER = (
    Severity.NONE,
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
)


class SecurityAction(Enum):
    """Recommended handling of a request after security assessment."""

    ALLOW = "ALLOW"
    WARN = "WARN"
    BLOCK = "BLOCK"


class Intent(Enum):
    """Apparent motivation behind a request."""

    GENUINE = "GENUINE"
    PLAYFUL = "PLAYFUL"
    TRICKY = "TRICKY"
    MALICIOUS = "MALICIOUS"


class HandleStatus(Enum):
    """Terminal outcome of ``Orchestrator.handle``."""

    COMPLETED = "completed"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"
    CANCELLED = "cancelled"


class InsightCategory(Enum):
    """Kind of lesson an agent shares on the insight board."""

    PATTERN = "pattern"
    PITFALL = "pitfall"
    TECHNIQUE = "technique"
    BEST_PRACTICE = "best_practice"

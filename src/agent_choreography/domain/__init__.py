"""Domain layer for the agent choreography core.

Re-exports all public domain types so that consumers can write::

    from agent_choreography.domain import Request, Bid, QualityAssessment
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    CompletionReason,
    HandleStatus,
    InsightCategory,
    Intent,
    QualityStandard,
    RevisionStrategy,
    RiskCategory,
    SecurityAction,
    Severity,
    StrategyRecommendation,
    WorkflowStage,
)

# -- Value Objects ------------------------------------------------------------
from .values import (
    Bid,
    ConversationTurn,
    DesignPattern,
    EffectivenessPrediction,
    FailureRecord,
    HandleResult,
    Insight,
    IntentAssessment,
    MemoryRecord,
    OutcomePrediction,
    PatternRecommendation,
    QualityAssessment,
    Request,
    Risk,
    RootCauseAnalysis,
    SecurityAssessment,
    StrategyContext,
    SynthesisPlan,
    WorkflowOutcome,
    WorkflowResult,
    score_label,
)

# -- Entities -----------------------------------------------------------------
from .entities import TrustContext

# -- Domain Events ------------------------------------------------------------
from .events import (
    DomainEvent,
    RequestHandled,
    RequestRouted,
    SecurityAssessed,
    WorkflowCompleted,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    BackendFailure,
    BackendUnavailable,
    ChoreographyError,
    ParseFailure,
    SecurityBlock,
    WorkflowCancelled,
)

__all__ = [
    # enums
    "CompletionReason",
    "HandleStatus",
    "InsightCategory",
    "Intent",
    "QualityStandard",
    "RevisionStrategy",
    "RiskCategory",
    "SecurityAction",
    "Severity",
    "StrategyRecommendation",
    "WorkflowStage",
    # values
    "Bid",
    "ConversationTurn",
    "DesignPattern",
    "EffectivenessPrediction",
    "FailureRecord",
    "HandleResult",
    "Insight",
    "IntentAssessment",
    "MemoryRecord",
    "OutcomePrediction",
    "PatternRecommendation",
    "QualityAssessment",
    "Request",
    "Risk",
    "RootCauseAnalysis",
    "SecurityAssessment",
    "StrategyContext",
    "SynthesisPlan",
    "WorkflowOutcome",
    "WorkflowResult",
    "score_label",
    # entities
    "TrustContext",
    # events
    "DomainEvent",
    "RequestHandled",
    "RequestRouted",
    "SecurityAssessed",
    "WorkflowCompleted",
    # exceptions
    "BackendFailure",
    "BackendUnavailable",
    "ChoreographyError",
    "ParseFailure",
    "SecurityBlock",
    "WorkflowCancelled",
]

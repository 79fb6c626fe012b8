"""Infrastructure layer for the agent choreography core.

Re-exports the public API surface for convenience::

    from agent_choreography.infrastructure import (
        EventBus, EventStore, LearningCache, TrustStore, PatternLibrary,
        InsightBoard, PerformanceTracker,
        BackendConfig, WorkflowConfig, load_config_from_json,
    )
"""

from agent_choreography.infrastructure.config import (
    BackendConfig,
    EvaluatorConfig,
    LearningConfig,
    RouterConfig,
    SecurityConfig,
    WorkflowConfig,
    load_config_from_json,
)
from agent_choreography.infrastructure.event_bus import EventBus, EventStore
from agent_choreography.infrastructure.insight_board import InsightBoard
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import (
    DEFAULT_PATTERNS,
    PatternLibrary,
)
from agent_choreography.infrastructure.performance import OperationMetric, PerformanceTracker
from agent_choreography.infrastructure.similarity import (
    jaccard_similarity,
    normalize_text,
)
from agent_choreography.infrastructure.trust_store import TrustStore

__all__ = [
    "BackendConfig",
    "DEFAULT_PATTERNS",
    "EvaluatorConfig",
    "EventBus",
    "EventStore",
    "InsightBoard",
    "LearningCache",
    "LearningConfig",
    "OperationMetric",
    "PatternLibrary",
    "PerformanceTracker",
    "RouterConfig",
    "SecurityConfig",
    "TrustStore",
    "WorkflowConfig",
    "jaccard_similarity",
    "load_config_from_json",
    "normalize_text",
]

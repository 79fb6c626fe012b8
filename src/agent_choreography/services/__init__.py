"""Backend-driven services used by the router and the build workflow."""

from agent_choreography.services.evaluation import (
    DIMENSIONS,
    QUALITY_STANDARDS,
    CalibratedEvaluator,
    EvaluationOutput,
    coerce_standard,
)
from agent_choreography.services.generation import ArtifactGenerator, SynthesisOutput
from agent_choreography.services.metacognition import MetacognitionService, coerce_strategy
from agent_choreography.services.routing import AgentRouter, BiddingAgent, RoutingDecision
from agent_choreography.services.security import (
    THREAT_PATTERNS,
    SecurityPipeline,
    ThreatPattern,
    scan_patterns,
)

__all__ = [
    "AgentRouter",
    "ArtifactGenerator",
    "BiddingAgent",
    "CalibratedEvaluator",
    "DIMENSIONS",
    "EvaluationOutput",
    "MetacognitionService",
    "QUALITY_STANDARDS",
    "RoutingDecision",
    "SecurityPipeline",
    "SynthesisOutput",
    "THREAT_PATTERNS",
    "ThreatPattern",
    "coerce_standard",
    "coerce_strategy",
    "scan_patterns",
]

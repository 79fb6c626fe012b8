"""Shared fixtures for the agent choreography test suite."""

from __future__ import annotations

from typing import Any

import pytest

from agent_choreography.infrastructure.config import LearningConfig
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import PatternLibrary
from agent_choreography.infrastructure.trust_store import TrustStore
from agent_choreography.services.evaluation import EvaluationOutput
from agent_choreography.services.metacognition import EffectivenessOutput, RootCauseOutput
from agent_choreography.services.security import IntentOutput, RiskClassificationOutput

# ---------------------------------------------------------------------------
# Structured-output builders
# ---------------------------------------------------------------------------


def _evaluation(score: float, feedback: str = "") -> EvaluationOutput:
    return EvaluationOutput(
        functionality=score,
        structural_quality=score,
        completeness=score,
        usability=score,
        feedback=feedback or f"uniform {score}",
        improvements=["Tighten the layout"] if score < 0.8 else [],
    )


@pytest.fixture
def make_evaluation() -> Any:
    """Factory: uniform EvaluationOutput with every dimension at *score*."""
    return _evaluation


@pytest.fixture
def good_evaluation() -> EvaluationOutput:
    return _evaluation(0.9, "Complete and working")


@pytest.fixture
def poor_evaluation() -> EvaluationOutput:
    return _evaluation(0.1, "Barely started")


@pytest.fixture
def targeted_root_cause() -> RootCauseOutput:
    return RootCauseOutput(
        root_cause="Charts are missing axis labels",
        will_revision_help=True,
        strategy="TARGETED_REVISION",
        action_plan=["Add axis labels", "Add a legend"],
    )


@pytest.fixture
def effective_change() -> EffectivenessOutput:
    return EffectivenessOutput(effective=True, confidence=0.8, reasoning="Specific fix")


@pytest.fixture
def benign_security() -> dict[str, list[Any]]:
    """Schema responses for a clean pass through the security backend layers."""
    return {
        "RiskClassificationOutput": [RiskClassificationOutput(risks=[], reasoning="benign")],
        "IntentOutput": [IntentOutput(intent="GENUINE", confidence=0.9, reasoning="help request")],
    }


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def learning_cache() -> LearningCache:
    return LearningCache(LearningConfig())


@pytest.fixture
def trust_store() -> TrustStore:
    return TrustStore()


@pytest.fixture
def pattern_library() -> PatternLibrary:
    return PatternLibrary()

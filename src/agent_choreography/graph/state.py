"""LangGraph state definition for the iterative build workflow.

Defines ``BuildState``, a ``TypedDict`` that flows through the LangGraph
``StateGraph``.  Append-only channels use ``Annotated[list, operator.add]``
so that each node can emit new items without overwriting previous entries.

One ``BuildState`` is owned by exactly one in-flight workflow; the only
shared objects it references are the learning cache and pattern library,
which are themselves thread-safe.

Note: We intentionally do NOT use ``from __future__ import annotations`` because
LangGraph needs to resolve type hints at runtime via ``get_type_hints()``.
"""

import operator
import threading
from typing import Annotated, Any, TypedDict

from agent_choreography.domain.values import (
    PatternRecommendation,
    QualityAssessment,
)
from agent_choreography.infrastructure.insight_board import InsightBoard
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import PatternLibrary
from agent_choreography.services.evaluation import CalibratedEvaluator
from agent_choreography.services.generation import ArtifactGenerator
from agent_choreography.services.metacognition import MetacognitionService


class BuildState(TypedDict, total=False):
    """Full state schema for the build workflow graph.

    Fields are grouped by purpose:

    - **Request**: what is being built and by whom.
    - **Loop control**: iteration bound, confidence floor, time budget.
    - **Artifact**: current and previous artifact, never dropped silently.
    - **Evaluation**: latest calibrated assessment.
    - **Knowledge**: retrieved best practices, pitfalls, patterns, plan.
    - **Revision**: diagnosed feedback and chosen strategy.
    - **Injected services**: evaluator, strategist, generator, stores.
    - **Accumulation channels**: append-only lists (via ``operator.add``).
      ``pending_failures`` holds ``(approach, reason)`` pairs rejected by
      revision; the owning agent writes them to the learning cache only
      when the run finishes without being cancelled.
    """

    # -- Request
    request: str
    agent_id: str
    domain: str
    quality_standard: str

    # -- Loop control
    iteration_count: int
    max_iterations: int
    confidence_floor: float
    max_evaluation_failures: int
    knowledge_limit: int
    started_at: float
    time_budget_seconds: float
    completion_reason: str
    cancel_event: threading.Event | None

    # -- Artifact
    generated_artifact: str
    previous_artifact: str
    backend_unavailable: bool

    # -- Evaluation
    assessment: QualityAssessment | None
    quality_scores: dict[str, float]
    confidence: float
    needs_revision: bool
    evaluation_failures: int

    # -- Knowledge
    knowledge_context: list[str]
    patterns: list[PatternRecommendation]
    insights_used: list[str]
    synthesis_plan: str

    # -- Revision
    revision_feedback: str
    revision_strategy: str

    # -- Injected services
    evaluator: CalibratedEvaluator
    strategist: MetacognitionService
    generator: ArtifactGenerator
    learning_cache: LearningCache | None
    pattern_library: PatternLibrary | None
    insight_board: InsightBoard | None

    # -- Accumulation channels
    events: Annotated[list, operator.add]
    reasoning_trace: Annotated[list, operator.add]
    confidence_history: Annotated[list, operator.add]
    stage_history: Annotated[list, operator.add]
    pending_failures: Annotated[list, operator.add]


def make_initial_state(**kwargs: Any) -> dict[str, Any]:
    """Return a state dict with every loop-control default filled in."""
    state: dict[str, Any] = {
        "iteration_count": 0,
        "max_iterations": 3,
        "confidence_floor": 0.8,
        "max_evaluation_failures": 3,
        "knowledge_limit": 3,
        "time_budget_seconds": 120.0,
        "completion_reason": "",
        "cancel_event": None,
        "generated_artifact": "",
        "previous_artifact": "",
        "backend_unavailable": False,
        "assessment": None,
        "quality_scores": {},
        "confidence": 0.0,
        "needs_revision": False,
        "evaluation_failures": 0,
        "knowledge_context": [],
        "patterns": [],
        "insights_used": [],
        "synthesis_plan": "",
        "revision_feedback": "",
        "revision_strategy": "",
        "learning_cache": None,
        "pattern_library": None,
        "insight_board": None,
        "events": [],
        "reasoning_trace": [],
        "confidence_history": [],
        "stage_history": [],
        "pending_failures": [],
    }
    state.update(kwargs)
    return state

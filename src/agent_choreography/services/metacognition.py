"""Metacognitive strategy service.

Turns evaluator feedback into a diagnosis and a plan instead of replaying
the same vague "improve it" instruction.  Three operations:

``analyze_root_cause``
    Backend call diagnosing why an artifact scored low and choosing a
    :class:`RevisionStrategy`.  The backend's strategy string is untrusted
    and coerced into the closed enum.
``recommend_strategy``
    Deterministic trend rule: abort when out of time or attempts, continue
    while confidence is strictly improving, change approach once it is flat
    or degrading.
``predict_effectiveness``
    Backend call estimating whether a proposed change will help.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

import numpy as np
from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from agent_choreography.domain.enums import RevisionStrategy, StrategyRecommendation
from agent_choreography.domain.exceptions import BackendFailure
from agent_choreography.domain.values import (
    EffectivenessPrediction,
    QualityAssessment,
    RootCauseAnalysis,
    StrategyContext,
)
from agent_choreography.infrastructure.llm import failure_metadata, invoke_chain
from agent_choreography.infrastructure.performance import PerformanceTracker

logger = logging.getLogger(__name__)

_STRATEGY_SYNONYMS: dict[str, RevisionStrategy] = {
    "TARGETED_REVISION": RevisionStrategy.TARGETED_REVISION,
    "TARGETED": RevisionStrategy.TARGETED_REVISION,
    "REVISE": RevisionStrategy.TARGETED_REVISION,
    "CHANGE_APPROACH": RevisionStrategy.CHANGE_APPROACH,
    "DIFFERENT_APPROACH": RevisionStrategy.CHANGE_APPROACH,
    "PATTERN_SWITCH": RevisionStrategy.CHANGE_APPROACH,
    "RESTART": RevisionStrategy.CHANGE_APPROACH,
    "ABORT": RevisionStrategy.ABORT,
    "GOOD_ENOUGH": RevisionStrategy.ABORT,
    "STOP": RevisionStrategy.ABORT,
}

_DEFAULT_ACTION_PLAN: tuple[str, ...] = (
    "Re-read the request and list every required feature",
    "Fix the lowest-scoring dimension first",
    "Keep the parts that already work unchanged",
)


def coerce_strategy(value: str | None) -> RevisionStrategy:
    """Map a backend-produced strategy string onto ``RevisionStrategy``.

    Unknown or missing values fall back to ``TARGETED_REVISION``.
    """
    if not value:
        return RevisionStrategy.TARGETED_REVISION
    key = value.strip().upper().replace(" ", "_").replace("-", "_")
    strategy = _STRATEGY_SYNONYMS.get(key)
    if strategy is None:
        logger.info("MetacognitionService: unknown strategy %r, using TARGETED_REVISION", value)
        return RevisionStrategy.TARGETED_REVISION
    return strategy


# -- Structured output schemas -----------------------------------------------


class RootCauseOutput(BaseModel):
    """Structured output schema for root-cause analysis."""

    root_cause: str = Field(description="The underlying reason quality is low")
    will_revision_help: bool = Field(description="Whether another revision can fix it")
    strategy: str = Field(description="TARGETED_REVISION, CHANGE_APPROACH or ABORT")
    action_plan: list[str] = Field(
        default_factory=list, description="Ordered, concrete steps for the next attempt"
    )
    pattern_recommendations: list[str] = Field(
        default_factory=list, description="Patterns or techniques worth switching to"
    )


class EffectivenessOutput(BaseModel):
    """Structured output schema for effectiveness prediction."""

    effective: bool = Field(description="Whether the change is likely to improve quality")
    confidence: float = Field(ge=0, le=1, description="Confidence in the prediction")
    reasoning: str = Field(description="Brief explanation")


# -- Prompts -----------------------------------------------------------------

_ROOT_CAUSE_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You diagnose why generated work scored low. Identify the root "
            "cause, not the symptom, then pick one strategy:\n"
            "  TARGETED_REVISION - the approach is sound; specific parts need fixing\n"
            "  CHANGE_APPROACH - the approach itself is wrong; start from a different one\n"
            "  ABORT - the work is already good enough or revision cannot help\n"
            "Give an action plan of concrete steps, most important first.",
        ),
        (
            "human",
            "## Request\n{request}\n\n"
            "## Scores\n{scores}\n\n"
            "## Evaluator feedback\n{feedback}\n\n"
            "## Artifact (first {preview_chars} characters)\n{artifact}",
        ),
    ]
)

_EFFECTIVENESS_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "Predict whether a proposed change will improve quality. Specific, "
            "actionable changes that fix an identified gap are usually effective; "
            "vague instructions and changes to working parts usually are not.",
        ),
        (
            "human",
            "## Current approach\n{current}\n\n## Proposed change\n{proposed}",
        ),
    ]
)


# -- MetacognitionService ----------------------------------------------------


class MetacognitionService:
    """Root-cause analysis and strategy selection for the revision stage.

    Parameters
    ----------
    model:
        A LangChain chat model.
    critical_time_seconds:
        Remaining time below which ``recommend_strategy`` always aborts.
    timeout:
        Seconds per backend call (``None`` disables).
    retries:
        Extra attempts on transient failures.
    retry_backoff:
        Base delay in seconds before a retry; grows linearly per attempt.
    tracker:
        Optional latency recorder for every backend call.
    preview_chars:
        How much of the artifact is shown to the backend.
    """

    def __init__(
        self,
        model: BaseChatModel,
        critical_time_seconds: float = 30.0,
        timeout: float | None = None,
        retries: int = 0,
        retry_backoff: float = 0.0,
        tracker: PerformanceTracker | None = None,
        preview_chars: int = 3000,
    ) -> None:
        self.model = model
        self.critical_time_seconds = critical_time_seconds
        self._timeout = timeout
        self._retries = retries
        self._retry_backoff = retry_backoff
        self._tracker = tracker
        self._preview_chars = preview_chars
        self._chain = self._build_chain()
        self._effectiveness_chain = (
            _EFFECTIVENESS_PROMPT | self.model.with_structured_output(EffectivenessOutput)
        )

    def _build_chain(self) -> Any:
        """Build the root-cause chain with structured output."""
        return _ROOT_CAUSE_PROMPT | self.model.with_structured_output(RootCauseOutput)

    # -- root cause ----------------------------------------------------------

    def analyze_root_cause(
        self,
        artifact: str,
        scores: QualityAssessment | Mapping[str, float],
        request: str,
        cancel_event: threading.Event | None = None,
    ) -> RootCauseAnalysis:
        """Diagnose why *artifact* scored as it did and choose a strategy.

        Falls back to :meth:`fallback_analysis` on backend failure.
        """
        if isinstance(scores, QualityAssessment):
            score_map = dict(scores.scores)
            feedback = scores.feedback or "None"
        else:
            score_map = dict(scores)
            feedback = "None"

        try:
            result: RootCauseOutput = invoke_chain(
                self._chain,
                {
                    "request": request,
                    "scores": ", ".join(f"{k}={v:.2f}" for k, v in score_map.items()),
                    "feedback": feedback,
                    "preview_chars": self._preview_chars,
                    "artifact": artifact[: self._preview_chars] or "(empty)",
                },
                timeout=self._timeout,
                retries=self._retries,
                retry_backoff=self._retry_backoff,
                tracker=self._tracker,
                operation="root_cause",
                cancel_event=cancel_event,
            )
        except BackendFailure as exc:
            logger.warning("MetacognitionService: root-cause analysis failed: %s", exc)
            return self.fallback_analysis(score_map, metadata=failure_metadata(exc))

        strategy = coerce_strategy(result.strategy)
        return RootCauseAnalysis(
            root_cause=result.root_cause,
            will_revision_help=result.will_revision_help,
            strategy=strategy,
            action_plan=tuple(result.action_plan) or _DEFAULT_ACTION_PLAN,
            pattern_recommendations=tuple(result.pattern_recommendations),
            metadata={"raw_strategy": result.strategy},
        )

    def fallback_analysis(
        self,
        scores: Mapping[str, float],
        metadata: Mapping[str, Any] | None = None,
    ) -> RootCauseAnalysis:
        """Score-only diagnosis used when the backend is unavailable."""
        average = float(np.mean(list(scores.values()))) if scores else 0.0
        completeness = scores.get("completeness", average)

        if average >= 0.7:
            strategy = RevisionStrategy.ABORT
            root_cause = "Quality is already good enough; further revision risks regressions"
            will_help = False
        elif completeness < 0.3:
            strategy = RevisionStrategy.TARGETED_REVISION
            root_cause = "The artifact is incomplete"
            will_help = True
        elif average < 0.4:
            strategy = RevisionStrategy.CHANGE_APPROACH
            root_cause = "The current approach is not working"
            will_help = True
        else:
            strategy = RevisionStrategy.TARGETED_REVISION
            root_cause = "Specific dimensions are below standard"
            will_help = True

        return RootCauseAnalysis(
            root_cause=root_cause,
            will_revision_help=will_help,
            strategy=strategy,
            action_plan=_DEFAULT_ACTION_PLAN,
            metadata=dict(metadata or {}),
        )

    # -- trend rule ----------------------------------------------------------

    def recommend_strategy(self, context: StrategyContext) -> StrategyRecommendation:
        """Decide whether another revision is worth it.

        Rules, in order:

        1. Remaining time below ``critical_time_seconds`` -> ``ABORT``.
        2. Attempts already at the iteration limit -> ``ABORT``.
        3. Fewer than two trend points -> ``CONTINUE``.
        4. Latest confidence strictly above the previous one -> ``CONTINUE``.
        5. Otherwise (flat or degrading) -> ``CHANGE_APPROACH``.
        """
        if context.time_remaining < self.critical_time_seconds:
            logger.info(
                "MetacognitionService: %.1fs remaining, recommending ABORT",
                context.time_remaining,
            )
            return StrategyRecommendation.ABORT
        if context.previous_attempts >= context.iteration_limit:
            return StrategyRecommendation.ABORT

        trend = context.confidence_trend
        if len(trend) < 2:
            return StrategyRecommendation.CONTINUE
        if trend[-1] > trend[-2]:
            return StrategyRecommendation.CONTINUE

        logger.info(
            "MetacognitionService: confidence not improving (%s), recommending CHANGE_APPROACH",
            " -> ".join(f"{c:.2f}" for c in trend),
        )
        return StrategyRecommendation.CHANGE_APPROACH

    # -- effectiveness -------------------------------------------------------

    def predict_effectiveness(
        self,
        current_approach: str,
        proposed_change: str,
        cancel_event: threading.Event | None = None,
    ) -> EffectivenessPrediction:
        """Predict whether *proposed_change* will improve on *current_approach*."""
        try:
            result: EffectivenessOutput = invoke_chain(
                self._effectiveness_chain,
                {"current": current_approach[:500], "proposed": proposed_change},
                timeout=self._timeout,
                retries=self._retries,
                retry_backoff=self._retry_backoff,
                tracker=self._tracker,
                operation="effectiveness",
                cancel_event=cancel_event,
            )
        except BackendFailure as exc:
            logger.warning("MetacognitionService: effectiveness prediction failed: %s", exc)
            specific = len(proposed_change) > 50 and "." in proposed_change
            return EffectivenessPrediction(
                effective=specific,
                confidence=0.5,
                reasoning="Heuristic: specific changes are more likely to help",
                metadata=failure_metadata(exc),
            )

        return EffectivenessPrediction(
            effective=result.effective,
            confidence=max(0.0, min(1.0, result.confidence)),
            reasoning=result.reasoning,
        )

"""Calibrated artifact evaluation using LangChain structured output.

The backend scores an artifact along four fixed dimensions against an
explicit rubric.  Raw scores are then calibrated: language-model critics are
systematically harsh on long, substantially complete outputs, and an
uncalibrated score makes the build loop revise good work into worse work.

Calibration
-----------
1. A dimension whose raw score falls in ``[calibration_low, calibration_high)``
   is multiplied by a boost (1.4 for code, 1.2 otherwise), capped at 1.0.
2. Scores at or above ``good_threshold`` are never touched.
3. A substantially complete artifact (long, no placeholder markers) gets a
   per-dimension floor of ``complete_floor``.

The aggregate confidence is the weighted mean of the calibrated scores.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Mapping
from typing import Any

import numpy as np
from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from agent_choreography.domain.enums import QualityStandard
from agent_choreography.domain.exceptions import BackendFailure
from agent_choreography.domain.values import QualityAssessment
from agent_choreography.infrastructure.config import EvaluatorConfig
from agent_choreography.infrastructure.llm import failure_metadata, invoke_chain
from agent_choreography.infrastructure.performance import PerformanceTracker

logger = logging.getLogger(__name__)

DIMENSIONS: tuple[str, ...] = (
    "functionality",
    "structural_quality",
    "completeness",
    "usability",
)

QUALITY_STANDARDS: dict[QualityStandard, str] = {
    QualityStandard.CODE: (
        "- Runs without errors and does what was asked\n"
        "- Clear structure, sensible naming, no dead code\n"
        "- Handles edge cases and invalid input\n"
        "- Usable interface with clear feedback to the user"
    ),
    QualityStandard.RESEARCH: (
        "- Answers the question that was asked\n"
        "- Claims are accurate and sourced where possible\n"
        "- Covers the main perspectives without padding\n"
        "- Clearly organized and easy to scan"
    ),
    QualityStandard.CONVERSATION: (
        "- Responds to what the user actually said\n"
        "- Accurate, helpful and appropriately concise\n"
        "- Natural tone that fits the conversation\n"
        "- Leaves no obvious follow-up unaddressed"
    ),
}

_PLACEHOLDER = re.compile(
    r"\b(TODO|FIXME|placeholder|not implemented|lorem ipsum)\b", re.IGNORECASE
)


def coerce_standard(criteria: QualityStandard | str) -> QualityStandard:
    """Accept a ``QualityStandard``, its value, or a short name (``"code"``)."""
    if isinstance(criteria, QualityStandard):
        return criteria
    key = criteria.strip().lower().replace("-", "_")
    for standard in QualityStandard:
        if key in (standard.value, standard.name.lower()):
            return standard
    raise ValueError(f"Unknown quality standard: {criteria!r}")


# -- Structured output schemas -----------------------------------------------


class EvaluationOutput(BaseModel):
    """Structured output schema for artifact evaluation."""

    functionality: float = Field(ge=0, le=1, description="Does it work and do what was asked")
    structural_quality: float = Field(ge=0, le=1, description="Structure and clarity")
    completeness: float = Field(ge=0, le=1, description="Nothing missing or stubbed out")
    usability: float = Field(ge=0, le=1, description="How well it serves the user")
    feedback: str = Field(description="Concise explanation of the scores")
    improvements: list[str] = Field(
        default_factory=list,
        description="Ordered, specific improvements (most important first)",
    )


# -- Prompt ------------------------------------------------------------------

_EVALUATION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are a calibrated quality evaluator. Score the artifact on each "
            "dimension from 0.0 to 1.0 against the standard below.\n\n"
            "Calibration guide:\n"
            "  0.9-1.0 = excellent, nothing meaningful to improve\n"
            "  0.7-0.9 = a complete, working result (most finished work belongs here)\n"
            "  0.5-0.7 = works but has clear gaps\n"
            "  below 0.5 = only if genuinely broken or incomplete\n\n"
            "Quality standard:\n{standard}",
        ),
        (
            "human",
            "## Request\n{context}\n\n"
            "## Artifact ({length} characters, showing the first {preview_chars})\n"
            "{artifact}\n\n"
            "## Previous scores\n{previous_scores}\n\n"
            "Score each dimension and list concrete improvements.",
        ),
    ]
)


# -- CalibratedEvaluator -----------------------------------------------------


class CalibratedEvaluator:
    """Scores artifacts with the backend and calibrates the result.

    Parameters
    ----------
    model:
        A LangChain chat model.
    config:
        Calibration constants.  Defaults to ``EvaluatorConfig()``.
    confidence_floor:
        Confidence below which ``needs_revision`` is set.
    prompt:
        Optional custom ``ChatPromptTemplate`` to replace the default.
    timeout:
        Seconds per backend call (``None`` disables).
    retries:
        Extra attempts on transient failures.
    retry_backoff:
        Base delay in seconds before a retry; grows linearly per attempt.
    tracker:
        Optional latency recorder for every backend call.
    """

    def __init__(
        self,
        model: BaseChatModel,
        config: EvaluatorConfig | None = None,
        confidence_floor: float = 0.8,
        prompt: ChatPromptTemplate | None = None,
        timeout: float | None = None,
        retries: int = 0,
        retry_backoff: float = 0.0,
        tracker: PerformanceTracker | None = None,
    ) -> None:
        self.model = model
        self.config = config or EvaluatorConfig()
        self.config.validate()
        self.confidence_floor = confidence_floor
        self._prompt = prompt or _EVALUATION_PROMPT
        self._timeout = timeout
        self._retries = retries
        self._retry_backoff = retry_backoff
        self._tracker = tracker
        self._chain = self._build_chain()

    def _build_chain(self) -> Any:
        """Build the evaluation chain with structured output."""
        structured_model = self.model.with_structured_output(EvaluationOutput)
        return self._prompt | structured_model

    # -- calibration ---------------------------------------------------------

    def calibrate_score(self, raw: float, standard: QualityStandard) -> float:
        """Apply the under-scoring correction to a single raw score."""
        raw = max(0.0, min(1.0, raw))
        if raw >= self.config.good_threshold:
            return raw
        if self.config.calibration_low <= raw < self.config.calibration_high:
            boost = (
                self.config.code_boost
                if standard is QualityStandard.CODE
                else self.config.default_boost
            )
            return min(1.0, raw * boost)
        return raw

    def is_substantially_complete(self, artifact: str) -> bool:
        """Long enough and free of placeholder markers."""
        return (
            len(artifact.strip()) >= self.config.complete_min_length
            and _PLACEHOLDER.search(artifact) is None
        )

    def weighted_confidence(self, scores: Mapping[str, float]) -> float:
        names = [d for d in scores if d in self.config.weights]
        if not names:
            return float(np.mean(list(scores.values()))) if scores else 0.0
        values = np.array([scores[d] for d in names])
        weights = np.array([self.config.weights[d] for d in names])
        return float(np.clip(np.average(values, weights=weights), 0.0, 1.0))

    def heuristic_scores(self, artifact: str) -> dict[str, float]:
        """Backend-free estimate used when the evaluation call fails."""
        base = 0.6 if len(artifact) > self.config.complete_min_length else 0.4
        if "<" in artifact and ">" in artifact:
            base += 0.1
        if "function" in artifact or "=>" in artifact or "def " in artifact:
            base += 0.1
        base = min(base, 1.0)
        return {
            "functionality": base,
            "structural_quality": base * 0.9,
            "completeness": base * 0.8,
            "usability": base * 0.85,
        }

    # -- evaluation ----------------------------------------------------------

    def evaluate(
        self,
        artifact: str,
        criteria: QualityStandard | str,
        context: str,
        previous_scores: Mapping[str, float] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> QualityAssessment:
        """Evaluate *artifact* produced for the request *context*.

        Falls back to heuristic scores (flagged with ``llm_error`` in the
        metadata) when the backend call fails or its output cannot be parsed.
        """
        standard = coerce_standard(criteria)
        preview = artifact[: self.config.preview_chars]
        previous_text = (
            ", ".join(f"{k}={v:.2f}" for k, v in previous_scores.items())
            if previous_scores
            else "None (first evaluation)"
        )

        try:
            result: EvaluationOutput = invoke_chain(
                self._chain,
                {
                    "standard": QUALITY_STANDARDS[standard],
                    "context": context,
                    "length": len(artifact),
                    "preview_chars": self.config.preview_chars,
                    "artifact": preview or "(empty)",
                    "previous_scores": previous_text,
                },
                timeout=self._timeout,
                retries=self._retries,
                retry_backoff=self._retry_backoff,
                tracker=self._tracker,
                operation="evaluation",
                cancel_event=cancel_event,
            )
        except BackendFailure as exc:
            logger.warning("CalibratedEvaluator: evaluation failed: %s", exc)
            return self._assemble(
                raw=self.heuristic_scores(artifact),
                artifact=artifact,
                standard=standard,
                feedback="Heuristic evaluation; the evaluator backend was unavailable.",
                actions=(
                    "Verify the artifact satisfies every part of the request",
                    "Fill any gaps or stubbed sections",
                ),
                previous_scores=previous_scores,
                metadata=failure_metadata(exc),
            )

        raw = {d: getattr(result, d) for d in DIMENSIONS}
        return self._assemble(
            raw=raw,
            artifact=artifact,
            standard=standard,
            feedback=result.feedback,
            actions=tuple(result.improvements),
            previous_scores=previous_scores,
            metadata={},
        )

    def _assemble(
        self,
        raw: Mapping[str, float],
        artifact: str,
        standard: QualityStandard,
        feedback: str,
        actions: tuple[str, ...],
        previous_scores: Mapping[str, float] | None,
        metadata: dict[str, Any],
    ) -> QualityAssessment:
        scores = {name: self.calibrate_score(value, standard) for name, value in raw.items()}
        complete = self.is_substantially_complete(artifact)
        if complete:
            scores = {n: max(v, self.config.complete_floor) for n, v in scores.items()}

        confidence = self.weighted_confidence(scores)
        meta = dict(metadata)
        meta["standard"] = standard.value
        meta["substantially_complete"] = complete
        if previous_scores:
            meta["score_delta"] = {
                n: scores[n] - previous_scores[n] for n in scores if n in previous_scores
            }

        return QualityAssessment(
            scores=scores,
            confidence=confidence,
            needs_revision=confidence < self.confidence_floor,
            actions=tuple(actions),
            feedback=feedback,
            raw_scores=dict(raw),
            metadata=meta,
        )

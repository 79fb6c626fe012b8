"""LangGraph node functions for the iterative build workflow.

Each function takes a ``BuildState`` and returns a partial update dict.  The
nodes delegate to the injected services (evaluator, strategist, generator)
and stores rather than reimplementing any logic.

Every node appends a line to ``reasoning_trace``, a dict to ``events`` and
its own name to ``stage_history``.  Backend failures never escape a node:
they degrade to a fallback or end the workflow with a completion reason.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from agent_choreography.domain.enums import (
    CompletionReason,
    RevisionStrategy,
    StrategyRecommendation,
    WorkflowStage,
)
from agent_choreography.domain.exceptions import BackendFailure, WorkflowCancelled
from agent_choreography.domain.values import RootCauseAnalysis, StrategyContext

logger = logging.getLogger(__name__)


def _event(event_type: str, state: dict[str, Any], **data: Any) -> dict[str, Any]:
    return {
        "type": event_type,
        "iteration": state.get("iteration_count", 0),
        "timestamp": time.time(),
        **data,
    }


def _is_cancelled(state: dict[str, Any]) -> bool:
    cancel_event = state.get("cancel_event")
    return cancel_event is not None and cancel_event.is_set()


def _cancelled_update(state: dict[str, Any], stage: WorkflowStage) -> dict[str, Any]:
    logger.info("Workflow for %s cancelled during %s", state.get("agent_id", "?"), stage.value)
    return {
        "completion_reason": CompletionReason.CANCELLED.value,
        "stage_history": [stage.value],
        "reasoning_trace": [f"[{stage.value}] Cancelled"],
        "events": [_event("cancelled", state, stage=stage.value)],
    }


def describe_approach(state: dict[str, Any]) -> str:
    """Short description of how the current artifact was produced."""
    patterns = state.get("patterns") or []
    if patterns:
        names = ", ".join(p.pattern.name for p in patterns)
        return f"Built on patterns: {names}"
    if state.get("revision_strategy"):
        return f"{state['revision_strategy'].lower().replace('_', ' ')} of a direct build"
    first_line = state.get("generated_artifact", "").strip().splitlines()[:1]
    return f"Direct build: {first_line[0][:120]}" if first_line else "Direct build"


# -- Reasoning ---------------------------------------------------------------


def reasoning_node(state: dict[str, Any]) -> dict[str, Any]:
    """Note the plan for this pass.

    No side effects on the first iteration.  On later iterations it records
    that the previous feedback must be incorporated.

    Inside the compiled graph this node only runs from ``START`` because
    revision loops straight back to generation, so ``iteration_count`` is
    0 there.  The later-iteration note is written when a caller starts a
    graph from a state that already carries iterations and feedback (for
    example a request re-run with its previous revision feedback).
    """
    iteration = state.get("iteration_count", 0)
    if iteration == 0:
        note = f"Planning first attempt: {state['request'][:200]}"
    else:
        feedback = state.get("revision_feedback", "")
        note = f"Iteration {iteration}: must incorporate feedback: {feedback[:200]}"
    return {
        "stage_history": [WorkflowStage.REASONING.value],
        "reasoning_trace": [f"[reasoning] {note}"],
        "events": [_event("reasoning", state)],
    }


# -- Knowledge retrieval -----------------------------------------------------


def knowledge_retrieval_node(state: dict[str, Any]) -> dict[str, Any]:
    """Query the learning cache, pattern library and insight board.

    Reads ``learning_cache``, ``pattern_library``, ``insight_board``,
    ``domain``, ``request``.  Writes ``knowledge_context``, ``patterns`` and
    ``insights_used`` (ids of other agents' insights that were retrieved).
    Retrieval errors are logged and the workflow proceeds without knowledge.
    """
    domain = state.get("domain", "")
    request = state["request"]
    limit = state.get("knowledge_limit", 3)
    knowledge: list[str] = []
    patterns: list[Any] = []
    trace: list[str] = []

    cache = state.get("learning_cache")
    if cache is not None and limit > 0:
        try:
            for record in cache.get_best_practices(domain, request, limit=limit):
                line = f"Past success ({record.outcome.confidence:.2f}): {record.approach}"
                if record.what_worked:
                    line += f" -- worked: {'; '.join(record.what_worked)}"
                knowledge.append(line)
            for pitfall in cache.get_known_pitfalls(domain, limit=limit):
                knowledge.append(f"Known pitfall: {pitfall}")
        except Exception as exc:
            logger.warning("knowledge_retrieval_node: learning cache failed: %s", exc)
            trace.append(f"[knowledge_retrieval] Learning cache unavailable: {exc}")

    library = state.get("pattern_library")
    if library is not None and limit > 0:
        try:
            patterns = library.recommend(request, limit=limit)
            knowledge.extend(f"Pattern: {p.render()}" for p in patterns)
        except Exception as exc:
            logger.warning("knowledge_retrieval_node: pattern library failed: %s", exc)
            trace.append(f"[knowledge_retrieval] Pattern library unavailable: {exc}")

    board = state.get("insight_board")
    insights: list[Any] = []
    if board is not None and limit > 0:
        try:
            insights = board.query(
                domain, request, exclude_agent=state.get("agent_id"), limit=limit
            )
            knowledge.extend(f"Shared insight from {i.render()}" for i in insights)
        except Exception as exc:
            logger.warning("knowledge_retrieval_node: insight board failed: %s", exc)
            trace.append(f"[knowledge_retrieval] Insight board unavailable: {exc}")

    trace.append(
        f"[knowledge_retrieval] {len(knowledge)} knowledge item(s), {len(patterns)} pattern(s)"
    )
    return {
        "knowledge_context": knowledge,
        "patterns": patterns,
        "insights_used": [i.insight_id for i in insights],
        "stage_history": [WorkflowStage.KNOWLEDGE_RETRIEVAL.value],
        "reasoning_trace": trace,
        "events": [
            _event(
                "knowledge_retrieval",
                state,
                knowledge_items=len(knowledge),
                patterns=[p.pattern.pattern_id for p in patterns],
            )
        ],
    }


# -- Synthesis ---------------------------------------------------------------


def synthesis_node(state: dict[str, Any]) -> dict[str, Any]:
    """Combine two or more retrieved patterns into a synthesis plan."""
    if _is_cancelled(state):
        return _cancelled_update(state, WorkflowStage.SYNTHESIS)

    patterns = state.get("patterns") or []
    generator = state["generator"]
    try:
        plan = generator.plan_synthesis(
            state["request"], patterns, cancel_event=state.get("cancel_event")
        )
    except WorkflowCancelled:
        return _cancelled_update(state, WorkflowStage.SYNTHESIS)

    if plan is None:
        note = "No synthesis plan; continuing with retrieved patterns only"
        rendered = ""
    else:
        rendered = plan.render()
        note = f"Base {plan.base_pattern!r} with {len(plan.original_additions)} original addition(s)"
    return {
        "synthesis_plan": rendered,
        "stage_history": [WorkflowStage.SYNTHESIS.value],
        "reasoning_trace": [f"[synthesis] {note}"],
        "events": [_event("synthesis", state, planned=plan is not None)],
    }


# -- Generation --------------------------------------------------------------


def generation_node(state: dict[str, Any]) -> dict[str, Any]:
    """Produce a new artifact.

    The current artifact moves to ``previous_artifact`` before it is
    replaced.  On backend failure the existing artifact is kept; if there is
    none, the workflow is marked ``backend_unavailable``.
    """
    if _is_cancelled(state):
        return _cancelled_update(state, WorkflowStage.GENERATION)

    generator = state["generator"]
    previous = state.get("generated_artifact", "")
    try:
        artifact = generator.generate(
            state["request"],
            knowledge=state.get("knowledge_context") or [],
            synthesis_plan=state.get("synthesis_plan", ""),
            feedback=state.get("revision_feedback", ""),
            previous_artifact=previous,
            cancel_event=state.get("cancel_event"),
        )
    except WorkflowCancelled:
        return _cancelled_update(state, WorkflowStage.GENERATION)
    except BackendFailure as exc:
        if previous:
            logger.warning("generation_node: %s; keeping previous artifact", exc)
            return {
                "stage_history": [WorkflowStage.GENERATION.value],
                "reasoning_trace": [
                    f"[generation] Backend failed ({exc.kind}); keeping previous artifact"
                ],
                "events": [_event("generation_failed", state, kind=exc.kind)],
            }
        logger.warning("generation_node: %s; no artifact available", exc)
        return {
            "backend_unavailable": True,
            "completion_reason": CompletionReason.BACKEND_UNAVAILABLE.value,
            "stage_history": [WorkflowStage.GENERATION.value],
            "reasoning_trace": [f"[generation] Backend unavailable: {exc}"],
            "events": [_event("generation_failed", state, kind=exc.kind)],
        }

    return {
        "previous_artifact": previous,
        "generated_artifact": artifact,
        "stage_history": [WorkflowStage.GENERATION.value],
        "reasoning_trace": [f"[generation] Produced {len(artifact)} characters"],
        "events": [_event("generation", state, length=len(artifact))],
    }


# -- Evaluation --------------------------------------------------------------


def evaluation_node(state: dict[str, Any]) -> dict[str, Any]:
    """Evaluate the current artifact and advance the iteration counter.

    Writes ``assessment``, ``quality_scores``, ``confidence``,
    ``needs_revision``, ``evaluation_failures`` (consecutive fallbacks) and
    appends to ``confidence_history``.
    """
    if _is_cancelled(state):
        return _cancelled_update(state, WorkflowStage.EVALUATION)

    evaluator = state["evaluator"]
    try:
        assessment = evaluator.evaluate(
            state.get("generated_artifact", ""),
            state["quality_standard"],
            state["request"],
            previous_scores=state.get("quality_scores") or None,
            cancel_event=state.get("cancel_event"),
        )
    except WorkflowCancelled:
        return _cancelled_update(state, WorkflowStage.EVALUATION)

    iteration = state.get("iteration_count", 0) + 1
    failures = state.get("evaluation_failures", 0) + 1 if assessment.is_fallback else 0
    note = (
        f"Iteration {iteration}: confidence {assessment.confidence:.2f} "
        f"({assessment.label}), revision {'needed' if assessment.needs_revision else 'not needed'}"
    )
    if assessment.is_fallback:
        note += f" [heuristic fallback {failures}]"

    return {
        "iteration_count": iteration,
        "assessment": assessment,
        "quality_scores": dict(assessment.scores),
        "confidence": assessment.confidence,
        "needs_revision": assessment.needs_revision,
        "evaluation_failures": failures,
        "confidence_history": [assessment.confidence],
        "stage_history": [WorkflowStage.EVALUATION.value],
        "reasoning_trace": [f"[evaluation] {note}"],
        "events": [
            _event(
                "evaluation",
                state,
                iteration=iteration,
                confidence=assessment.confidence,
                scores=dict(assessment.scores),
                fallback=assessment.is_fallback,
            )
        ],
    }


# -- Revision ----------------------------------------------------------------


def _render_feedback(
    analysis: RootCauseAnalysis,
    strategy: RevisionStrategy,
    state: dict[str, Any],
) -> str:
    lines = [f"Root cause: {analysis.root_cause}", f"Strategy: {strategy.value}"]
    if strategy is RevisionStrategy.CHANGE_APPROACH:
        lines.append(
            "The current approach is not improving. Rebuild it with a different "
            "approach instead of patching the previous attempt."
        )
        if analysis.pattern_recommendations:
            lines.append("Consider: " + ", ".join(analysis.pattern_recommendations))
    lines.append("Action plan:")
    lines.extend(f"{i}. {step}" for i, step in enumerate(analysis.action_plan, start=1))

    assessment = state.get("assessment")
    if assessment is not None:
        weakest = sorted(assessment.scores.items(), key=lambda item: item[1])[:2]
        lines.append(
            "Weakest dimensions: " + ", ".join(f"{name} {score:.2f}" for name, score in weakest)
        )
        if assessment.actions:
            lines.append("Evaluator improvements:")
            lines.extend(f"- {action}" for action in assessment.actions)
    return "\n".join(lines)


def revision_node(state: dict[str, Any]) -> dict[str, Any]:
    """Diagnose the low score and decide how to revise.

    First consults the trend-based strategy recommender (time, attempts,
    confidence trend), then the backend root-cause analysis.  A degrading
    trend escalates a targeted revision to a change of approach.  ``ABORT``
    from either ends the workflow with the current artifact.
    """
    if _is_cancelled(state):
        return _cancelled_update(state, WorkflowStage.REVISION)

    strategist = state["strategist"]
    iteration = state.get("iteration_count", 0)
    elapsed = time.time() - state.get("started_at", time.time())
    remaining = state.get("time_budget_seconds", 120.0) - elapsed

    recommendation = strategist.recommend_strategy(
        StrategyContext(
            previous_attempts=iteration,
            confidence_trend=tuple(state.get("confidence_history") or ()),
            time_remaining=remaining,
            iteration_limit=state.get("max_iterations", 3),
        )
    )
    if recommendation is StrategyRecommendation.ABORT:
        return {
            "completion_reason": CompletionReason.STRATEGY_ABORT.value,
            "revision_strategy": RevisionStrategy.ABORT.value,
            "stage_history": [WorkflowStage.REVISION.value],
            "reasoning_trace": [
                f"[revision] Strategy recommender aborted ({remaining:.0f}s remaining)"
            ],
            "events": [_event("revision", state, strategy="ABORT", source="trend")],
        }

    artifact = state.get("generated_artifact", "")
    try:
        analysis = strategist.analyze_root_cause(
            artifact,
            state.get("assessment") or state.get("quality_scores") or {},
            state["request"],
            cancel_event=state.get("cancel_event"),
        )
    except WorkflowCancelled:
        return _cancelled_update(state, WorkflowStage.REVISION)

    strategy = analysis.strategy
    if (
        recommendation is StrategyRecommendation.CHANGE_APPROACH
        and strategy is RevisionStrategy.TARGETED_REVISION
    ):
        strategy = RevisionStrategy.CHANGE_APPROACH

    if strategy is RevisionStrategy.ABORT:
        return {
            "completion_reason": CompletionReason.STRATEGY_ABORT.value,
            "revision_strategy": strategy.value,
            "stage_history": [WorkflowStage.REVISION.value],
            "reasoning_trace": [f"[revision] Root-cause analysis aborted: {analysis.root_cause}"],
            "events": [_event("revision", state, strategy=strategy.value, source="root_cause")],
        }

    # Rejected approaches are only written back once the run finishes.
    rejected = (
        [(describe_approach(state), analysis.root_cause)]
        if strategy is RevisionStrategy.CHANGE_APPROACH
        else []
    )

    feedback = _render_feedback(analysis, strategy, state)
    try:
        prediction = strategist.predict_effectiveness(
            artifact, feedback, cancel_event=state.get("cancel_event")
        )
    except WorkflowCancelled:
        return _cancelled_update(state, WorkflowStage.REVISION)
    return {
        "revision_feedback": feedback,
        "revision_strategy": strategy.value,
        "pending_failures": rejected,
        "stage_history": [WorkflowStage.REVISION.value],
        "reasoning_trace": [
            f"[revision] {strategy.value}: {analysis.root_cause} "
            f"(predicted {'effective' if prediction.effective else 'ineffective'}, "
            f"{prediction.confidence:.2f})"
        ],
        "events": [
            _event(
                "revision",
                state,
                strategy=strategy.value,
                recommendation=recommendation.value,
                predicted_effective=prediction.effective,
            )
        ],
    }


# -- Complete ----------------------------------------------------------------


def complete_node(state: dict[str, Any]) -> dict[str, Any]:
    """Record why the workflow ended."""
    reason = state.get("completion_reason")
    if not reason:
        floor = state.get("confidence_floor", 0.8)
        quality_met = not state.get("needs_revision", False) and state.get("confidence", 0.0) >= floor
        if state.get("evaluation_failures", 0) >= state.get("max_evaluation_failures", 3):
            reason = CompletionReason.EVALUATION_FAILURES.value
        elif quality_met:
            reason = CompletionReason.QUALITY_MET.value
        else:
            reason = CompletionReason.MAX_ITERATIONS.value
            logger.info(
                "Forced completion after %d iteration(s) at confidence %.2f",
                state.get("iteration_count", 0),
                state.get("confidence", 0.0),
            )
    return {
        "completion_reason": reason,
        "stage_history": [WorkflowStage.COMPLETE.value],
        "reasoning_trace": [f"[complete] {reason}"],
        "events": [
            _event(
                "complete",
                state,
                reason=reason,
                confidence=state.get("confidence", 0.0),
            )
        ],
    }

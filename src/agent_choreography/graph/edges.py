"""Conditional edge functions for the build workflow graph.

These functions determine routing between nodes based on the current state.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

logger = logging.getLogger(__name__)


def should_synthesize(state: dict[str, Any]) -> Literal["synthesis", "generation"]:
    """Synthesis runs only when at least two patterns were retrieved."""
    if len(state.get("patterns") or []) >= 2:
        return "synthesis"
    return "generation"


def should_evaluate(state: dict[str, Any]) -> Literal["evaluation", "complete"]:
    """Skip evaluation when generation ended the workflow."""
    if state.get("completion_reason"):
        return "complete"
    return "evaluation"


def should_revise(state: dict[str, Any]) -> Literal["revision", "complete"]:
    """After evaluation, decide whether to revise or complete.

    Order matters: the iteration bound is checked first and always wins,
    regardless of what the evaluator thinks of the artifact.
    """
    if state.get("completion_reason"):
        return "complete"

    iteration = state.get("iteration_count", 0)
    if iteration >= state.get("max_iterations", 3):
        if state.get("needs_revision", False):
            logger.info("Iteration bound %d reached; forcing completion", iteration)
        return "complete"

    if state.get("evaluation_failures", 0) >= state.get("max_evaluation_failures", 3):
        logger.warning(
            "%d consecutive evaluation failures; completing early",
            state.get("evaluation_failures", 0),
        )
        return "complete"

    if state.get("needs_revision", False):
        return "revision"
    if state.get("confidence", 0.0) < state.get("confidence_floor", 0.8):
        return "revision"
    return "complete"


def should_regenerate(state: dict[str, Any]) -> Literal["generation", "complete"]:
    """After revision, loop back unless the strategy ended the workflow."""
    if state.get("completion_reason"):
        return "complete"
    return "generation"

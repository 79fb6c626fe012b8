"""Choreography agents.

An agent is a capability profile plus two behaviours:

``evaluate_request``
    The bidding function.  One backend call, prompted only with the
    agent's own capability description and the request, returning a
    :class:`Bid`.  No agent is ever told which requests to take.
``run``
    The agent's build workflow (see :mod:`agent_choreography.graph`),
    followed by write-back of the outcome to the learning cache.

The router depends only on ``agent_id``, ``profile.priority`` and
``evaluate_request``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from agent_choreography.domain.enums import CompletionReason, InsightCategory, QualityStandard
from agent_choreography.domain.exceptions import BackendUnavailable, WorkflowCancelled
from agent_choreography.domain.values import (
    Bid,
    MemoryRecord,
    Request,
    WorkflowOutcome,
    WorkflowResult,
)
from agent_choreography.graph.builder import WorkflowBuilder
from agent_choreography.graph.graph import recursion_limit_for
from agent_choreography.graph.nodes import describe_approach
from agent_choreography.infrastructure.config import (
    BackendConfig,
    EvaluatorConfig,
    WorkflowConfig,
)
from agent_choreography.infrastructure.insight_board import InsightBoard, keywords
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.llm import invoke_chain
from agent_choreography.infrastructure.pattern_library import PatternLibrary
from agent_choreography.infrastructure.performance import PerformanceTracker
from agent_choreography.infrastructure.similarity import tokenize

logger = logging.getLogger(__name__)

_REQUEST_TYPE_KEYWORDS: tuple[tuple[str, frozenset[str]], ...] = (
    ("build", frozenset({"create", "build", "make", "generate", "implement", "code"})),
    ("research", frozenset({"research", "find", "search", "sources", "compare", "investigate"})),
    ("analysis", frozenset({"analyze", "analyse", "explain", "why", "how"})),
)


def infer_request_type(text: str) -> str:
    """Keyword guess of ``build``, ``research``, ``analysis`` or ``conversation``."""
    tokens = tokenize(text)
    for request_type, keywords in _REQUEST_TYPE_KEYWORDS:
        if tokens & keywords:
            return request_type
    return "conversation"


@dataclass(frozen=True)
class AgentProfile:
    """Static description of what an agent is good at.

    Attributes
    ----------
    agent_id:
        Unique identifier, used in bids and events.
    name:
        Display name, also how the agent presents itself to the backend.
    capability:
        Free-text capability description; the only thing the agent's bid
        prompt knows about itself.
    domain:
        Learning-cache domain tag.
    quality_standard:
        Rubric used to evaluate the agent's artifacts.
    priority:
        Tie-break order for equal bids (higher wins).
    max_iterations:
        Overrides the workflow iteration bound for this agent.
    bid_examples:
        Few-shot lines shown in the bid prompt.
    uses_patterns:
        Whether knowledge retrieval consults the pattern library.
    """

    agent_id: str
    name: str
    capability: str
    domain: str
    quality_standard: QualityStandard
    priority: int = 0
    max_iterations: int | None = None
    bid_examples: tuple[str, ...] = ()
    uses_patterns: bool = False


# -- Structured output schemas -----------------------------------------------


class BidOutput(BaseModel):
    """Structured output schema for an agent's bid."""

    confidence: float = Field(ge=0, le=1, description="How well suited you are [0, 1]")
    reasoning: str = Field(description="One or two sentences explaining the confidence")


# -- Prompt ------------------------------------------------------------------

_BID_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are {name}. Your capabilities:\n{capability}\n\n"
            "Judge only how well YOU are suited to handle the request below. "
            "Other specialists exist; do not claim requests outside your "
            "capabilities.\n"
            "  0.9-1.0 = squarely your specialty\n"
            "  0.5-0.8 = you can handle it reasonably well\n"
            "  below 0.5 = another specialist would do better\n\n"
            "Examples:\n{examples}",
        ),
        ("human", "Request (looks like: {request_type}):\n{content}"),
    ]
)


# -- ChoreographyAgent -------------------------------------------------------


class ChoreographyAgent:
    """A self-selecting agent with its own build workflow.

    Parameters
    ----------
    profile:
        What the agent is good at.
    model:
        Chat model used for generation, evaluation and revision.
    bid_model:
        Optional separate (usually low-temperature) model for bidding.
    learning_cache:
        Shared learning cache; ``None`` disables retrieval and write-back.
    pattern_library:
        Shared pattern library; only used when ``profile.uses_patterns``.
    workflow_config / evaluator_config / backend_config:
        Workflow bounds, calibration constants, timeout and retry policy.
    tracker:
        Receives the latency of every backend call this agent makes.
    insight_board:
        Shared board this agent reads other agents' insights from during
        knowledge retrieval and publishes its own lessons to.
    """

    def __init__(
        self,
        profile: AgentProfile,
        model: BaseChatModel,
        bid_model: BaseChatModel | None = None,
        learning_cache: LearningCache | None = None,
        pattern_library: PatternLibrary | None = None,
        workflow_config: WorkflowConfig | None = None,
        evaluator_config: EvaluatorConfig | None = None,
        backend_config: BackendConfig | None = None,
        tracker: PerformanceTracker | None = None,
        insight_board: InsightBoard | None = None,
    ) -> None:
        self.profile = profile
        self.model = model
        self.bid_model = bid_model or model
        self.learning_cache = learning_cache
        self.pattern_library = pattern_library if profile.uses_patterns else None
        self.backend_config = backend_config or BackendConfig()
        self.tracker = tracker
        self.insight_board = insight_board
        self.evaluator_config = evaluator_config or EvaluatorConfig()
        config = workflow_config or WorkflowConfig()
        if profile.max_iterations is not None:
            config = replace(config, max_iterations=profile.max_iterations)
        config.validate()
        self.workflow_config = config
        self._bid_chain = self._build_bid_chain()

    def _build_bid_chain(self) -> Any:
        return _BID_PROMPT | self.bid_model.with_structured_output(BidOutput)

    @property
    def agent_id(self) -> str:
        return self.profile.agent_id

    @property
    def priority(self) -> int:
        return self.profile.priority

    def __repr__(self) -> str:
        return f"ChoreographyAgent({self.agent_id!r}, domain={self.profile.domain!r})"

    # -- bidding --------------------------------------------------------------

    def evaluate_request(self, content: str) -> Bid:
        """Bid on *content*.

        Raises
        ------
        BackendFailure
            The bid could not be obtained.  The router substitutes a
            low-confidence bid; the agent never does.
        """
        result: BidOutput = invoke_chain(
            self._bid_chain,
            {
                "name": self.profile.name,
                "capability": self.profile.capability,
                "examples": "\n".join(self.profile.bid_examples) or "(none)",
                "request_type": infer_request_type(content),
                "content": content,
            },
            timeout=self.backend_config.timeout,
            retries=self.backend_config.retries,
            retry_backoff=self.backend_config.retry_backoff,
            operation=f"bid:{self.agent_id}",
            tracker=self.tracker,
        )
        return Bid(
            agent_id=self.agent_id,
            confidence=max(0.0, min(1.0, result.confidence)),
            reasoning=result.reasoning,
        )

    # -- workflow -------------------------------------------------------------

    def build_workflow(
        self,
        request: Request,
        cancel_event: threading.Event | None = None,
    ) -> tuple[Any, dict[str, Any]]:
        """Compiled graph and initial state for *request*."""
        return (
            WorkflowBuilder(self.agent_id)
            .with_model(self.model)
            .with_request(request.content)
            .with_domain(self.profile.domain, self.profile.quality_standard)
            .with_identity(self.profile.name, self.profile.capability)
            .with_workflow_config(self.workflow_config)
            .with_evaluator_config(self.evaluator_config)
            .with_backend_config(self.backend_config)
            .with_learning_cache(self.learning_cache)
            .with_pattern_library(self.pattern_library)
            .with_insight_board(self.insight_board)
            .with_performance_tracker(self.tracker)
            .with_cancel_event(cancel_event)
            .build()
        )

    def run(
        self,
        request: Request,
        cancel_event: threading.Event | None = None,
    ) -> WorkflowResult:
        """Run the build workflow for *request*.

        Raises
        ------
        BackendUnavailable
            Not a single artifact could be generated.
        WorkflowCancelled
            *cancel_event* was set while the workflow was running.
        """
        app, initial = self.build_workflow(request, cancel_event)
        final = app.invoke(
            initial,
            config={"recursion_limit": recursion_limit_for(initial["max_iterations"])},
        )

        reason = CompletionReason(final["completion_reason"])
        if reason is CompletionReason.BACKEND_UNAVAILABLE:
            raise BackendUnavailable(
                f"{self.agent_id}: no artifact could be generated",
                details={"agent_id": self.agent_id},
            )
        if reason is CompletionReason.CANCELLED:
            raise WorkflowCancelled(f"{self.agent_id}: workflow cancelled")

        result = WorkflowResult(
            agent_id=self.agent_id,
            artifact=final.get("generated_artifact", ""),
            confidence=final.get("confidence", 0.0),
            iterations=final.get("iteration_count", 0),
            completion_reason=reason,
            assessment=final.get("assessment"),
            confidence_history=tuple(final.get("confidence_history", ())),
            reasoning_trace=tuple(final.get("reasoning_trace", ())),
            patterns_used=tuple(p.pattern.pattern_id for p in final.get("patterns") or ()),
        )
        logger.info(
            "%s: workflow complete (%s) after %d iteration(s), confidence %.2f",
            self.agent_id, reason.value, result.iterations, result.confidence,
        )
        self._learn(request, final, result)
        return result

    def _learn(self, request: Request, final: dict[str, Any], result: WorkflowResult) -> None:
        """Write the finished outcome back to every shared store.

        Only called for runs that completed; a cancelled run leaves the
        stores untouched, including approaches its revisions rejected.
        """
        met_floor = result.confidence >= self.workflow_config.confidence_floor
        if self.pattern_library is not None:
            for pattern_id in result.patterns_used:
                self.pattern_library.update_pattern_stats(
                    pattern_id, success=met_floor, confidence=result.confidence
                )

        rejected = list(final.get("pending_failures") or ())
        approach = describe_approach(final)
        if self.insight_board is not None:
            self._share(request, approach, rejected, result, met_floor, final)

        if self.learning_cache is None:
            return
        for rejected_approach, reason in rejected:
            self.learning_cache.record_failure(self.profile.domain, rejected_approach, reason)
        if result.confidence < self.learning_cache.config.min_confidence_to_learn:
            self.learning_cache.record_failure(
                self.profile.domain,
                approach,
                f"final confidence {result.confidence:.2f} after {result.iterations} iteration(s)",
            )
            return

        scores = dict(result.assessment.scores) if result.assessment else {}
        self.learning_cache.record_success(
            MemoryRecord(
                domain=self.profile.domain,
                context=request.content,
                approach=approach,
                outcome=WorkflowOutcome(
                    confidence=result.confidence,
                    duration_seconds=time.time() - final.get("started_at", time.time()),
                    iterations=result.iterations,
                ),
                patterns_used=frozenset(result.patterns_used),
                what_worked=tuple(f"strong {name}" for name, s in scores.items() if s >= 0.8),
                what_did_not_work=tuple(f"weak {name}" for name, s in scores.items() if s < 0.6),
            )
        )

    def _share(
        self,
        request: Request,
        approach: str,
        rejected: list[tuple[str, str]],
        result: WorkflowResult,
        met_floor: bool,
        final: dict[str, Any],
    ) -> None:
        board = self.insight_board
        assert board is not None
        for insight_id in final.get("insights_used") or ():
            board.record_usage(insight_id, success=met_floor)

        tags = keywords(request.content) | {self.profile.domain}
        for rejected_approach, reason in rejected:
            board.contribute(
                self.agent_id,
                InsightCategory.PITFALL,
                self.profile.domain,
                f"Avoid {rejected_approach}: {reason}",
                confidence=0.7,
                tags=tags,
            )
        if result.completion_reason is CompletionReason.QUALITY_MET:
            board.contribute(
                self.agent_id,
                InsightCategory.PATTERN if result.patterns_used else InsightCategory.BEST_PRACTICE,
                self.profile.domain,
                approach,
                confidence=result.confidence,
                tags=tags | set(result.patterns_used),
                evidence=(f"{result.iterations} iteration(s) for: {request.content[:120]}",),
            )

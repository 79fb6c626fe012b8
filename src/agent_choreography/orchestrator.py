"""Request entry point: security, then routing, then the winning workflow.

``Orchestrator.handle`` is the single blocking call a transport layer uses.
It never raises for backend trouble: every outcome, including a refusal and
total backend unavailability, comes back as a :class:`HandleResult`.

Events published per request, in order::

    SecurityAssessed -> RequestRouted -> WorkflowCompleted -> RequestHandled

Only ``SecurityAssessed`` and ``RequestHandled`` are guaranteed; the middle
two are skipped when the request is blocked or the workflow cannot run.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from typing import Any

from langchain_core.language_models import BaseChatModel

from agent_choreography.agents.base import ChoreographyAgent
from agent_choreography.agents.catalog import default_agents
from agent_choreography.domain.enums import HandleStatus, SecurityAction
from agent_choreography.domain.events import (
    RequestHandled,
    RequestRouted,
    SecurityAssessed,
    WorkflowCompleted,
)
from agent_choreography.domain.exceptions import (
    BackendUnavailable,
    SecurityBlock,
    WorkflowCancelled,
)
from agent_choreography.domain.values import HandleResult, Request, SecurityAssessment
from agent_choreography.infrastructure.config import (
    BackendConfig,
    EvaluatorConfig,
    LearningConfig,
    RouterConfig,
    SecurityConfig,
    WorkflowConfig,
)
from agent_choreography.infrastructure.event_bus import EventBus
from agent_choreography.infrastructure.insight_board import InsightBoard
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import PatternLibrary
from agent_choreography.infrastructure.performance import PerformanceTracker
from agent_choreography.infrastructure.trust_store import TrustStore
from agent_choreography.services.routing import AgentRouter
from agent_choreography.services.security import SecurityPipeline

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = (
    "The assistant is temporarily unavailable. Please try again in a moment."
)
BLOCKED_MESSAGE = "This request can't be processed."


class Orchestrator:
    """Runs one request through the security pipeline, router and agent.

    Parameters
    ----------
    agents:
        Candidate agents for routing.
    security:
        Security/trust pipeline applied before routing.
    event_bus:
        Bus that receives the per-request events.  A private one is created
        if omitted.
    router_config:
        Selection constants for the router.
    performance:
        Latency tracker shared by the wired services, exposed for reporting.
        A fresh one is created if omitted.
    insight_board:
        Board the agents share insights on, exposed for reporting.
    """

    def __init__(
        self,
        agents: Sequence[ChoreographyAgent],
        security: SecurityPipeline,
        event_bus: EventBus | None = None,
        router_config: RouterConfig | None = None,
        performance: PerformanceTracker | None = None,
        insight_board: InsightBoard | None = None,
    ) -> None:
        self.router = AgentRouter(agents, router_config)
        self.security = security
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.performance = performance if performance is not None else PerformanceTracker()
        self.insight_board = insight_board

    @classmethod
    def from_model(
        cls,
        model: BaseChatModel,
        bid_model: BaseChatModel | None = None,
        learning_cache: LearningCache | None = None,
        trust_store: TrustStore | None = None,
        pattern_library: PatternLibrary | None = None,
        configs: Mapping[str, Any] | None = None,
        event_bus: EventBus | None = None,
        performance: PerformanceTracker | None = None,
        insight_board: InsightBoard | None = None,
    ) -> Orchestrator:
        """Assemble the default agent catalog around *model*.

        *configs* is the mapping returned by ``load_config_from_json``;
        missing sections use their defaults.
        """
        configs = configs or {}
        backend: BackendConfig = configs.get("backend") or BackendConfig()
        if learning_cache is None:
            learning_cache = LearningCache(configs.get("learning") or LearningConfig())
        if performance is None:
            performance = PerformanceTracker()
        if insight_board is None:
            insight_board = InsightBoard()
        agents = default_agents(
            model,
            bid_model=bid_model,
            learning_cache=learning_cache,
            pattern_library=pattern_library if pattern_library is not None else PatternLibrary(),
            workflow_config=configs.get("workflow") or WorkflowConfig(),
            evaluator_config=configs.get("evaluator") or EvaluatorConfig(),
            backend_config=backend,
            tracker=performance,
            insight_board=insight_board,
        )
        security = SecurityPipeline(
            model,
            trust_store=trust_store,
            config=configs.get("security") or SecurityConfig(),
            timeout=backend.timeout,
            retries=backend.retries,
            retry_backoff=backend.retry_backoff,
            tracker=performance,
        )
        return cls(
            agents,
            security,
            event_bus,
            configs.get("router") or RouterConfig(),
            performance=performance,
            insight_board=insight_board,
        )

    # -- main entry point --------------------------------------------------

    def handle(
        self,
        request: Request | str,
        cancel_event: threading.Event | None = None,
    ) -> HandleResult:
        """Process *request* end to end and return the user-facing result."""
        if isinstance(request, str):
            request = Request(content=request)
        start = time.time()
        source = request.request_id

        assessment = self.security.assess(request)
        self.event_bus.publish(
            SecurityAssessed(
                source_id=source,
                identity=request.identity,
                action=assessment.recommended_action,
                severity=assessment.severity,
                risk_count=len(assessment.risks),
                trust_level=assessment.metadata.get("trust_level_after", 1.0),
            )
        )
        try:
            self.security.enforce(assessment)
        except SecurityBlock as exc:
            logger.info("Orchestrator: request %s blocked: %s", source, exc)
            return self._finish(
                request, start, assessment,
                HandleResult(
                    artifact=BLOCKED_MESSAGE,
                    confidence=0.0,
                    agent="",
                    status=HandleStatus.BLOCKED,
                    metadata=self._security_metadata(assessment),
                ),
            )

        if cancel_event is not None and cancel_event.is_set():
            return self._finish(request, start, assessment, self._cancelled(assessment))

        decision = self.router.route(request.content)
        bids = decision.bid_map()
        self.event_bus.publish(
            RequestRouted(
                source_id=source,
                selected_agent=decision.selected.agent_id,
                bids=bids,
                clear_winner=decision.clear_winner,
            )
        )
        routing_meta = {
            "bids": bids,
            "clear_winner": decision.clear_winner,
            "bid_reasoning": decision.selected_bid.reasoning,
        }

        agent = decision.selected
        try:
            result = agent.run(request, cancel_event=cancel_event)
        except BackendUnavailable as exc:
            logger.warning("Orchestrator: %s could not produce an artifact: %s", agent.agent_id, exc)
            return self._finish(
                request, start, assessment,
                HandleResult(
                    artifact=UNAVAILABLE_MESSAGE,
                    confidence=0.0,
                    agent=agent.agent_id,
                    status=HandleStatus.UNAVAILABLE,
                    metadata={**self._security_metadata(assessment), **routing_meta},
                ),
            )
        except WorkflowCancelled:
            logger.info("Orchestrator: request %s cancelled", source)
            cancelled = self._cancelled(assessment)
            return self._finish(
                request, start, assessment,
                HandleResult(
                    artifact=cancelled.artifact,
                    confidence=0.0,
                    agent=agent.agent_id,
                    status=HandleStatus.CANCELLED,
                    metadata={**cancelled.metadata, **routing_meta},
                ),
            )

        self.event_bus.publish(
            WorkflowCompleted(
                source_id=source,
                agent_id=result.agent_id,
                iterations=result.iterations,
                confidence=result.confidence,
                completion_reason=result.completion_reason,
            )
        )

        metadata: dict[str, Any] = {
            **self._security_metadata(assessment),
            **routing_meta,
            "iterations": result.iterations,
            "completion_reason": result.completion_reason.value,
            "confidence_history": list(result.confidence_history),
            "patterns_used": list(result.patterns_used),
        }
        if result.assessment is not None:
            metadata["quality_scores"] = dict(result.assessment.scores)
            metadata["quality_label"] = result.assessment.label
            if result.assessment.feedback:
                metadata["quality_feedback"] = result.assessment.feedback

        return self._finish(
            request, start, assessment,
            HandleResult(
                artifact=result.artifact,
                confidence=result.confidence,
                agent=result.agent_id,
                status=HandleStatus.COMPLETED,
                metadata=metadata,
            ),
        )

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _security_metadata(assessment: SecurityAssessment) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "security_action": assessment.recommended_action.value,
            "security_severity": assessment.severity.value,
            "intent": assessment.intent.value,
        }
        if assessment.recommended_action is SecurityAction.WARN:
            meta["security_warning"] = sorted({r.category.value for r in assessment.risks})
        return meta

    def _cancelled(self, assessment: SecurityAssessment) -> HandleResult:
        return HandleResult(
            artifact="",
            confidence=0.0,
            agent="",
            status=HandleStatus.CANCELLED,
            metadata=self._security_metadata(assessment),
        )

    def _finish(
        self,
        request: Request,
        start: float,
        assessment: SecurityAssessment,
        result: HandleResult,
    ) -> HandleResult:
        duration = time.time() - start
        metadata = dict(result.metadata)
        metadata["request_id"] = request.request_id
        metadata["duration_seconds"] = duration
        self.event_bus.publish(
            RequestHandled(
                source_id=request.request_id,
                selected_agent=result.agent,
                bids=metadata.get("bids", {}),
                iterations=metadata.get("iterations", 0),
                confidence=result.confidence,
                security_action=assessment.recommended_action,
                status=result.status,
                duration_seconds=duration,
            )
        )
        return HandleResult(
            artifact=result.artifact,
            confidence=result.confidence,
            agent=result.agent,
            status=result.status,
            metadata=metadata,
        )

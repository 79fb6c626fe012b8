"""Fluent builder for assembling a compiled build-workflow graph.

``WorkflowBuilder`` collects the request, the model and the optional shared
stores, creates any service that was not supplied explicitly, and returns
the compiled graph together with its initial state.
"""

from __future__ import annotations

import threading
import time
from typing import Any

from agent_choreography.domain.enums import QualityStandard
from agent_choreography.graph.graph import build_workflow_graph
from agent_choreography.graph.state import make_initial_state
from agent_choreography.infrastructure.config import (
    BackendConfig,
    EvaluatorConfig,
    WorkflowConfig,
)
from agent_choreography.infrastructure.insight_board import InsightBoard
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import PatternLibrary
from agent_choreography.infrastructure.performance import PerformanceTracker
from agent_choreography.services.evaluation import CalibratedEvaluator
from agent_choreography.services.generation import ArtifactGenerator
from agent_choreography.services.metacognition import MetacognitionService


class WorkflowBuilder:
    """Fluent builder for one build-workflow run.

    Example::

        app, initial = (
            WorkflowBuilder("builder")
            .with_model(ChatAnthropic(model="claude-sonnet-4-5-20250929"))
            .with_request("Build a React dashboard with charts")
            .with_domain("build", QualityStandard.CODE)
            .with_learning_cache(cache)
            .with_pattern_library(PatternLibrary())
            .build()
        )
        result = app.invoke(initial, config={"recursion_limit": 20})
    """

    def __init__(self, agent_id: str) -> None:
        self._agent_id = agent_id
        self._model: Any | None = None
        self._request: str | None = None
        self._domain: str = "conversation"
        self._standard: QualityStandard = QualityStandard.CONVERSATION
        self._agent_name: str = agent_id
        self._capability: str = ""
        self._workflow_config = WorkflowConfig()
        self._evaluator_config = EvaluatorConfig()
        self._backend_config = BackendConfig()
        self._evaluator: CalibratedEvaluator | None = None
        self._strategist: MetacognitionService | None = None
        self._generator: ArtifactGenerator | None = None
        self._learning_cache: LearningCache | None = None
        self._pattern_library: PatternLibrary | None = None
        self._insight_board: InsightBoard | None = None
        self._cancel_event: threading.Event | None = None
        self._tracker: PerformanceTracker | None = None

    def with_model(self, model: Any) -> WorkflowBuilder:
        """Set the LangChain chat model used by every default service."""
        self._model = model
        return self

    def with_request(self, request: str) -> WorkflowBuilder:
        self._request = request
        return self

    def with_domain(self, domain: str, standard: QualityStandard) -> WorkflowBuilder:
        """Set the learning-cache domain tag and the evaluation rubric."""
        self._domain = domain
        self._standard = standard
        return self

    def with_identity(self, name: str, capability: str) -> WorkflowBuilder:
        """Set how the generating agent presents itself to the backend."""
        self._agent_name = name
        self._capability = capability
        return self

    def with_workflow_config(self, config: WorkflowConfig) -> WorkflowBuilder:
        config.validate()
        self._workflow_config = config
        return self

    def with_evaluator_config(self, config: EvaluatorConfig) -> WorkflowBuilder:
        config.validate()
        self._evaluator_config = config
        return self

    def with_backend_config(self, config: BackendConfig) -> WorkflowBuilder:
        """Timeout and retry policy for the default services."""
        config.validate()
        self._backend_config = config
        return self

    def with_evaluator(self, evaluator: CalibratedEvaluator) -> WorkflowBuilder:
        self._evaluator = evaluator
        return self

    def with_strategist(self, strategist: MetacognitionService) -> WorkflowBuilder:
        self._strategist = strategist
        return self

    def with_generator(self, generator: ArtifactGenerator) -> WorkflowBuilder:
        self._generator = generator
        return self

    def with_learning_cache(self, cache: LearningCache | None) -> WorkflowBuilder:
        self._learning_cache = cache
        return self

    def with_pattern_library(self, library: PatternLibrary | None) -> WorkflowBuilder:
        self._pattern_library = library
        return self

    def with_insight_board(self, board: InsightBoard | None) -> WorkflowBuilder:
        self._insight_board = board
        return self

    def with_cancel_event(self, cancel_event: threading.Event | None) -> WorkflowBuilder:
        self._cancel_event = cancel_event
        return self

    def with_performance_tracker(self, tracker: PerformanceTracker | None) -> WorkflowBuilder:
        """Record backend latency of the default services into *tracker*."""
        self._tracker = tracker
        return self

    def build(self) -> tuple[Any, dict[str, Any]]:
        """Validate and build the compiled graph + initial state.

        Raises
        ------
        ValueError
            If no request was given, or a service is missing and no model
            was set to create it.
        """
        if not self._request:
            raise ValueError("WorkflowBuilder requires a request. Call .with_request(text).")
        missing = [
            name
            for name, svc in (
                ("evaluator", self._evaluator),
                ("strategist", self._strategist),
                ("generator", self._generator),
            )
            if svc is None
        ]
        if missing and self._model is None:
            raise ValueError(
                f"WorkflowBuilder needs a model to create: {', '.join(missing)}. "
                "Call .with_model(model) or inject the services."
            )

        wf = self._workflow_config
        timeout = self._backend_config.timeout
        retries = self._backend_config.retries
        backoff = self._backend_config.retry_backoff

        evaluator = self._evaluator or CalibratedEvaluator(
            model=self._model,
            config=self._evaluator_config,
            confidence_floor=wf.confidence_floor,
            timeout=timeout,
            retries=retries,
            retry_backoff=backoff,
            tracker=self._tracker,
        )
        strategist = self._strategist or MetacognitionService(
            model=self._model,
            critical_time_seconds=wf.critical_time_seconds,
            timeout=timeout,
            retries=retries,
            retry_backoff=backoff,
            tracker=self._tracker,
            preview_chars=self._evaluator_config.preview_chars,
        )
        generator = self._generator or ArtifactGenerator(
            model=self._model,
            agent_name=self._agent_name,
            capability=self._capability,
            timeout=timeout,
            retries=retries,
            retry_backoff=backoff,
            tracker=self._tracker,
        )

        app = build_workflow_graph()
        initial = make_initial_state(
            request=self._request,
            agent_id=self._agent_id,
            domain=self._domain,
            quality_standard=self._standard.value,
            max_iterations=wf.max_iterations,
            confidence_floor=wf.confidence_floor,
            max_evaluation_failures=wf.max_evaluation_failures,
            knowledge_limit=wf.knowledge_limit,
            time_budget_seconds=wf.time_budget_seconds,
            started_at=time.time(),
            cancel_event=self._cancel_event,
            evaluator=evaluator,
            strategist=strategist,
            generator=generator,
            learning_cache=self._learning_cache,
            pattern_library=self._pattern_library,
            insight_board=self._insight_board,
        )
        return app, initial

"""End-to-end tests for the compiled build-workflow graph."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from agent_choreography.domain.enums import QualityStandard
from agent_choreography.domain.values import MemoryRecord, WorkflowOutcome
from agent_choreography.graph import WorkflowBuilder, recursion_limit_for
from agent_choreography.infrastructure.config import WorkflowConfig
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import PatternLibrary
from agent_choreography.services.evaluation import CalibratedEvaluator, EvaluationOutput
from agent_choreography.services.generation import ArtifactGenerator, SynthesisOutput
from agent_choreography.services.metacognition import (
    EffectivenessOutput,
    MetacognitionService,
    RootCauseOutput,
)
from agent_choreography.testing import MockStructuredChatModel

DASHBOARD = "Build a React dashboard with charts"


def _model(
    evaluations: list[Any],
    texts: list[Any] | None = None,
    root_cause: RootCauseOutput | None = None,
    **extra: list[Any],
) -> MockStructuredChatModel:
    responses: dict[str, list[Any]] = {
        "EvaluationOutput": evaluations,
        "RootCauseOutput": [root_cause or RootCauseOutput(
            root_cause="Charts lack labels",
            will_revision_help=True,
            strategy="TARGETED_REVISION",
            action_plan=["Label the axes"],
        )],
        "EffectivenessOutput": [EffectivenessOutput(
            effective=True, confidence=0.7, reasoning="specific"
        )],
    }
    responses.update(extra)
    return MockStructuredChatModel(
        schema_responses=responses,
        text_responses=texts if texts is not None else ["<p>draft</p>"],
    )


def _run(
    model: MockStructuredChatModel,
    max_iterations: int = 3,
    request: str = DASHBOARD,
    **builder_options: Any,
) -> dict[str, Any]:
    builder = (
        WorkflowBuilder("builder")
        .with_model(model)
        .with_request(request)
        .with_domain("build", QualityStandard.CODE)
        .with_identity("Builder", "Builds working software.")
        .with_workflow_config(
            WorkflowConfig(
                max_iterations=max_iterations,
                max_evaluation_failures=builder_options.pop("max_evaluation_failures", 3),
            )
        )
    )
    if "learning_cache" in builder_options:
        builder = builder.with_learning_cache(builder_options.pop("learning_cache"))
    if "pattern_library" in builder_options:
        builder = builder.with_pattern_library(builder_options.pop("pattern_library"))
    if "cancel_event" in builder_options:
        builder = builder.with_cancel_event(builder_options.pop("cancel_event"))
    app, initial = builder.build()
    return app.invoke(initial, config={"recursion_limit": recursion_limit_for(max_iterations)})


class TestBuilderValidation:

    def test_requires_request(self) -> None:
        with pytest.raises(ValueError, match="request"):
            WorkflowBuilder("builder").with_model(_model([])).build()

    def test_requires_model_for_default_services(self) -> None:
        with pytest.raises(ValueError, match="model"):
            WorkflowBuilder("builder").with_request("Build").build()

    def test_recursion_limit(self) -> None:
        assert recursion_limit_for(1) == 11
        assert recursion_limit_for(3) == 17

    def test_names_services_it_cannot_create(self, good_evaluation: EvaluationOutput) -> None:
        evaluator = CalibratedEvaluator(_model([good_evaluation]))
        builder = WorkflowBuilder("builder").with_request("Build").with_evaluator(evaluator)
        with pytest.raises(ValueError, match="strategist, generator"):
            builder.build()


class TestInjectedServices:

    def test_runs_without_a_model(self, good_evaluation: EvaluationOutput) -> None:
        judge = _model([good_evaluation])
        writer = _model([], texts=["<p>injected</p>"])
        app, initial = (
            WorkflowBuilder("builder")
            .with_request(DASHBOARD)
            .with_domain("build", QualityStandard.CODE)
            .with_evaluator(CalibratedEvaluator(judge))
            .with_strategist(MetacognitionService(judge))
            .with_generator(ArtifactGenerator(writer, agent_name="Builder"))
            .build()
        )
        final = app.invoke(initial, config={"recursion_limit": recursion_limit_for(3)})

        assert final["completion_reason"] == "quality_met"
        assert final["generated_artifact"] == "<p>injected</p>"
        assert writer.call_count("text") == 1
        assert judge.call_count("text") == 0
        assert judge.call_count("EvaluationOutput") == 1

    def test_injected_generator_wins_over_model(self, good_evaluation: EvaluationOutput) -> None:
        default = _model([good_evaluation], texts=["<p>default</p>"])
        writer = _model([], texts=["<p>injected</p>"])
        app, initial = (
            WorkflowBuilder("builder")
            .with_model(default)
            .with_request(DASHBOARD)
            .with_generator(ArtifactGenerator(writer))
            .build()
        )
        final = app.invoke(initial, config={"recursion_limit": recursion_limit_for(3)})
        assert final["generated_artifact"] == "<p>injected</p>"
        assert default.call_count("text") == 0


class TestReasoning:

    def test_first_attempt(self, good_evaluation: EvaluationOutput) -> None:
        final = _run(_model([good_evaluation]))
        assert final["reasoning_trace"][0] == f"[reasoning] Planning first attempt: {DASHBOARD}"

    def test_resumed_state_carries_feedback(self, good_evaluation: EvaluationOutput) -> None:
        app, initial = (
            WorkflowBuilder("builder")
            .with_model(_model([good_evaluation]))
            .with_request("Build a todo app")
            .build()
        )
        initial.update(iteration_count=1, revision_feedback="Add delete buttons")
        final = app.invoke(initial, config={"recursion_limit": recursion_limit_for(3)})

        assert final["reasoning_trace"][0] == (
            "[reasoning] Iteration 1: must incorporate feedback: Add delete buttons"
        )
        assert final["iteration_count"] == 2


class TestTermination:

    def test_quality_met_first_try(self, good_evaluation: EvaluationOutput) -> None:
        model = _model([good_evaluation])
        final = _run(model)
        assert final["completion_reason"] == "quality_met"
        assert final["iteration_count"] == 1
        assert final["generated_artifact"] == "<p>draft</p>"
        assert final["stage_history"] == [
            "reasoning", "knowledge_retrieval", "generation", "evaluation", "complete",
        ]
        assert model.call_count("RootCauseOutput") == 0

    @pytest.mark.parametrize("max_iterations", [1, 2, 3, 4])
    def test_iteration_bound(self, poor_evaluation: EvaluationOutput, max_iterations: int) -> None:
        model = _model([poor_evaluation])
        final = _run(model, max_iterations=max_iterations)
        assert final["completion_reason"] == "max_iterations"
        assert final["iteration_count"] == max_iterations
        assert model.call_count("text") == max_iterations
        assert model.call_count("EvaluationOutput") == max_iterations
        assert len(final["confidence_history"]) == max_iterations
        assert final["generated_artifact"]

    def test_improves_then_meets_quality(
        self, poor_evaluation: EvaluationOutput, good_evaluation: EvaluationOutput
    ) -> None:
        model = _model([poor_evaluation, good_evaluation], texts=["<p>v1</p>", "<p>v2</p>"])
        final = _run(model)
        assert final["completion_reason"] == "quality_met"
        assert final["iteration_count"] == 2
        assert final["generated_artifact"] == "<p>v2</p>"
        assert final["previous_artifact"] == "<p>v1</p>"
        assert final["revision_strategy"] == "TARGETED_REVISION"

    def test_root_cause_abort(self, poor_evaluation: EvaluationOutput) -> None:
        model = _model(
            [poor_evaluation],
            root_cause=RootCauseOutput(
                root_cause="Request is ambiguous", will_revision_help=False, strategy="ABORT"
            ),
        )
        final = _run(model)
        assert final["completion_reason"] == "strategy_abort"
        assert final["iteration_count"] == 1
        assert final["generated_artifact"] == "<p>draft</p>"

    def test_evaluation_failures(self) -> None:
        model = _model([RuntimeError("evaluator down")])
        final = _run(model, max_iterations=5, max_evaluation_failures=2)
        assert final["completion_reason"] == "evaluation_failures"
        assert final["iteration_count"] == 2
        assert final["assessment"].is_fallback


class TestBackendFailures:

    def test_no_artifact_at_all(self, good_evaluation: EvaluationOutput) -> None:
        model = _model([good_evaluation], texts=[RuntimeError("down")])
        final = _run(model)
        assert final["completion_reason"] == "backend_unavailable"
        assert final["iteration_count"] == 0
        assert model.call_count("EvaluationOutput") == 0

    def test_failed_regeneration_keeps_artifact(self, poor_evaluation: EvaluationOutput) -> None:
        model = _model([poor_evaluation], texts=["<p>v1</p>", RuntimeError("down")])
        final = _run(model, max_iterations=2)
        assert final["completion_reason"] == "max_iterations"
        assert final["generated_artifact"] == "<p>v1</p>"
        assert final["iteration_count"] == 2


class TestCancellation:

    def test_cancelled_before_start(self, good_evaluation: EvaluationOutput) -> None:
        cancel = threading.Event()
        cancel.set()
        model = _model([good_evaluation])
        final = _run(model, cancel_event=cancel)
        assert final["completion_reason"] == "cancelled"
        assert model.call_count("text") == 0

    def test_cancelled_mid_run(self, good_evaluation: EvaluationOutput) -> None:
        cancel = threading.Event()

        def generate_then_cancel(prompt: str) -> str:
            cancel.set()
            return "<p>draft</p>"

        model = _model([good_evaluation], texts=[generate_then_cancel])
        final = _run(model, cancel_event=cancel)
        assert final["completion_reason"] == "cancelled"
        assert model.call_count("EvaluationOutput") == 0


class TestKnowledge:

    def test_synthesis_plan_reaches_generation(
        self, good_evaluation: EvaluationOutput, pattern_library: PatternLibrary
    ) -> None:
        prompts: list[str] = []

        def capture(prompt: str) -> str:
            prompts.append(prompt)
            return "<div>dashboard</div>"

        model = _model(
            [good_evaluation],
            texts=[capture],
            SynthesisOutput=[SynthesisOutput(
                base_pattern="Dashboard Layout Pattern",
                borrowed_elements=["canvas charts"],
                original_additions=["keyboard navigation"],
            )],
        )
        final = _run(model, pattern_library=pattern_library)
        assert "synthesis" in final["stage_history"]
        assert "Base pattern: Dashboard Layout Pattern" in prompts[0]
        assert "Add (original): keyboard navigation" in prompts[0]
        assert {p.pattern.pattern_id for p in final["patterns"]} == {
            "dashboard-layout", "data-viz-canvas",
        }

    def test_cached_success_reaches_generation(
        self, good_evaluation: EvaluationOutput, learning_cache: LearningCache
    ) -> None:
        learning_cache.record_success(MemoryRecord(
            domain="build",
            context=DASHBOARD,
            approach="grid of chart cards",
            outcome=WorkflowOutcome(confidence=0.9, duration_seconds=2.0, iterations=1),
        ))
        prompts: list[str] = []

        def capture(prompt: str) -> str:
            prompts.append(prompt)
            return "<div>dashboard</div>"

        _run(_model([good_evaluation], texts=[capture]), learning_cache=learning_cache)
        assert "Past success (0.90): grid of chart cards" in prompts[0]

    def test_change_of_approach_is_remembered(
        self, poor_evaluation: EvaluationOutput, learning_cache: LearningCache
    ) -> None:
        model = _model(
            [poor_evaluation],
            root_cause=RootCauseOutput(
                root_cause="Layout is fundamentally wrong",
                will_revision_help=True,
                strategy="CHANGE_APPROACH",
            ),
        )
        final = _run(model, max_iterations=2, learning_cache=learning_cache)
        assert final["revision_strategy"] == "CHANGE_APPROACH"
        assert final["pending_failures"] == [
            ("Direct build: <p>draft</p>", "Layout is fundamentally wrong")
        ]
        # The owning agent writes these back once the run has finished.
        assert learning_cache.get_known_pitfalls("build") == []


def _labelled_chart_model(root_cause: RootCauseOutput) -> MockStructuredChatModel:
    """Charts score high only once the generator was told to label the axes."""

    def judge(prompt: str) -> EvaluationOutput:
        score = 0.9 if "axis labels" in prompt else 0.5
        return EvaluationOutput(
            functionality=score,
            structural_quality=score,
            completeness=score,
            usability=score,
            feedback="Charts are readable" if score > 0.8 else "Charts are hard to read",
            improvements=[] if score > 0.8 else ["Tighten the layout"],
        )

    def draw(prompt: str) -> str:
        return "<chart with axis labels>" if "Label both axes" in prompt else "<chart>"

    return _model([judge], texts=[draw], root_cause=root_cause)


class TestRevisionEffectiveness:

    def test_targeted_revision_beats_naive_retry(self) -> None:
        targeted = _run(_labelled_chart_model(RootCauseOutput(
            root_cause="Axes carry no labels",
            will_revision_help=True,
            strategy="TARGETED_REVISION",
            action_plan=["Label both axes"],
        )))
        naive = _run(_labelled_chart_model(RootCauseOutput(
            root_cause="Quality is low",
            will_revision_help=True,
            strategy="TARGETED_REVISION",
        )))

        assert targeted["completion_reason"] == "quality_met"
        assert targeted["generated_artifact"] == "<chart with axis labels>"
        first, second = targeted["confidence_history"]
        assert second > first

        assert naive["completion_reason"] == "max_iterations"
        assert len(set(naive["confidence_history"])) == 1
        assert len(naive["confidence_history"]) == 3

        assert targeted["confidence"] > naive["confidence"]

#!/usr/bin/env python3
"""Example 01: one request end to end, fully offline.

Demonstrates:
- Wiring ``Orchestrator.from_model()`` around a scripted mock chat model
- Self-selection: every agent bids, the builder wins outright
- A revision round driven by root-cause analysis
- Consuming the per-request events as a metrics sink

Run:
    PYTHONPATH=src python examples/01_offline_dashboard.py
"""

from __future__ import annotations

from agent_choreography import Orchestrator, Request
from agent_choreography.infrastructure.event_bus import EventBus, EventStore
from agent_choreography.presentation import ConsoleDashboard
from agent_choreography.testing import MockStructuredChatModel


def bid(prompt: str) -> dict:
    if "You are Builder." in prompt:
        return {"confidence": 0.92, "reasoning": "Dashboards are UI work."}
    return {"confidence": 0.3, "reasoning": "Someone else fits better."}


def scores(value: float, feedback: str, improvements: list[str]) -> dict:
    return {
        "functionality": value,
        "structural_quality": value,
        "completeness": value,
        "usability": value,
        "feedback": feedback,
        "improvements": improvements,
    }


def main() -> None:
    model = MockStructuredChatModel(
        schema_responses={
            "BidOutput": [bid],
            "RiskClassificationOutput": [{"risks": []}],
            "IntentOutput": [{"intent": "GENUINE", "confidence": 0.95}],
            "SynthesisOutput": [{
                "base_pattern": "Dashboard Layout Pattern",
                "borrowed_elements": ["canvas line chart"],
                "original_additions": ["keyboard shortcuts for switching ranges"],
            }],
            "EvaluationOutput": [
                scores(0.55, "Charts render but have no axis labels", ["Label both axes"]),
                scores(0.88, "Complete and readable", []),
            ],
            "RootCauseOutput": [{
                "root_cause": "Chart helper omits axis labels",
                "will_revision_help": True,
                "strategy": "TARGETED_REVISION",
                "action_plan": ["Add x/y labels to drawChart()"],
            }],
            "EffectivenessOutput": [{
                "effective": True, "confidence": 0.8, "reasoning": "Narrow, specific fix",
            }],
        },
        text_responses=[
            "<div class='grid'><canvas id='sales'></canvas></div>",
            "<div class='grid'><canvas id='sales' aria-label='Sales by month'></canvas></div>",
        ],
    )

    bus = EventBus()
    store = EventStore()
    bus.subscribe_all(store.append)

    orchestrator = Orchestrator.from_model(model, event_bus=bus)
    result = orchestrator.handle(
        Request(content="Build a React dashboard with charts", identity="demo")
    )

    ConsoleDashboard().print_result(result)
    print()
    print("Events:", ", ".join(type(e).__name__ for e in store.query()))
    print("Summary:", store.summary())


if __name__ == "__main__":
    main()

"""Agent Choreography.

Self-selecting agents over LangGraph: a request passes a layered
security/trust pipeline, every agent bids on it, and the winner runs a
bounded generate / evaluate / revise workflow backed by a calibrated
evaluator, a metacognitive strategist and a similarity-based learning cache.
"""

__version__ = "0.1.0"

from agent_choreography.domain import HandleResult, Request
from agent_choreography.graph import (
    BuildState,
    WorkflowBuilder,
    build_workflow_graph,
)
from agent_choreography.orchestrator import Orchestrator

__all__ = [
    "BuildState",
    "HandleResult",
    "Orchestrator",
    "Request",
    "WorkflowBuilder",
    "build_workflow_graph",
]

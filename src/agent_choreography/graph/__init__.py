"""LangGraph build workflow: state, nodes, edges, graph and builder."""

from agent_choreography.graph.builder import WorkflowBuilder
from agent_choreography.graph.edges import (
    should_evaluate,
    should_regenerate,
    should_revise,
    should_synthesize,
)
from agent_choreography.graph.graph import build_workflow_graph, recursion_limit_for
from agent_choreography.graph.state import BuildState, make_initial_state

__all__ = [
    "BuildState",
    "WorkflowBuilder",
    "build_workflow_graph",
    "make_initial_state",
    "recursion_limit_for",
    "should_evaluate",
    "should_regenerate",
    "should_revise",
    "should_synthesize",
]

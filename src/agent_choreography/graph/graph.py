"""Build the iterative build-workflow StateGraph.

``build_workflow_graph()`` wires the seven nodes and four conditional edges
into a compiled LangGraph::

    START -> reasoning -> knowledge_retrieval -> [synthesis] -> generation
          -> evaluation -> {revision -> generation | complete} -> END
"""

from typing import Any

from langgraph.graph import END, START, StateGraph

from agent_choreography.graph.edges import (
    should_evaluate,
    should_regenerate,
    should_revise,
    should_synthesize,
)
from agent_choreography.graph.nodes import (
    complete_node,
    evaluation_node,
    generation_node,
    knowledge_retrieval_node,
    reasoning_node,
    revision_node,
    synthesis_node,
)
from agent_choreography.graph.state import BuildState


def recursion_limit_for(max_iterations: int) -> int:
    """LangGraph step budget for a workflow bounded by *max_iterations*.

    The first pass visits at most six nodes; every revision cycle adds three
    (revision, generation, evaluation); ``complete`` adds one.
    """
    return 6 + 3 * max(max_iterations - 1, 0) + 1 + 4


def build_workflow_graph() -> Any:
    """Build and compile the build-workflow StateGraph.

    The state carries live service objects and a cancel event, so the graph
    is compiled without a checkpointer: every run starts from
    ``make_initial_state`` and finishes in one ``invoke``.
    """
    graph = StateGraph(BuildState)

    graph.add_node("reasoning", reasoning_node)
    graph.add_node("knowledge_retrieval", knowledge_retrieval_node)
    graph.add_node("synthesis", synthesis_node)
    graph.add_node("generation", generation_node)
    graph.add_node("evaluation", evaluation_node)
    graph.add_node("revision", revision_node)
    graph.add_node("complete", complete_node)

    graph.add_edge(START, "reasoning")
    graph.add_edge("reasoning", "knowledge_retrieval")
    graph.add_conditional_edges(
        "knowledge_retrieval",
        should_synthesize,
        {"synthesis": "synthesis", "generation": "generation"},
    )
    graph.add_edge("synthesis", "generation")
    graph.add_conditional_edges(
        "generation",
        should_evaluate,
        {"evaluation": "evaluation", "complete": "complete"},
    )
    graph.add_conditional_edges(
        "evaluation",
        should_revise,
        {"revision": "revision", "complete": "complete"},
    )
    graph.add_conditional_edges(
        "revision",
        should_regenerate,
        {"generation": "generation", "complete": "complete"},
    )
    graph.add_edge("complete", END)

    return graph.compile()

"""Default agent catalog: a builder, a researcher and a conversationalist.

The conversationalist is the general-purpose default and carries the highest
tie-break priority.
"""

from __future__ import annotations

from typing import Any

from langchain_core.language_models import BaseChatModel

from agent_choreography.agents.base import AgentProfile, ChoreographyAgent
from agent_choreography.domain.enums import QualityStandard
from agent_choreography.infrastructure.learning_cache import LearningCache
from agent_choreography.infrastructure.pattern_library import PatternLibrary

BUILDER = AgentProfile(
    agent_id="builder",
    name="Builder",
    capability=(
        "Builds working software: web pages, UI components, dashboards, games, "
        "tools and scripts. Produces complete, runnable code and iterates on it "
        "until it works."
    ),
    domain="build",
    quality_standard=QualityStandard.CODE,
    priority=10,
    bid_examples=(
        "'Build a todo app with React' -> 0.95",
        "'Create a landing page for my bakery' -> 0.9",
        "'What is the capital of France?' -> 0.1",
    ),
    uses_patterns=True,
)

RESEARCHER = AgentProfile(
    agent_id="researcher",
    name="Researcher",
    capability=(
        "Researches topics in depth: gathers and compares information, "
        "summarizes findings, explains trade-offs and cites sources."
    ),
    domain="research",
    quality_standard=QualityStandard.RESEARCH,
    priority=20,
    max_iterations=2,
    bid_examples=(
        "'Compare the main vector databases for RAG' -> 0.9",
        "'Find recent studies on intermittent fasting' -> 0.9",
        "'Build me a calculator' -> 0.1",
        "'Hi, how are you?' -> 0.1",
    ),
)

CONVERSATIONALIST = AgentProfile(
    agent_id="conversationalist",
    name="Conversationalist",
    capability=(
        "General-purpose assistant for conversation, quick questions, advice "
        "and explanations that do not need code or in-depth research."
    ),
    domain="conversation",
    quality_standard=QualityStandard.CONVERSATION,
    priority=100,
    max_iterations=1,
    bid_examples=(
        "'Hi, how are you?' -> 0.95",
        "'How does AI safety work?' -> 0.7",
        "'Build a React dashboard' -> 0.2",
    ),
)

DEFAULT_PROFILES: tuple[AgentProfile, ...] = (BUILDER, RESEARCHER, CONVERSATIONALIST)


def default_agents(
    model: BaseChatModel,
    bid_model: BaseChatModel | None = None,
    learning_cache: LearningCache | None = None,
    pattern_library: PatternLibrary | None = None,
    profiles: tuple[AgentProfile, ...] = DEFAULT_PROFILES,
    **kwargs: Any,
) -> list[ChoreographyAgent]:
    """Create one agent per profile sharing *model* and the stores.

    Extra keyword arguments (``workflow_config``, ``evaluator_config``,
    ``backend_config``, ``tracker``, ``insight_board``) are passed to every
    agent.
    """
    return [
        ChoreographyAgent(
            profile,
            model,
            bid_model=bid_model,
            learning_cache=learning_cache,
            pattern_library=pattern_library,
            **kwargs,
        )
        for profile in profiles
    ]

"""Self-selecting agents and the default catalog."""

from agent_choreography.agents.base import (
    AgentProfile,
    BidOutput,
    ChoreographyAgent,
    infer_request_type,
)
from agent_choreography.agents.catalog import (
    BUILDER,
    CONVERSATIONALIST,
    DEFAULT_PROFILES,
    RESEARCHER,
    default_agents,
)

__all__ = [
    "AgentProfile",
    "BUILDER",
    "BidOutput",
    "CONVERSATIONALIST",
    "ChoreographyAgent",
    "DEFAULT_PROFILES",
    "RESEARCHER",
    "default_agents",
    "infer_request_type",
]

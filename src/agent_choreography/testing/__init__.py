"""Public testing utilities for the agent choreography core.

Provides a mock chat model for writing self-contained examples and tests
without requiring API keys.
"""

from agent_choreography.testing.mock_llm import MockStructuredChatModel

__all__ = ["MockStructuredChatModel"]

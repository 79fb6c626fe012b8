"""Generative backend access.

The backend is any LangChain ``BaseChatModel``.  This package provides the
factory that builds one from configuration and the invocation helper that
every service uses to call it with a timeout and retry policy.
"""

from agent_choreography.infrastructure.llm.factory import (
    DEFAULT_MODELS,
    available_providers,
    create_chat_model,
    resolve_provider,
)
from agent_choreography.infrastructure.llm.invocation import (
    classify_exception,
    failure_metadata,
    invoke_chain,
)

__all__ = [
    "DEFAULT_MODELS",
    "available_providers",
    "classify_exception",
    "create_chat_model",
    "failure_metadata",
    "invoke_chain",
    "resolve_provider",
]

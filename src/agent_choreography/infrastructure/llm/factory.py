"""Chat-model factory for the agent choreography core.

Builds a LangChain ``BaseChatModel`` from a :class:`BackendConfig`.  Provider
integrations are optional extras and are imported lazily, so the core (and
the test-suite, which uses ``MockStructuredChatModel``) works without them.

Usage::

    model = create_chat_model(BackendConfig(provider="anthropic"))
    model = create_chat_model(BackendConfig(provider="auto"))  # from env keys
"""

from __future__ import annotations

import importlib.util
import logging
import os

from langchain_core.language_models import BaseChatModel

from agent_choreography.domain.exceptions import BackendUnavailable
from agent_choreography.infrastructure.config import BackendConfig

logger = logging.getLogger(__name__)

DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}

_API_KEY_ENV: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}

_PROVIDER_PACKAGES: dict[str, str] = {
    "anthropic": "langchain_anthropic",
    "openai": "langchain_openai",
}


def available_providers() -> dict[str, bool]:
    """Return provider name -> whether its LangChain integration is installed."""
    return {
        name: importlib.util.find_spec(module) is not None
        for name, module in _PROVIDER_PACKAGES.items()
    }


def resolve_provider(provider: str) -> str:
    """Resolve ``"auto"`` to a concrete provider from the environment."""
    if provider != "auto":
        return provider
    for name, env_var in _API_KEY_ENV.items():
        if os.environ.get(env_var):
            return name
    raise BackendUnavailable(
        "No API key found. Set ANTHROPIC_API_KEY or OPENAI_API_KEY, "
        "or pass an explicit provider."
    )


def create_chat_model(
    config: BackendConfig | None = None,
    temperature: float | None = None,
) -> BaseChatModel:
    """Create a chat model for *config*.

    Parameters
    ----------
    config:
        Backend configuration.  Defaults to ``BackendConfig()``.
    temperature:
        Overrides ``config.temperature`` (the router uses this for the
        low-temperature bidding model).

    Raises
    ------
    BackendUnavailable
        The provider package is not installed or its API key is missing.
    """
    config = config or BackendConfig()
    config.validate()
    provider = resolve_provider(config.provider)
    env_var = _API_KEY_ENV[provider]
    if not os.environ.get(env_var):
        raise BackendUnavailable(f"{env_var} is not set", details={"provider": provider})

    model_name = config.model_name or DEFAULT_MODELS[provider]
    temp = config.temperature if temperature is None else temperature

    # Retries are owned by invoke_chain, not by the provider client.
    if provider == "anthropic":
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError as exc:
            raise BackendUnavailable(
                "langchain-anthropic is not installed. "
                "Install with: pip install 'agent-choreography[anthropic]'"
            ) from exc
        logger.info("Using Anthropic model %s", model_name)
        return ChatAnthropic(
            model=model_name,
            temperature=temp,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            max_retries=0,
        )

    try:
        from langchain_openai import ChatOpenAI
    except ImportError as exc:
        raise BackendUnavailable(
            "langchain-openai is not installed. "
            "Install with: pip install 'agent-choreography[openai]'"
        ) from exc
    logger.info("Using OpenAI model %s", model_name)
    return ChatOpenAI(
        model=model_name,
        temperature=temp,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_retries=0,
    )

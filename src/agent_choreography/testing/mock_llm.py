"""Mock LLM for testing and examples.

Provides a ``MockStructuredChatModel`` that supports ``with_structured_output``
by returning pre-configured Pydantic model instances.  Works with every
service in this package (router bids, evaluator, strategist, security
layers, generator).

Response entries may be:

* a Pydantic instance, returned as is;
* a ``dict``, validated against the requested schema;
* an ``Exception`` instance, raised (to simulate backend failures);
* a callable, called with the rendered prompt text and its return value
  treated as above (for responses that depend on who is asking).
"""

from __future__ import annotations

import threading
from typing import Any

from langchain_core.callbacks import CallbackManagerForLLMRun
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from langchain_core.runnables import RunnableSerializable
from pydantic import BaseModel, ConfigDict, PrivateAttr


def _prompt_text(value: Any) -> str:
    if hasattr(value, "to_string"):
        return value.to_string()
    if isinstance(value, list):
        return "\n".join(str(getattr(m, "content", m)) for m in value)
    return str(value)


def _resolve(entry: Any, prompt: str, schema: Any = None) -> Any:
    if callable(entry) and not isinstance(entry, (BaseModel, type)):
        entry = entry(prompt)
    if isinstance(entry, BaseException):
        raise entry
    if isinstance(entry, dict) and schema is not None:
        return schema.model_validate(entry)
    return entry


class MockStructuredChatModel(BaseChatModel):
    """A mock chat model that supports with_structured_output.

    Usage::

        model = MockStructuredChatModel(
            schema_responses={
                "BidOutput": [BidOutput(confidence=0.9, reasoning="...")],
                "EvaluationOutput": [{"functionality": 0.9, ...}],
            },
            text_responses=["<html>...</html>"],
        )

    Structured calls take the next entry registered under the schema's
    class name, falling back to the shared ``structured_responses`` list.
    Plain calls take the next ``text_responses`` entry, falling back to
    ``structured_responses`` serialized as JSON.  Every list cycles.  A call
    with nothing configured raises ``ValueError``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    structured_responses: list[Any] = []
    schema_responses: dict[str, list[Any]] = {}
    text_responses: list[Any] = []

    _indices: dict[str, int] = PrivateAttr(default_factory=dict)
    _calls: list[str] = PrivateAttr(default_factory=list)
    _lock: Any = PrivateAttr(default_factory=threading.Lock)

    @property
    def _llm_type(self) -> str:
        return "mock-structured"

    @property
    def calls(self) -> list[str]:
        """Names of the schemas (or ``"text"``) requested so far, in order."""
        with self._lock:
            return list(self._calls)

    def call_count(self, name: str) -> int:
        return self.calls.count(name)

    def _next(self, key: str, entries: list[Any], label: str) -> Any:
        with self._lock:
            self._calls.append(label)
            if not entries:
                raise ValueError(f"MockStructuredChatModel: no response configured for {label}")
            idx = self._indices.get(key, 0)
            self._indices[key] = idx + 1
            return entries[idx % len(entries)]

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: CallbackManagerForLLMRun | None = None,
        **kwargs: Any,
    ) -> ChatResult:
        if self.text_responses:
            entry = self._next("__text__", self.text_responses, "text")
        else:
            entry = self._next("__shared__", self.structured_responses, "text")
        resp = _resolve(entry, _prompt_text(messages))

        text = resp.model_dump_json() if isinstance(resp, BaseModel) else str(resp)
        return ChatResult(
            generations=[ChatGeneration(message=AIMessage(content=text))]
        )

    def with_structured_output(self, schema: Any, **kwargs: Any) -> Any:
        """Return a runnable that yields pre-configured structured responses."""
        model_ref = self
        name = getattr(schema, "__name__", str(schema))

        class _MultiStructuredRunnable(RunnableSerializable):
            """Returns responses for one schema in sequence, cycling."""

            model_config = ConfigDict(arbitrary_types_allowed=True)

            def invoke(self, input: Any, config: Any = None, **kwargs: Any) -> Any:
                if name in model_ref.schema_responses:
                    entry = model_ref._next(name, model_ref.schema_responses[name], name)
                else:
                    entry = model_ref._next("__shared__", model_ref.structured_responses, name)
                return _resolve(entry, _prompt_text(input), schema)

        return _MultiStructuredRunnable()


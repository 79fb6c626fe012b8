"""Artifact generation and pattern synthesis.

``ArtifactGenerator.generate`` produces the artifact text for one iteration
of the build workflow.  On a revision it receives the *full* previous
artifact together with the diagnosed feedback so the model can make a
targeted fix instead of starting from an excerpt.

``ArtifactGenerator.plan_synthesis`` asks for a short plan combining two or
more retrieved patterns: one base, elements borrowed from the others, and at
least one original addition.  Synthesis is optional; failures return
``None`` and the workflow proceeds without a plan.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from agent_choreography.domain.exceptions import BackendFailure
from agent_choreography.domain.values import PatternRecommendation, SynthesisPlan
from agent_choreography.infrastructure.llm import invoke_chain
from agent_choreography.infrastructure.performance import PerformanceTracker

logger = logging.getLogger(__name__)


# -- Structured output schemas -----------------------------------------------


class SynthesisOutput(BaseModel):
    """Structured output schema for pattern synthesis."""

    base_pattern: str = Field(description="The pattern used as the foundation")
    borrowed_elements: list[str] = Field(
        default_factory=list, description="Elements taken from the other patterns"
    )
    original_additions: list[str] = Field(
        min_length=1, description="At least one idea present in none of the patterns"
    )
    rationale: str = Field(default="", description="Why this combination fits the request")


# -- Prompts -----------------------------------------------------------------

_GENERATION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are {agent_name}. {capability}\n\n"
            "Produce the complete deliverable for the request. Never leave "
            "placeholders or stubs; the result must be usable as-is.",
        ),
        (
            "human",
            "## Request\n{request}\n\n"
            "## Relevant knowledge\n{knowledge}\n\n"
            "## Synthesis plan\n{synthesis_plan}\n\n"
            "## Revision\n{revision}",
        ),
    ]
)

_SYNTHESIS_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You combine proven patterns into a plan for a new solution. Pick one "
            "pattern as the base, borrow specific elements from the others, and "
            "add at least one original idea that none of them contains.",
        ),
        ("human", "## Request\n{request}\n\n## Patterns\n{patterns}"),
    ]
)


def _render_revision(feedback: str, previous_artifact: str) -> str:
    if not feedback and not previous_artifact:
        return "None. This is the first attempt."
    return (
        f"Feedback to address:\n{feedback or 'None'}\n\n"
        "Previous attempt (complete; keep what works, fix what the feedback names):\n"
        f"{previous_artifact or '(none)'}"
    )


# -- ArtifactGenerator -------------------------------------------------------


class ArtifactGenerator:
    """Generates artifacts and synthesis plans with the backend.

    Parameters
    ----------
    model:
        A LangChain chat model.
    agent_name / capability:
        Who the generating agent is; injected into the system prompt.
    timeout:
        Seconds per backend call (``None`` disables).
    retries:
        Extra attempts on transient failures.
    retry_backoff:
        Base delay in seconds before a retry; grows linearly per attempt.
    tracker:
        Optional latency recorder for every backend call.
    """

    def __init__(
        self,
        model: BaseChatModel,
        agent_name: str = "an expert assistant",
        capability: str = "",
        timeout: float | None = None,
        retries: int = 0,
        retry_backoff: float = 0.0,
        tracker: PerformanceTracker | None = None,
    ) -> None:
        self.model = model
        self.agent_name = agent_name
        self.capability = capability
        self._timeout = timeout
        self._retries = retries
        self._retry_backoff = retry_backoff
        self._tracker = tracker
        self._chain = self._build_chain()
        self._synthesis_chain = _SYNTHESIS_PROMPT | self.model.with_structured_output(
            SynthesisOutput
        )

    def _build_chain(self) -> Any:
        """Build the free-text generation chain."""
        return _GENERATION_PROMPT | self.model | StrOutputParser()

    def generate(
        self,
        request: str,
        knowledge: Sequence[str] = (),
        synthesis_plan: str = "",
        feedback: str = "",
        previous_artifact: str = "",
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Generate the artifact text.

        Raises
        ------
        BackendFailure
            The call failed after retries or returned empty text.  The build
            workflow decides how to degrade.
        """
        text = invoke_chain(
            self._chain,
            {
                "agent_name": self.agent_name,
                "capability": self.capability,
                "request": request,
                "knowledge": "\n".join(f"- {k}" for k in knowledge) or "None",
                "synthesis_plan": synthesis_plan or "None",
                "revision": _render_revision(feedback, previous_artifact),
            },
            timeout=self._timeout,
            retries=self._retries,
            retry_backoff=self._retry_backoff,
            tracker=self._tracker,
            operation="generation",
            structured=False,
            cancel_event=cancel_event,
        )
        text = str(text).strip()
        if not text:
            raise BackendFailure("generation: empty response", kind="error", operation="generation")
        return text

    def plan_synthesis(
        self,
        request: str,
        patterns: Sequence[PatternRecommendation],
        cancel_event: threading.Event | None = None,
    ) -> SynthesisPlan | None:
        """Combine two or more *patterns* into a plan; ``None`` if not possible."""
        if len(patterns) < 2:
            return None
        try:
            result: SynthesisOutput = invoke_chain(
                self._synthesis_chain,
                {
                    "request": request,
                    "patterns": "\n".join(f"- {p.render()}" for p in patterns),
                },
                timeout=self._timeout,
                retries=self._retries,
                retry_backoff=self._retry_backoff,
                tracker=self._tracker,
                operation="synthesis",
                cancel_event=cancel_event,
            )
        except BackendFailure as exc:
            logger.warning("ArtifactGenerator: synthesis failed: %s", exc)
            return None

        return SynthesisPlan(
            base_pattern=result.base_pattern,
            borrowed_elements=tuple(result.borrowed_elements),
            original_additions=tuple(result.original_additions),
            rationale=result.rationale,
        )

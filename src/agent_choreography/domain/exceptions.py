"""Domain exceptions for the agent choreography core.

All domain-specific exceptions inherit from ``ChoreographyError`` so callers
can catch the full family with a single ``except`` clause when needed.

Only two of them are meant to reach the orchestrator: ``SecurityBlock`` (a
deliberate refusal) and ``BackendUnavailable`` (nothing could be generated).
``BackendFailure`` and ``ParseFailure`` are always handled by the service
that made the call, which degrades to a documented fallback.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .values import SecurityAssessment


class ChoreographyError(Exception):
    """Base exception for all agent choreography errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class BackendFailure(ChoreographyError):
    """Raised when a generative backend call fails after all retries.

    ``kind`` distinguishes ``"timeout"``, ``"rate_limit"``, ``"parse"``
    and generic ``"error"`` failures.
    """

    def __init__(
        self,
        message: str = "Backend call failed",
        kind: str = "error",
        operation: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.kind = kind
        self.operation = operation


class ParseFailure(BackendFailure):
    """Raised when structured backend output does not match its schema.

    Treated identically to any other ``BackendFailure``.
    """

    def __init__(
        self,
        message: str = "Backend output could not be parsed",
        operation: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, kind="parse", operation=operation, details=details)


class BackendUnavailable(ChoreographyError):
    """Raised when the backend cannot produce anything at all.

    Surfaced to the caller as a single "try again" outcome.
    """

    def __init__(
        self,
        message: str = "Generative backend unavailable",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


class SecurityBlock(ChoreographyError):
    """Raised when a request is understood and refused."""

    def __init__(
        self,
        message: str = "Request blocked by security policy",
        assessment: SecurityAssessment | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.assessment = assessment


class WorkflowCancelled(ChoreographyError):
    """Raised when the encompassing request was cancelled mid-flight."""

    def __init__(
        self,
        message: str = "Workflow cancelled",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)

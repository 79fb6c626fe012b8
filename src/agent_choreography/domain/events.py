"""Domain events for the agent choreography core.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  The
orchestrator publishes them on the :class:`EventBus`; analytics sinks,
loggers and dashboards subscribe.  Consuming them is optional.

All events carry a ``timestamp`` and a ``source_id`` identifying the
originating component (usually the request id).
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from .enums import CompletionReason, HandleStatus, SecurityAction, Severity

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Pipeline events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SecurityAssessed(DomainEvent):
    """The security pipeline assessed a request."""

    identity: str = ""
    action: SecurityAction = SecurityAction.ALLOW
    severity: Severity = Severity.NONE
    risk_count: int = 0
    trust_level: float = 1.0


@dataclass(frozen=True)
class RequestRouted(DomainEvent):
    """The router selected an agent from the collected bids."""

    selected_agent: str = ""
    bids: Mapping[str, float] = field(default_factory=dict)
    clear_winner: bool = False


@dataclass(frozen=True)
class WorkflowCompleted(DomainEvent):
    """An agent's build workflow reached ``COMPLETE``."""

    agent_id: str = ""
    iterations: int = 0
    confidence: float = 0.0
    completion_reason: CompletionReason = CompletionReason.QUALITY_MET


@dataclass(frozen=True)
class RequestHandled(DomainEvent):
    """Per-request summary for the metrics sink."""

    selected_agent: str = ""
    bids: Mapping[str, float] = field(default_factory=dict)
    iterations: int = 0
    confidence: float = 0.0
    security_action: SecurityAction = SecurityAction.ALLOW
    status: HandleStatus = HandleStatus.COMPLETED
    duration_seconds: float = 0.0

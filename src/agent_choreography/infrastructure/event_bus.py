"""Event bus infrastructure for the agent choreography core.

The orchestrator publishes one event per pipeline milestone (security
assessed, request routed, workflow completed, request handled).  The bus
dispatches them synchronously to subscribers; a failing subscriber is logged
and skipped so that analytics can never break request handling.

``EventStore`` is the in-process metrics sink: subscribe it with
``bus.subscribe_all(store.append)`` to keep a bounded log and per-agent
aggregates.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, defaultdict, deque
from collections.abc import Callable, Sequence
from typing import Any

from agent_choreography.domain.events import DomainEvent, RequestHandled

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


# ===================================================================== #
#  Event Bus                                                             #
# ===================================================================== #

class EventBus:
    """Thread-safe synchronous pub-sub for domain events.

    Handlers are invoked in registration order, global handlers first.
    Concurrent workflows may publish at the same time; the handler lists are
    snapshotted under the lock and dispatched outside it.

    Usage::

        bus = EventBus()
        bus.subscribe(RequestRouted, on_routed)
        bus.publish(RequestRouted(selected_agent="builder"))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[type[DomainEvent], list[Handler]] = defaultdict(list)
        self._global_handlers: list[Handler] = []

    # -- subscription -------------------------------------------------------

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        """Register *handler* for a specific *event_type*."""
        with self._lock:
            self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register *handler* to receive every published event."""
        with self._lock:
            self._global_handlers.append(handler)

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> bool:
        """Remove *handler* from *event_type*. Returns ``True`` if found."""
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    def unsubscribe_all(self, handler: Handler) -> bool:
        """Remove a global handler. Returns ``True`` if found."""
        with self._lock:
            if handler in self._global_handlers:
                self._global_handlers.remove(handler)
                return True
            return False

    # -- publishing ---------------------------------------------------------

    def publish(self, event: DomainEvent) -> None:
        """Publish *event* to all matching handlers."""
        with self._lock:
            snapshot = list(self._global_handlers) + list(
                self._handlers.get(type(event), [])
            )

        for handler in snapshot:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Error in handler %r for %s", handler, type(event).__name__
                )

    def handler_count(self, event_type: type[DomainEvent] | None = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            total = sum(len(hs) for hs in self._handlers.values())
            return total + len(self._global_handlers)


# ===================================================================== #
#  Event Store                                                           #
# ===================================================================== #

class EventStore:
    """Bounded in-memory event log with per-request aggregates.

    Parameters
    ----------
    max_size:
        Maximum number of events retained (oldest dropped first).
    """

    def __init__(self, max_size: int = 1000) -> None:
        self._events: deque[DomainEvent] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(self, event_type: type[DomainEvent] | None = None) -> Sequence[DomainEvent]:
        """Return retained events, optionally filtered by type."""
        with self._lock:
            result = list(self._events)
        if event_type is not None:
            result = [e for e in result if isinstance(e, event_type)]
        return result

    def summary(self) -> dict[str, Any]:
        """Aggregate the retained ``RequestHandled`` events."""
        handled = [e for e in self.query(RequestHandled) if isinstance(e, RequestHandled)]
        if not handled:
            return {"requests": 0}
        agents = Counter(e.selected_agent for e in handled if e.selected_agent)
        actions = Counter(e.security_action.value for e in handled)
        return {
            "requests": len(handled),
            "agents": dict(agents),
            "security_actions": dict(actions),
            "avg_confidence": sum(e.confidence for e in handled) / len(handled),
            "avg_iterations": sum(e.iterations for e in handled) / len(handled),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

"""TrustStore -- per-identity trust contexts.

Each identity owns a :class:`TrustContext` and a dedicated lock, so score
updates for one session never block another.  Readers get snapshot copies;
the live context is only touched under its identity's lock.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from agent_choreography.domain.entities import TrustContext


class TrustStore:
    """Thread-safe store of trust contexts keyed by identity."""

    def __init__(self) -> None:
        self._contexts: dict[str, TrustContext] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _entry(self, identity: str) -> tuple[TrustContext, threading.Lock]:
        with self._registry_lock:
            context = self._contexts.get(identity)
            if context is None:
                context = TrustContext(identity=identity)
                self._contexts[identity] = context
                self._locks[identity] = threading.Lock()
            return context, self._locks[identity]

    def get(self, identity: str) -> TrustContext:
        """Return a snapshot of *identity*'s trust context (created on first use)."""
        context, lock = self._entry(identity)
        with lock:
            return replace(context)

    def update(self, identity: str, fn: Callable[[TrustContext], None]) -> TrustContext:
        """Apply *fn* to the live context under its lock; return a snapshot."""
        context, lock = self._entry(identity)
        with lock:
            fn(context)
            return replace(context)

    def record_violation(self, identity: str, penalty: float) -> TrustContext:
        return self.update(identity, lambda ctx: ctx.apply_violation(penalty))

    def record_clean(self, identity: str, reward: float, substantive: bool = True) -> TrustContext:
        return self.update(identity, lambda ctx: ctx.apply_clean(reward, substantive))

    def reset(self, identity: str) -> None:
        with self._registry_lock:
            self._contexts.pop(identity, None)
            self._locks.pop(identity, None)

    def identities(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._contexts)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._contexts)

    def __contains__(self, identity: str) -> bool:
        with self._registry_lock:
            return identity in self._contexts

    # -- serialization --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {"contexts": [self.get(i).to_dict() for i in self.identities()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrustStore:
        store = cls()
        for raw in data.get("contexts", []):
            context = TrustContext.from_dict(raw)
            store._contexts[context.identity] = context
            store._locks[context.identity] = threading.Lock()
        return store

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> TrustStore:
        return cls.from_dict(json.loads(json_str))

"""Mutable domain entities.

Only the per-identity trust context is an entity: it accumulates across
requests for the lifetime of a session.  Everything else in the domain is a
frozen value object (see :mod:`agent_choreography.domain.values`).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TrustContext:
    """Per-identity trust state.

    ``trust_level`` starts at 1.0 and is moved by the trust store only:
    decremented on a violation and nudged up on a clean, substantive
    interaction, always clamped to ``[0, 1]``.
    """

    identity: str
    trust_level: float = 1.0
    violation_count: int = 0
    interaction_count: int = 0
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not 0.0 <= self.trust_level <= 1.0:
            raise ValueError(f"trust_level must be in [0, 1], got {self.trust_level}")

    @property
    def session_age(self) -> float:
        """Seconds since the identity was first seen."""
        return time.time() - self.created_at

    def apply_violation(self, penalty: float) -> None:
        self.trust_level = max(0.0, self.trust_level - penalty)
        self.violation_count += 1
        self.interaction_count += 1

    def apply_clean(self, reward: float, substantive: bool) -> None:
        if substantive:
            self.trust_level = min(1.0, self.trust_level + reward)
        self.interaction_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "trust_level": self.trust_level,
            "violation_count": self.violation_count,
            "interaction_count": self.interaction_count,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrustContext:
        return cls(
            identity=data["identity"],
            trust_level=float(data.get("trust_level", 1.0)),
            violation_count=int(data.get("violation_count", 0)),
            interaction_count=int(data.get("interaction_count", 0)),
            created_at=float(data.get("created_at", time.time())),
        )

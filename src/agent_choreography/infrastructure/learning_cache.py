"""LearningCache -- bounded memory of past workflow outcomes.

Successful workflows above a confidence threshold and failed approaches are
kept in per-domain ring buffers.  Retrieval ranks stored records by lexical
similarity of their request context, then by recorded confidence.

It is a cache, not a database: records are evicted oldest-first once a
domain slot is full, and nothing in the pipeline depends on any record
surviving.  Each domain slot has its own lock, so concurrent workflows in
different domains never contend, and a record is always appended whole.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from typing import Any

import numpy as np

from agent_choreography.domain.values import (
    FailureRecord,
    MemoryRecord,
    OutcomePrediction,
)
from agent_choreography.infrastructure.config import LearningConfig
from agent_choreography.infrastructure.similarity import jaccard_similarity

logger = logging.getLogger(__name__)


class _DomainSlot:
    """Ring buffers of one domain, guarded by one lock."""

    __slots__ = ("lock", "successes", "failures")

    def __init__(self, success_capacity: int, failure_capacity: int) -> None:
        self.lock = threading.Lock()
        self.successes: deque[MemoryRecord] = deque(maxlen=success_capacity)
        self.failures: deque[FailureRecord] = deque(maxlen=failure_capacity)


class LearningCache:
    """Thread-safe, domain-partitioned learning cache.

    Parameters
    ----------
    config:
        Thresholds and per-domain capacities.  Defaults to ``LearningConfig()``.
    """

    def __init__(self, config: LearningConfig | None = None) -> None:
        self.config = config or LearningConfig()
        self.config.validate()
        self._slots: dict[str, _DomainSlot] = {}
        self._registry_lock = threading.Lock()

    def _slot(self, domain: str) -> _DomainSlot:
        slot = self._slots.get(domain)
        if slot is not None:
            return slot
        with self._registry_lock:
            slot = self._slots.get(domain)
            if slot is None:
                slot = _DomainSlot(
                    self.config.success_capacity, self.config.failure_capacity
                )
                self._slots[domain] = slot
            return slot

    # -- writing --------------------------------------------------------------

    def record_success(self, record: MemoryRecord) -> bool:
        """Remember *record* if its confidence reaches the learning threshold.

        Returns ``True`` if the record was stored.
        """
        if record.outcome.confidence < self.config.min_confidence_to_learn:
            logger.debug(
                "LearningCache: not learning from %s workflow (confidence %.2f < %.2f)",
                record.domain,
                record.outcome.confidence,
                self.config.min_confidence_to_learn,
            )
            return False
        slot = self._slot(record.domain)
        with slot.lock:
            slot.successes.append(record)
        logger.debug("LearningCache: stored success for domain %s", record.domain)
        return True

    def record_failure(self, domain: str, approach: str, reason: str) -> FailureRecord:
        """Remember a failed approach (always stored)."""
        failure = FailureRecord(domain=domain, approach=approach, reason=reason)
        slot = self._slot(domain)
        with slot.lock:
            slot.failures.append(failure)
        return failure

    # -- reading --------------------------------------------------------------

    def _successes(self, domain: str) -> list[MemoryRecord]:
        slot = self._slots.get(domain)
        if slot is None:
            return []
        with slot.lock:
            return list(slot.successes)

    def _failures(self, domain: str) -> list[FailureRecord]:
        slot = self._slots.get(domain)
        if slot is None:
            return []
        with slot.lock:
            return list(slot.failures)

    def get_best_practices(
        self,
        domain: str,
        context_text: str,
        limit: int | None = None,
    ) -> list[MemoryRecord]:
        """Return up to *limit* records most similar to *context_text*.

        Records below the similarity threshold are excluded.  Ties on
        similarity are broken by recorded confidence (highest first).
        """
        limit = self.config.top_k if limit is None else limit
        scored: list[tuple[float, MemoryRecord]] = []
        for record in self._successes(domain):
            similarity = jaccard_similarity(context_text, record.context)
            if similarity >= self.config.similarity_threshold:
                scored.append((similarity, record))

        scored.sort(key=lambda item: (item[0], item[1].outcome.confidence), reverse=True)
        return [record for _, record in scored[:limit]]

    def get_known_pitfalls(self, domain: str, limit: int | None = None) -> list[str]:
        """Return failed approaches of *domain*, newest first, as ``"approach: reason"``."""
        failures = self._failures(domain)
        failures.reverse()
        if limit is not None:
            failures = failures[:limit]
        return [f.render() for f in failures]

    def predict_outcome(
        self,
        domain: str,
        approach: str,
        context_text: str,
    ) -> OutcomePrediction:
        """Estimate the confidence *approach* will reach on *context_text*."""
        matches = [
            record
            for record in self._successes(domain)
            if jaccard_similarity(approach, record.approach)
            >= self.config.prediction_approach_similarity
            and jaccard_similarity(context_text, record.context)
            >= self.config.prediction_context_similarity
        ]
        if not matches:
            return OutcomePrediction(
                expected_confidence=0.5,
                reasoning="No similar historical workflows",
                sample_size=0,
            )

        confidences = np.array([r.outcome.confidence for r in matches])
        iterations = np.array([r.outcome.iterations for r in matches])
        return OutcomePrediction(
            expected_confidence=float(confidences.mean()),
            reasoning=(
                f"Based on {len(matches)} similar workflow(s) "
                f"averaging {iterations.mean():.1f} iteration(s)"
            ),
            sample_size=len(matches),
        )

    # -- maintenance ----------------------------------------------------------

    def domains(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._slots)

    def get_statistics(self) -> dict[str, Any]:
        """Counts and mean confidence per domain."""
        per_domain: dict[str, dict[str, Any]] = {}
        total_successes = 0
        total_failures = 0
        for domain in self.domains():
            successes = self._successes(domain)
            failures = self._failures(domain)
            total_successes += len(successes)
            total_failures += len(failures)
            per_domain[domain] = {
                "successes": len(successes),
                "failures": len(failures),
                "avg_confidence": (
                    float(np.mean([r.outcome.confidence for r in successes]))
                    if successes
                    else 0.0
                ),
            }
        return {
            "total_successes": total_successes,
            "total_failures": total_failures,
            "domains": per_domain,
        }

    def clear(self, domain: str | None = None) -> None:
        """Forget everything, or only *domain*."""
        with self._registry_lock:
            if domain is None:
                self._slots.clear()
            else:
                self._slots.pop(domain, None)

    # -- serialization --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for domain in self.domains():
            data[domain] = {
                "successes": [r.to_dict() for r in self._successes(domain)],
                "failures": [
                    {"approach": f.approach, "reason": f.reason, "timestamp": f.timestamp}
                    for f in self._failures(domain)
                ],
            }
        return {"domains": data}

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        config: LearningConfig | None = None,
    ) -> LearningCache:
        cache = cls(config)
        for domain, slot_data in data.get("domains", {}).items():
            slot = cache._slot(domain)
            for raw in slot_data.get("successes", []):
                slot.successes.append(MemoryRecord.from_dict(raw))
            for raw in slot_data.get("failures", []):
                slot.failures.append(
                    FailureRecord(
                        domain=domain,
                        approach=raw.get("approach", ""),
                        reason=raw.get("reason", ""),
                        timestamp=raw.get("timestamp", 0.0),
                    )
                )
        return cache

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str, config: LearningConfig | None = None) -> LearningCache:
        return cls.from_dict(json.loads(json_str), config)

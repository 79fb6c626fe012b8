"""InsightBoard -- lessons agents share with each other.

Where the learning cache remembers whole workflow outcomes for the domain
that produced them, the board holds short insights (a technique that
worked, a pitfall to avoid) that any agent can read.  A query returns the
insights most relevant to a request, including insights from other domains
whose tags overlap it.  Agents report back whether an insight helped, and
its success rate follows those reports as an exponential moving average.

Like the cache it is bounded: each domain keeps its newest
``max_per_domain`` insights.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from agent_choreography.domain.enums import InsightCategory
from agent_choreography.domain.values import Insight
from agent_choreography.infrastructure.similarity import tokenize

logger = logging.getLogger(__name__)

_BOOSTED = frozenset({InsightCategory.PATTERN, InsightCategory.BEST_PRACTICE})


def keywords(text: str) -> frozenset[str]:
    """Tokens long enough to be worth matching on."""
    return frozenset(token for token in tokenize(text) if len(token) > 3)


class InsightBoard:
    """Thread-safe, domain-partitioned board of shared insights.

    Parameters
    ----------
    max_per_domain:
        Insights kept per domain; the oldest is evicted first.
    min_relevance:
        Insights scoring at or below this are never returned.
    top_k:
        Default number of insights returned by :meth:`query`.
    usage_alpha:
        Weight of the newest report in the success-rate moving average.
    """

    def __init__(
        self,
        max_per_domain: int = 50,
        min_relevance: float = 0.3,
        top_k: int = 5,
        usage_alpha: float = 0.3,
    ) -> None:
        if max_per_domain < 1:
            raise ValueError("max_per_domain must be >= 1")
        if not 0.0 < usage_alpha <= 1.0:
            raise ValueError("usage_alpha must be in (0, 1]")
        self.max_per_domain = max_per_domain
        self.min_relevance = min_relevance
        self.top_k = top_k
        self.usage_alpha = usage_alpha
        self._domains: dict[str, deque[Insight]] = {}
        self._lock = threading.Lock()

    # -- writing --------------------------------------------------------------

    def contribute(
        self,
        agent_id: str,
        category: InsightCategory,
        domain: str,
        text: str,
        confidence: float,
        tags: Iterable[str] = (),
        evidence: Iterable[str] = (),
    ) -> Insight:
        insight = Insight(
            agent_id=agent_id,
            category=category,
            domain=domain,
            text=text,
            confidence=confidence,
            tags=frozenset(t.lower() for t in tags),
            evidence=tuple(evidence),
        )
        with self._lock:
            slot = self._domains.get(domain)
            if slot is None:
                slot = self._domains[domain] = deque(maxlen=self.max_per_domain)
            slot.append(insight)
        logger.debug(
            "InsightBoard: %s shared a %s insight for %s",
            agent_id, category.value, domain,
        )
        return insight

    def record_usage(self, insight_id: str, success: bool) -> Insight | None:
        """Fold one usage report into the insight's success rate.

        Returns the updated insight, or ``None`` if it has been evicted.
        """
        outcome = 1.0 if success else 0.0
        with self._lock:
            for slot in self._domains.values():
                for index, insight in enumerate(slot):
                    if insight.insight_id != insight_id:
                        continue
                    alpha = self.usage_alpha
                    rate = (1 - alpha) * insight.success_rate + alpha * outcome
                    updated = replace(
                        insight,
                        usage_count=insight.usage_count + 1,
                        success_rate=rate,
                    )
                    slot[index] = updated
                    return updated
        return None

    # -- reading --------------------------------------------------------------

    def _snapshot(self) -> dict[str, list[Insight]]:
        with self._lock:
            return {domain: list(slot) for domain, slot in self._domains.items()}

    def relevance(self, insight: Insight, context: str, tags: frozenset[str]) -> float:
        """Tag overlap (0.5), context word overlap (0.3), category boost (0.2)."""
        score = 0.0
        if tags:
            score += 0.5 * len(tags & insight.tags) / len(tags)
        words = keywords(context)
        if words:
            score += 0.3 * len(words & keywords(insight.text)) / len(words)
        if insight.category in _BOOSTED:
            score += 0.2
        return min(score, 1.0)

    def query(
        self,
        domain: str,
        context: str,
        tags: Iterable[str] | None = None,
        exclude_agent: str | None = None,
        limit: int | None = None,
    ) -> list[Insight]:
        """Most useful insights for *context*.

        Candidates are every insight of *domain* plus insights of other
        domains sharing at least one tag.  Tags default to the keywords of
        *context*.  Results are ordered by relevance x confidence x
        success rate.
        """
        query_tags = keywords(context) if tags is None else frozenset(t.lower() for t in tags)
        snapshot = self._snapshot()
        candidates = list(snapshot.get(domain, ()))
        for other, insights in snapshot.items():
            if other != domain:
                candidates.extend(i for i in insights if i.tags & query_tags)

        scored: list[tuple[float, Insight]] = []
        for insight in candidates:
            if exclude_agent is not None and insight.agent_id == exclude_agent:
                continue
            score = self.relevance(insight, context, query_tags)
            if score > self.min_relevance:
                scored.append((score * insight.confidence * insight.success_rate, insight))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [insight for _, insight in scored[: limit if limit is not None else self.top_k]]

    def aggregated_learnings(self, domain: str) -> dict[str, list[str]]:
        """Three short lists summarising what *domain* has learned.

        ``patterns``: reliable patterns (success rate above 0.7), most used
        first.  ``pitfalls``: most confident pitfalls.  ``techniques``:
        techniques and best practices with the best success rate.
        """
        insights = self._snapshot().get(domain, [])
        patterns = sorted(
            (
                i for i in insights
                if i.category is InsightCategory.PATTERN and i.success_rate > 0.7
            ),
            key=lambda i: i.usage_count,
            reverse=True,
        )[:3]
        pitfalls = sorted(
            (i for i in insights if i.category is InsightCategory.PITFALL),
            key=lambda i: i.confidence,
            reverse=True,
        )[:3]
        techniques = sorted(
            (
                i for i in insights
                if i.category in (InsightCategory.TECHNIQUE, InsightCategory.BEST_PRACTICE)
            ),
            key=lambda i: i.success_rate,
            reverse=True,
        )[:3]
        return {
            "patterns": [
                f"{i.text} (used {i.usage_count}x, {i.success_rate:.0%} success)"
                for i in patterns
            ],
            "pitfalls": [i.text for i in pitfalls],
            "techniques": [i.text for i in techniques],
        }

    def get_statistics(self) -> dict[str, Any]:
        snapshot = self._snapshot()
        by_category: dict[str, int] = {}
        for insights in snapshot.values():
            for insight in insights:
                key = insight.category.value
                by_category[key] = by_category.get(key, 0) + 1
        return {
            "total_insights": sum(len(v) for v in snapshot.values()),
            "domains": sorted(snapshot),
            "by_category": by_category,
        }

    def clear(self) -> None:
        with self._lock:
            self._domains.clear()

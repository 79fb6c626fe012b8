"""PatternLibrary -- curated solution patterns for build requests.

A small static catalog of UI/code patterns with usage statistics.  The
knowledge-retrieval stage of the build workflow asks it for the patterns most
relevant to a request; when two or more come back, the synthesis stage
combines them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from agent_choreography.domain.values import DesignPattern, PatternRecommendation
from agent_choreography.infrastructure.similarity import (
    jaccard_similarity,
    normalize_text,
    tokenize,
)

logger = logging.getLogger(__name__)

DEFAULT_PATTERNS: tuple[DesignPattern, ...] = (
    DesignPattern(
        pattern_id="simple-component",
        name="Simple Component Pattern",
        category="component",
        description="Self-contained functional component with minimal dependencies",
        when_to_use=(
            "Single-purpose UI elements",
            "Stateless display components",
            "Reusable widgets",
        ),
        advantages=("Easy to test", "Highly reusable", "No external dependencies"),
        related_patterns=("state-mgmt-hooks",),
        keywords=("button", "card", "widget", "badge", "component"),
    ),
    DesignPattern(
        pattern_id="dashboard-layout",
        name="Dashboard Layout Pattern",
        category="layout",
        description="Grid-based responsive layout for data dashboards",
        when_to_use=(
            "Multiple data visualizations",
            "Analytics interfaces",
            "Admin panels",
        ),
        advantages=(
            "Responsive by default",
            "Easy to add or remove widgets",
            "Professional appearance",
        ),
        related_patterns=("data-viz-canvas", "responsive-grid"),
        keywords=("dashboard", "analytics", "admin", "metrics", "kpi"),
    ),
    DesignPattern(
        pattern_id="form-validation",
        name="Form with Validation Pattern",
        category="form",
        description="Controlled form with real-time validation and error handling",
        when_to_use=(
            "User input collection",
            "Multi-field forms",
            "Data submission workflows",
        ),
        advantages=(
            "Immediate feedback",
            "Prevents invalid submissions",
            "Accessible error messages",
        ),
        related_patterns=("state-mgmt-hooks",),
        keywords=("form", "signup", "login", "validation", "input", "survey"),
    ),
    DesignPattern(
        pattern_id="data-viz-canvas",
        name="Canvas-Based Data Visualization",
        category="data-viz",
        description="Charts and graphs using HTML5 canvas for performance",
        when_to_use=(
            "Large datasets",
            "Real-time data updates",
            "Performance-critical visualizations",
        ),
        advantages=(
            "High performance with many data points",
            "Smooth animations",
            "Low DOM overhead",
        ),
        related_patterns=("dashboard-layout",),
        keywords=("chart", "charts", "graph", "graphs", "plot", "visualization"),
    ),
    DesignPattern(
        pattern_id="state-mgmt-hooks",
        name="React Hooks State Management",
        category="state-mgmt",
        description="Local state management using useState and useEffect",
        when_to_use=(
            "Component-local state",
            "Simple state updates",
            "No global state needed",
        ),
        advantages=(
            "No external dependencies",
            "Straightforward mental model",
            "Built into React",
        ),
        related_patterns=("simple-component", "form-validation"),
        keywords=("state", "hooks", "usestate", "counter", "toggle"),
    ),
    DesignPattern(
        pattern_id="list-with-actions",
        name="Interactive List Pattern",
        category="component",
        description="List with add, remove and edit functionality",
        when_to_use=("Todo lists", "Item collections", "CRUD interfaces"),
        advantages=(
            "Familiar interaction pattern",
            "Easy to extend",
            "Exercises state management",
        ),
        related_patterns=("state-mgmt-hooks", "form-validation"),
        keywords=("todo", "list", "crud", "tasks", "items"),
    ),
    DesignPattern(
        pattern_id="responsive-grid",
        name="Responsive CSS Grid Layout",
        category="layout",
        description="Auto-responsive grid using CSS Grid with flexible columns",
        when_to_use=("Card layouts", "Photo galleries", "Product grids"),
        advantages=("No media queries needed", "Auto-responsive", "Clean CSS"),
        related_patterns=("dashboard-layout",),
        keywords=("grid", "gallery", "cards", "catalog", "portfolio"),
    ),
)


@dataclass
class _PatternStats:
    successes: int = 0
    attempts: int = 0
    total_confidence: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.attempts if self.attempts else 0.0

    @property
    def avg_confidence(self) -> float:
        return self.total_confidence / self.attempts if self.attempts else 0.0


class PatternLibrary:
    """Pattern catalog with relevance scoring and usage statistics.

    Parameters
    ----------
    patterns:
        Catalog to serve.  Defaults to ``DEFAULT_PATTERNS``.
    min_relevance:
        Patterns at or below this relevance are never recommended.
    default_success_probability:
        Used for patterns without recorded attempts.
    """

    NAME_BOOST = 0.8
    KEYWORD_BOOST = 0.6
    DESCRIPTION_WEIGHT = 0.7

    def __init__(
        self,
        patterns: tuple[DesignPattern, ...] | None = None,
        min_relevance: float = 0.3,
        default_success_probability: float = 0.7,
    ) -> None:
        catalog = DEFAULT_PATTERNS if patterns is None else patterns
        self._patterns: dict[str, DesignPattern] = {p.pattern_id: p for p in catalog}
        self._stats: dict[str, _PatternStats] = {}
        self._lock = threading.Lock()
        self.min_relevance = min_relevance
        self.default_success_probability = default_success_probability

    def get_pattern(self, pattern_id: str) -> DesignPattern | None:
        return self._patterns.get(pattern_id)

    def __len__(self) -> int:
        return len(self._patterns)

    def relevance(self, pattern: DesignPattern, context: str) -> float:
        """Score how well *pattern* fits *context*, in ``[0, 1]``."""
        normalized = normalize_text(context)
        score = 0.0
        for scenario in pattern.when_to_use:
            score = max(score, jaccard_similarity(scenario, normalized))
        if normalize_text(pattern.name) in normalized:
            score = max(score, self.NAME_BOOST)
        if tokenize(normalized) & set(pattern.keywords):
            score = max(score, self.KEYWORD_BOOST)
        score = max(
            score,
            jaccard_similarity(pattern.description, normalized) * self.DESCRIPTION_WEIGHT,
        )
        return min(score, 1.0)

    def success_probability(self, pattern_id: str) -> float:
        with self._lock:
            stats = self._stats.get(pattern_id)
            if stats is None or stats.attempts == 0:
                return self.default_success_probability
            return stats.success_rate * 0.7 + stats.avg_confidence * 0.3

    def recommend(self, context: str, limit: int = 3) -> list[PatternRecommendation]:
        """Return up to *limit* patterns ranked by relevance x success probability."""
        recommendations: list[PatternRecommendation] = []
        for pattern in self._patterns.values():
            relevance = self.relevance(pattern, context)
            if relevance <= self.min_relevance:
                continue
            recommendations.append(
                PatternRecommendation(
                    pattern=pattern,
                    relevance=relevance,
                    success_probability=self.success_probability(pattern.pattern_id),
                )
            )
        recommendations.sort(key=lambda r: r.score, reverse=True)
        return recommendations[:limit]

    def update_pattern_stats(self, pattern_id: str, success: bool, confidence: float) -> None:
        """Record one use of *pattern_id* and its outcome."""
        if pattern_id not in self._patterns:
            logger.warning("PatternLibrary: unknown pattern %r", pattern_id)
            return
        with self._lock:
            stats = self._stats.setdefault(pattern_id, _PatternStats())
            stats.attempts += 1
            stats.total_confidence += confidence
            if success:
                stats.successes += 1

    def get_top_patterns(self, limit: int = 5) -> list[tuple[DesignPattern, float]]:
        """Patterns with recorded attempts, best success probability first."""
        with self._lock:
            used = [pid for pid, s in self._stats.items() if s.attempts > 0]
        ranked = sorted(
            ((self._patterns[pid], self.success_probability(pid)) for pid in used),
            key=lambda item: item[1],
            reverse=True,
        )
        return ranked[:limit]

"""Tests for lexical similarity helpers."""

from __future__ import annotations

import pytest

from agent_choreography.infrastructure.similarity import (
    jaccard_similarity,
    normalize_text,
    tokenize,
)


class TestNormalize:

    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize_text("  Build, a REACT-dashboard!  ") == "build a react dashboard"

    def test_tokenize_empty(self) -> None:
        assert tokenize("   ...  ") == frozenset()


class TestJaccard:

    def test_identical(self) -> None:
        assert jaccard_similarity("build a dashboard", "Build a dashboard.") == 1.0

    def test_partial_overlap(self) -> None:
        assert jaccard_similarity(
            "build react dashboard charts", "build react dashboard"
        ) == pytest.approx(0.75)

    def test_disjoint(self) -> None:
        assert jaccard_similarity("vector database", "todo app") == 0.0

    def test_both_empty(self) -> None:
        assert jaccard_similarity("", "") == 0.0

    def test_symmetric(self) -> None:
        a, b = "compare vector databases", "compare relational databases today"
        assert jaccard_similarity(a, b) == jaccard_similarity(b, a)

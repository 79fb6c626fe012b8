"""Configuration dataclasses for the agent choreography core.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  No third-party dependencies -- just
stdlib ``dataclasses``.

Configs are **frozen** (``frozen=True``) so a single instance can be shared by
every concurrent workflow without risking silent mutation.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any


def _check_unit(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"{name} must be in [0, 1], got {value}")


# ===================================================================== #
#  Backend Configuration                                                 #
# ===================================================================== #

_VALID_PROVIDERS = frozenset({"auto", "anthropic", "openai"})


@dataclass(frozen=True)
class BackendConfig:
    """How to reach the generative backend and how patiently.

    Attributes
    ----------
    provider:
        ``"anthropic"``, ``"openai"`` or ``"auto"`` (pick whichever API key
        is present in the environment).
    model_name:
        Provider model identifier.  Empty means the provider default.
    temperature:
        Sampling temperature for generation calls.
    bid_temperature:
        Sampling temperature for bidding calls (kept low for stable routing).
    max_tokens:
        Maximum tokens per response.
    timeout:
        Seconds before a single backend call is abandoned.
    retries:
        Extra attempts after a timeout or rate limit.
    retry_backoff:
        Seconds to wait before retry *n* is ``retry_backoff * n``.
    """

    provider: str = "auto"
    model_name: str = ""
    temperature: float = 0.7
    bid_temperature: float = 0.1
    max_tokens: int = 4096
    timeout: float = 30.0
    retries: int = 1
    retry_backoff: float = 1.0

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.provider not in _VALID_PROVIDERS:
            raise ValueError(
                f"Unknown provider {self.provider!r}. "
                f"Valid providers: {sorted(_VALID_PROVIDERS)}"
            )
        if not (0.0 <= self.temperature <= 2.0):
            raise ValueError(f"temperature must be in [0, 2], got {self.temperature}")
        if not (0.0 <= self.bid_temperature <= 2.0):
            raise ValueError(
                f"bid_temperature must be in [0, 2], got {self.bid_temperature}"
            )
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")
        if self.retry_backoff < 0:
            raise ValueError(f"retry_backoff must be >= 0, got {self.retry_backoff}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackendConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Workflow Configuration                                                #
# ===================================================================== #

@dataclass(frozen=True)
class WorkflowConfig:
    """Bounds of the iterative build state machine.

    Attributes
    ----------
    max_iterations:
        Hard upper bound on generate/evaluate cycles (forced completion).
    confidence_floor:
        Confidence below which another revision is attempted.
    max_evaluation_failures:
        Consecutive evaluation fallbacks that force early completion.
    knowledge_limit:
        Maximum patterns / best practices retrieved per workflow.
    time_budget_seconds:
        Wall-clock budget of one workflow.
    critical_time_seconds:
        Remaining time below which the strategy service aborts.
    """

    max_iterations: int = 3
    confidence_floor: float = 0.8
    max_evaluation_failures: int = 3
    knowledge_limit: int = 3
    time_budget_seconds: float = 120.0
    critical_time_seconds: float = 30.0

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        _check_unit("confidence_floor", self.confidence_floor)
        if self.max_evaluation_failures < 1:
            raise ValueError(
                f"max_evaluation_failures must be >= 1, got {self.max_evaluation_failures}"
            )
        if self.knowledge_limit < 0:
            raise ValueError(f"knowledge_limit must be >= 0, got {self.knowledge_limit}")
        if self.time_budget_seconds <= 0:
            raise ValueError(
                f"time_budget_seconds must be > 0, got {self.time_budget_seconds}"
            )
        if self.critical_time_seconds < 0:
            raise ValueError(
                f"critical_time_seconds must be >= 0, got {self.critical_time_seconds}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Evaluator Configuration                                               #
# ===================================================================== #

DEFAULT_DIMENSION_WEIGHTS: Mapping[str, float] = {
    "functionality": 0.35,
    "usability": 0.30,
    "structural_quality": 0.20,
    "completeness": 0.15,
}


@dataclass(frozen=True)
class EvaluatorConfig:
    """Calibration constants of the evaluator.

    Attributes
    ----------
    weights:
        Dimension name -> weight of the aggregate confidence.
    calibration_low / calibration_high:
        Raw scores in ``[low, high)`` are considered harshly under-scored.
    code_boost / default_boost:
        Multiplicative boost applied inside the band (code rubric vs others).
    good_threshold:
        Scores at or above this are never touched.
    complete_floor:
        Per-dimension floor for substantially complete artifacts.
    complete_min_length:
        Minimum artifact length (characters) to count as substantially complete.
    preview_chars:
        How much of the artifact is shown to the backend.
    """

    weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_DIMENSION_WEIGHTS)
    )
    calibration_low: float = 0.2
    calibration_high: float = 0.5
    code_boost: float = 1.4
    default_boost: float = 1.2
    good_threshold: float = 0.7
    complete_floor: float = 0.6
    complete_min_length: int = 1000
    preview_chars: int = 3000

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if not self.weights:
            raise ValueError("weights must not be empty")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError(f"weights must be non-negative, got {dict(self.weights)}")
        if sum(self.weights.values()) <= 0:
            raise ValueError("weights must not all be zero")
        _check_unit("calibration_low", self.calibration_low)
        _check_unit("calibration_high", self.calibration_high)
        if self.calibration_low >= self.calibration_high:
            raise ValueError(
                f"calibration_low ({self.calibration_low}) must be < "
                f"calibration_high ({self.calibration_high})"
            )
        if self.code_boost < 1.0 or self.default_boost < 1.0:
            raise ValueError("calibration boosts must be >= 1.0")
        _check_unit("good_threshold", self.good_threshold)
        _check_unit("complete_floor", self.complete_floor)
        if self.complete_min_length < 0:
            raise ValueError(
                f"complete_min_length must be >= 0, got {self.complete_min_length}"
            )
        if self.preview_chars < 1:
            raise ValueError(f"preview_chars must be >= 1, got {self.preview_chars}")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["weights"] = dict(self.weights)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvaluatorConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Router Configuration                                                  #
# ===================================================================== #

@dataclass(frozen=True)
class RouterConfig:
    """Selection constants of the self-selection router.

    Attributes
    ----------
    clear_winner_threshold:
        A bid strictly above this wins immediately.
    failed_bid_confidence:
        Confidence substituted for a bid whose backend call failed.
    bid_timeout:
        Seconds to wait for the whole bidding round.
    """

    clear_winner_threshold: float = 0.8
    failed_bid_confidence: float = 0.3
    bid_timeout: float = 20.0

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        _check_unit("clear_winner_threshold", self.clear_winner_threshold)
        _check_unit("failed_bid_confidence", self.failed_bid_confidence)
        if self.bid_timeout <= 0:
            raise ValueError(f"bid_timeout must be > 0, got {self.bid_timeout}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouterConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Learning Configuration                                                #
# ===================================================================== #

@dataclass(frozen=True)
class LearningConfig:
    """Thresholds and capacities of the learning cache."""

    min_confidence_to_learn: float = 0.7
    similarity_threshold: float = 0.4
    success_capacity: int = 100
    failure_capacity: int = 50
    top_k: int = 3
    prediction_approach_similarity: float = 0.5
    prediction_context_similarity: float = 0.4

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        _check_unit("min_confidence_to_learn", self.min_confidence_to_learn)
        _check_unit("similarity_threshold", self.similarity_threshold)
        _check_unit("prediction_approach_similarity", self.prediction_approach_similarity)
        _check_unit("prediction_context_similarity", self.prediction_context_similarity)
        if self.success_capacity < 1:
            raise ValueError(f"success_capacity must be >= 1, got {self.success_capacity}")
        if self.failure_capacity < 1:
            raise ValueError(f"failure_capacity must be >= 1, got {self.failure_capacity}")
        if self.top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {self.top_k}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Security Configuration                                                #
# ===================================================================== #

@dataclass(frozen=True)
class SecurityConfig:
    """Trust dynamics and decision thresholds of the security pipeline.

    Attributes
    ----------
    violation_penalty:
        Trust subtracted on a violation.
    clean_reward:
        Trust added on a clean, substantive interaction.
    low_trust_threshold:
        Below this trust level the effective severity is raised one level.
    block_confidence:
        A HIGH risk blocks only at or above this confidence.
    history_turns:
        Prior turns shown to the intent classifier.
    min_substantive_words:
        Minimum word count for a clean interaction to earn trust.
    """

    violation_penalty: float = 0.2
    clean_reward: float = 0.05
    low_trust_threshold: float = 0.5
    block_confidence: float = 0.8
    history_turns: int = 5
    min_substantive_words: int = 3

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        _check_unit("violation_penalty", self.violation_penalty)
        _check_unit("clean_reward", self.clean_reward)
        _check_unit("low_trust_threshold", self.low_trust_threshold)
        _check_unit("block_confidence", self.block_confidence)
        if self.clean_reward >= self.violation_penalty:
            raise ValueError(
                "clean_reward must be smaller than violation_penalty, got "
                f"{self.clean_reward} >= {self.violation_penalty}"
            )
        if self.history_turns < 0:
            raise ValueError(f"history_turns must be >= 0, got {self.history_turns}")
        if self.min_substantive_words < 0:
            raise ValueError(
                f"min_substantive_words must be >= 0, got {self.min_substantive_words}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecurityConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  JSON loader                                                           #
# ===================================================================== #

_CONFIG_MAP: dict[str, type] = {
    "backend": BackendConfig,
    "workflow": WorkflowConfig,
    "evaluator": EvaluatorConfig,
    "router": RouterConfig,
    "learning": LearningConfig,
    "security": SecurityConfig,
}


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    The JSON is expected to be an object whose top-level keys correspond to
    config section names (``backend``, ``workflow``, ``evaluator``,
    ``router``, ``learning``, ``security``).  Unknown sections are preserved
    as raw dicts.

    Returns a dict mapping section name -> config instance (or raw dict).
    """
    raw = json.loads(json_str)
    if not isinstance(raw, dict):
        raise ValueError("Top-level JSON must be an object")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    return result

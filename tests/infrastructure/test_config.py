"""Tests for the configuration dataclasses and JSON loader."""

from __future__ import annotations

import dataclasses
import json

import pytest

from agent_choreography.infrastructure.config import (
    DEFAULT_DIMENSION_WEIGHTS,
    BackendConfig,
    EvaluatorConfig,
    LearningConfig,
    RouterConfig,
    SecurityConfig,
    WorkflowConfig,
    load_config_from_json,
)


class TestDefaults:

    def test_workflow_defaults(self) -> None:
        cfg = WorkflowConfig()
        assert cfg.max_iterations == 3
        assert cfg.confidence_floor == 0.8
        cfg.validate()

    def test_router_defaults(self) -> None:
        cfg = RouterConfig()
        assert cfg.clear_winner_threshold == 0.8
        assert cfg.failed_bid_confidence == 0.3

    def test_evaluator_weights_sum_to_one(self) -> None:
        assert sum(DEFAULT_DIMENSION_WEIGHTS.values()) == pytest.approx(1.0)
        assert EvaluatorConfig().weights == DEFAULT_DIMENSION_WEIGHTS

    def test_security_defaults(self) -> None:
        cfg = SecurityConfig()
        assert cfg.violation_penalty == 0.2
        assert cfg.clean_reward == 0.05
        assert cfg.low_trust_threshold == 0.5

    def test_all_defaults_validate(self) -> None:
        for cls in (BackendConfig, WorkflowConfig, EvaluatorConfig,
                    RouterConfig, LearningConfig, SecurityConfig):
            cls().validate()

    def test_configs_are_frozen(self) -> None:
        cfg = WorkflowConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.max_iterations = 5  # type: ignore[misc]


class TestValidation:

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider"):
            BackendConfig(provider="llama").validate()

    def test_zero_iterations(self) -> None:
        with pytest.raises(ValueError, match="max_iterations"):
            WorkflowConfig(max_iterations=0).validate()

    def test_confidence_floor_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="confidence_floor"):
            WorkflowConfig(confidence_floor=1.5).validate()

    def test_calibration_band_order(self) -> None:
        with pytest.raises(ValueError, match="calibration_low"):
            EvaluatorConfig(calibration_low=0.6, calibration_high=0.5).validate()

    def test_boost_below_one(self) -> None:
        with pytest.raises(ValueError, match="boosts"):
            EvaluatorConfig(code_boost=0.9).validate()

    def test_reward_must_be_smaller_than_penalty(self) -> None:
        with pytest.raises(ValueError, match="clean_reward"):
            SecurityConfig(clean_reward=0.3, violation_penalty=0.2).validate()

    def test_bid_timeout_positive(self) -> None:
        with pytest.raises(ValueError, match="bid_timeout"):
            RouterConfig(bid_timeout=0).validate()


class TestSerialization:

    def test_from_dict_ignores_unknown_keys(self) -> None:
        cfg = WorkflowConfig.from_dict({"max_iterations": 5, "colour": "blue"})
        assert cfg.max_iterations == 5

    def test_from_dict_validates(self) -> None:
        with pytest.raises(ValueError):
            LearningConfig.from_dict({"top_k": 0})

    def test_evaluator_to_dict_round_trip(self) -> None:
        cfg = EvaluatorConfig(code_boost=1.5)
        restored = EvaluatorConfig.from_dict(cfg.to_dict())
        assert restored.code_boost == 1.5
        assert dict(restored.weights) == dict(cfg.weights)


class TestLoadConfigFromJson:

    def test_typed_sections(self) -> None:
        configs = load_config_from_json(json.dumps({
            "backend": {"provider": "openai", "timeout": 10},
            "workflow": {"max_iterations": 2},
            "router": {"bid_timeout": 5},
        }))
        assert isinstance(configs["backend"], BackendConfig)
        assert configs["backend"].provider == "openai"
        assert configs["workflow"].max_iterations == 2
        assert configs["router"].bid_timeout == 5

    def test_unknown_section_preserved_raw(self) -> None:
        configs = load_config_from_json('{"dashboard": {"theme": "dark"}}')
        assert configs["dashboard"] == {"theme": "dark"}

    def test_non_object_rejected(self) -> None:
        with pytest.raises(ValueError, match="object"):
            load_config_from_json("[1, 2, 3]")

    def test_invalid_section_values_raise(self) -> None:
        with pytest.raises(ValueError):
            load_config_from_json('{"security": {"violation_penalty": 2.0}}')

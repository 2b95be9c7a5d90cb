"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hydro_mrv.config.manager import ConfigManager
from hydro_mrv.config.schema import AppConfig, ScorerConfig, VerificationPolicy


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.scorer.n_trees == 100
        assert config.scorer.sample_size == 256
        assert config.scorer.anomaly_threshold == 0.5
        assert config.scorer.min_training_samples == 10
        assert config.policy.anomaly_threshold == 0.5
        assert config.policy.max_reading_age_seconds == 3600
        assert config.logging.format == "json"

    def test_custom_values(self) -> None:
        config = AppConfig(
            scorer={"n_trees": 20, "seed": 3},
            policy={"max_plausible_kwh_per_reading": 5000},
        )
        assert config.scorer.n_trees == 20
        assert config.scorer.seed == 3
        assert config.policy.max_plausible_kwh_per_reading == 5000.0

    def test_threshold_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            VerificationPolicy(anomaly_threshold=1.5)

    def test_tree_count_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ScorerConfig(n_trees=0)

    def test_contamination_defaults_off_and_is_bounded(self) -> None:
        assert ScorerConfig().contamination is None
        assert ScorerConfig(contamination=0.05).contamination == 0.05
        with pytest.raises(ValidationError):
            ScorerConfig(contamination=0.6)
        with pytest.raises(ValidationError):
            ScorerConfig(contamination=0.0)


class TestConfigManager:
    def test_load_defaults_only(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("scorer:\n  n_trees: 40\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml")
        config = mgr.load()
        assert config.scorer.n_trees == 40
        assert config.scorer.sample_size == 256

    def test_user_overrides(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("policy:\n  max_reading_age_seconds: 3600\n  anomaly_threshold: 0.5\n")
        user_file = tmp_path / "user.yaml"
        user_file.write_text("policy:\n  max_reading_age_seconds: 600\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=user_file)
        config = mgr.load()
        assert config.policy.max_reading_age_seconds == 600
        assert config.policy.anomaly_threshold == 0.5

    def test_deep_merge(self) -> None:
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        override = {"a": {"b": 10}, "e": 5}
        result = ConfigManager._deep_merge(base, override)
        assert result == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}

    def test_config_before_load_raises(self, tmp_path: Path) -> None:
        mgr = ConfigManager(defaults_path=tmp_path / "d.yaml", user_path=tmp_path / "u.yaml")
        with pytest.raises(RuntimeError):
            _ = mgr.config

    def test_save_user_config(self, config_manager: ConfigManager) -> None:
        config = config_manager.save_user_config({"policy": {"anomaly_threshold": 0.65}})
        assert config.policy.anomaly_threshold == 0.65
        # Defaults survive the merge
        assert config.scorer.seed == 7

    def test_invalid_update_not_written(self, config_manager: ConfigManager, tmp_path: Path) -> None:
        with pytest.raises(ValidationError):
            config_manager.save_user_config({"scorer": {"n_trees": -1}})
        assert not (tmp_path / "config.yaml").exists()

    def test_to_json(self, config_manager: ConfigManager) -> None:
        json_str = config_manager.to_json()
        assert '"n_trees": 25' in json_str
        assert '"max_plausible_kwh_per_reading"' in json_str

"""Shared test fixtures for the MRV verifier."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hydro_mrv.anomaly.scorer import AnomalyScorer
from hydro_mrv.anomaly.synthetic import generate_readings
from hydro_mrv.config.manager import ConfigManager
from hydro_mrv.config.schema import AppConfig, ScorerConfig, VerificationPolicy
from hydro_mrv.models import TelemetryReading

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("scorer:\n  seed: 7\n  n_trees: 25\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user)
    mgr.load()
    return mgr


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture
def policy() -> VerificationPolicy:
    return VerificationPolicy(
        anomaly_threshold=0.5,
        max_plausible_kwh_per_reading=5000,
        max_reading_age_seconds=3600,
    )


@pytest.fixture
def make_reading() -> Callable[..., TelemetryReading]:
    """Factory for readings taken shortly before NOW."""

    def _make(
        generated_kwh: float = 1000.0,
        grid_emission_factor: float = 0.8,
        device_id: str = "TURBINE-001",
        age_seconds: float = 10.0,
        **kwargs: object,
    ) -> TelemetryReading:
        return TelemetryReading(
            device_id=device_id,
            timestamp_utc=NOW - timedelta(seconds=age_seconds),
            generated_kwh=generated_kwh,
            grid_emission_factor=grid_emission_factor,
            **kwargs,
        )

    return _make


@pytest.fixture(scope="session")
def training_readings() -> list[TelemetryReading]:
    return [s.reading for s in generate_readings(400, seed=11, device_count=24)]


@pytest.fixture(scope="session")
def scorer_config() -> ScorerConfig:
    return ScorerConfig(n_trees=50, sample_size=128, seed=42)


@pytest.fixture(scope="session")
def trained_scorer(
    scorer_config: ScorerConfig,
    training_readings: list[TelemetryReading],
) -> AnomalyScorer:
    scorer = AnomalyScorer(scorer_config)
    scorer.train(training_readings)
    return scorer

"""Pydantic configuration models for the scorer, verifier policy and logging."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ScorerConfig(BaseModel):
    """Isolation-forest hyperparameters.

    ``seed`` fixes tree construction so that repeated training on the same
    dataset yields identical scores; leave it unset for a fresh forest per run.
    With ``contamination`` set, the score threshold is calibrated from the
    training scores instead of using ``anomaly_threshold``.
    """
    n_trees: int = Field(100, ge=1)
    sample_size: int = Field(256, ge=2)
    seed: int | None = None
    anomaly_threshold: float = Field(0.5, ge=0.0, le=1.0)
    contamination: float | None = Field(None, gt=0.0, le=0.5)
    min_training_samples: int = Field(10, ge=2)
    synthetic_training_samples: int = Field(2000, ge=10)
    synthetic_device_count: int = Field(32, ge=1)
    saved_model_path: str = ""  # empty = don't persist


class VerificationPolicy(BaseModel):
    anomaly_threshold: float = Field(0.5, ge=0.0, le=1.0)
    max_plausible_kwh_per_reading: float = Field(6000.0, gt=0.0)
    max_reading_age_seconds: int = Field(3600, ge=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"  # "json" or "console"
    file: str = ""


class AppConfig(BaseModel):
    """Root configuration model for the verifier core."""

    scorer: ScorerConfig = ScorerConfig()
    policy: VerificationPolicy = VerificationPolicy()
    logging: LoggingConfig = LoggingConfig()

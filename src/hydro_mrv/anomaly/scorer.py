"""Anomaly scorer: isolation forest over telemetry features.

Training replaces the model under an exclusive write lock; scoring takes a
shared read lock, so many threads may score while no training is running.
"""

from __future__ import annotations

import logging
import pickle
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from hydro_mrv.anomaly.features import FEATURE_NAMES, extract_feature_matrix, extract_features
from hydro_mrv.anomaly.forest import IsolationForest
from hydro_mrv.anomaly.rwlock import ReadWriteLock
from hydro_mrv.config.schema import ScorerConfig
from hydro_mrv.errors import InsufficientTrainingDataError, ModelNotTrainedError
from hydro_mrv.models import AnomalyScore, TelemetryReading

logger = logging.getLogger(__name__)

MODEL_FORMAT_VERSION = 2


class AnomalyScorer:
    """Scores readings for anomaly risk. Owned explicitly by its consumers."""

    def __init__(self, config: ScorerConfig | None = None) -> None:
        self._config = config or ScorerConfig()
        self._lock = ReadWriteLock()
        self._forest: IsolationForest | None = None
        self._threshold = self._config.anomaly_threshold
        self._trained_on = 0
        self._trained_at: datetime | None = None

    @property
    def config(self) -> ScorerConfig:
        return self._config

    @property
    def is_trained(self) -> bool:
        with self._lock.read():
            return self._forest is not None

    @property
    def threshold(self) -> float:
        """Configured threshold, or the calibrated one when contamination is set."""
        with self._lock.read():
            return self._threshold

    def train(self, readings: Sequence[TelemetryReading]) -> None:
        """Build a fresh forest from historical readings, replacing any existing one."""
        minimum = self._config.min_training_samples
        if len(readings) < minimum:
            raise InsufficientTrainingDataError(required=minimum, actual=len(readings))

        with self._lock.write():
            rows = extract_feature_matrix(readings)
            forest = IsolationForest(
                n_trees=self._config.n_trees,
                sample_size=self._config.sample_size,
                seed=self._config.seed,
                contamination=self._config.contamination,
            ).fit(rows)
            self._forest = forest
            if self._config.contamination is not None:
                self._threshold = forest.threshold
            self._trained_on = len(readings)
            self._trained_at = datetime.now(timezone.utc)

        logger.info(
            "Anomaly scorer trained on %d readings (%d trees, seed=%s, threshold=%.4f)",
            len(readings), self._config.n_trees, self._config.seed, self._threshold,
        )

    def score(
        self,
        reading: TelemetryReading,
        previous: TelemetryReading | None = None,
    ) -> AnomalyScore:
        """Score one reading; ``previous`` is the same device's prior reading, if known."""
        features = extract_features(reading, previous)
        with self._lock.read():
            if self._forest is None:
                raise ModelNotTrainedError()
            value = self._forest.score(features)
            threshold = self._threshold
        score = AnomalyScore.from_value(value, threshold)
        if score.is_anomalous:
            logger.info(
                "Anomalous reading from %s: score %.4f > %.4f",
                reading.device_id, value, threshold,
            )
        return score

    def score_many(self, readings: Sequence[TelemetryReading]) -> list[AnomalyScore]:
        """Score a batch, chaining each device's previous reading chronologically."""
        rows = extract_feature_matrix(readings)
        with self._lock.read():
            if self._forest is None:
                raise ModelNotTrainedError()
            values = self._forest.score_many(rows)
            threshold = self._threshold
        return [AnomalyScore.from_value(v, threshold) for v in values]

    def info(self) -> dict[str, Any]:
        with self._lock.read():
            return {
                "trained": self._forest is not None,
                "trained_on": self._trained_on,
                "trained_at": self._trained_at.isoformat() if self._trained_at else None,
                "n_trees": self._config.n_trees,
                "sample_size": self._config.sample_size,
                "seed": self._config.seed,
                "contamination": self._config.contamination,
                "threshold": self._threshold,
                "feature_names": list(FEATURE_NAMES),
                "algorithm": "IsolationForest",
            }

    # ── Persistence ──────────────────────────────────────────

    def save(self, path: Path | str) -> Path:
        """Pickle the trained model, creating parent directories."""
        with self._lock.read():
            if self._forest is None:
                raise ModelNotTrainedError("No trained model to save")
            payload = {
                "version": MODEL_FORMAT_VERSION,
                "algorithm": "IsolationForest",
                "feature_names": list(FEATURE_NAMES),
                "trained_on": self._trained_on,
                "trained_at": self._trained_at.isoformat() if self._trained_at else None,
                "threshold": self._threshold,
                "calibrated": self._config.contamination is not None,
                "forest": self._forest,
            }
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            pickle.dump(payload, f)
        logger.info("Anomaly model saved to %s", target)
        return target

    @classmethod
    def load(cls, path: Path | str, config: ScorerConfig | None = None) -> AnomalyScorer:
        """Restore a scorer from a model file written by ``save``.

        Model files are pickles; only load files from a trusted location.
        """
        with open(path, "rb") as f:
            data = pickle.load(f)
        if not isinstance(data, dict) or data.get("version") != MODEL_FORMAT_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            raise ValueError(f"Unsupported model format version: {version!r}")
        if list(data.get("feature_names", [])) != list(FEATURE_NAMES):
            raise ValueError(f"Model features {data.get('feature_names')} do not match {list(FEATURE_NAMES)}")

        scorer = cls(config)
        scorer._forest = data["forest"]
        # A calibrated threshold belongs to the model it was derived from
        if data.get("calibrated"):
            scorer._threshold = float(data["threshold"])
        scorer._trained_on = int(data.get("trained_on", 0))
        trained_at = data.get("trained_at")
        scorer._trained_at = datetime.fromisoformat(trained_at) if trained_at else None
        logger.info("Anomaly model loaded from %s (trained on %d readings)", path, scorer._trained_on)
        return scorer

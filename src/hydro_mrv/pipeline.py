"""End-to-end MRV flow for incoming telemetry.

  reading → emissions calculator ┐
  reading → anomaly scorer       ┴→ attestation builder → verifier → store

The pipeline owns its scorer explicitly; there is no process-wide model.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from hydro_mrv.anomaly.scorer import AnomalyScorer
from hydro_mrv.anomaly.synthetic import generate_readings
from hydro_mrv.attestation.builder import AttestationBuilder
from hydro_mrv.attestation.store import InMemoryAttestationStore
from hydro_mrv.config.schema import AppConfig, VerificationPolicy
from hydro_mrv.emissions.calculator import compute
from hydro_mrv.logging.context import reading_context
from hydro_mrv.models import Attestation, TelemetryReading, VerificationDecision, VerificationState
from hydro_mrv.verification.verifier import Verifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    attestation: Attestation
    decision: VerificationDecision


@dataclass
class PipelineSummary:
    total: int
    approved: int
    rejected: int
    pending: int
    net_reduction_kg_approved: float

    @property
    def approval_rate(self) -> float:
        decided = self.approved + self.rejected
        return self.approved / decided if decided else 0.0


class MRVPipeline:
    """Processes readings through the full attest-and-verify flow."""

    def __init__(
        self,
        scorer: AnomalyScorer,
        policy: VerificationPolicy,
        builder: AttestationBuilder | None = None,
        verifier: Verifier | None = None,
        store: InMemoryAttestationStore | None = None,
    ) -> None:
        self._scorer = scorer
        self._policy = policy
        self._builder = builder or AttestationBuilder()
        self._verifier = verifier or Verifier()
        self._store = store or InMemoryAttestationStore()
        self._last_reading: dict[str, TelemetryReading] = {}
        self._last_lock = threading.Lock()

    @property
    def scorer(self) -> AnomalyScorer:
        return self._scorer

    @property
    def store(self) -> InMemoryAttestationStore:
        return self._store

    @property
    def policy(self) -> VerificationPolicy:
        return self._policy

    def _previous_for(self, reading: TelemetryReading) -> TelemetryReading | None:
        with self._last_lock:
            previous = self._last_reading.get(reading.device_id)
        if previous is not None and previous.timestamp_utc >= reading.timestamp_utc:
            # Out-of-order or duplicate reading: no usable predecessor
            return None
        return previous

    def _remember(self, reading: TelemetryReading) -> None:
        with self._last_lock:
            latest = self._last_reading.get(reading.device_id)
            if latest is None or latest.timestamp_utc < reading.timestamp_utc:
                self._last_reading[reading.device_id] = reading

    def process(self, reading: TelemetryReading) -> PipelineResult:
        """Attest and verify one reading; errors propagate to the caller."""
        with reading_context(reading.device_id):
            emissions = compute(reading)
            anomaly = self._scorer.score(reading, self._previous_for(reading))
            self._remember(reading)
            attestation = self._builder.build(reading, emissions, anomaly)
            existing = self._store.decision_for(attestation.content_hash)
            if existing is not None:
                # Resubmitted content: the recorded decision is final
                logger.info("Attestation %s already decided", attestation.content_hash[:12])
                return PipelineResult(attestation=self._store.get(attestation.content_hash), decision=existing)
            self._store.save(attestation)
            decision = self._verifier.verify(attestation, self._policy)
            self._store.record_decision(decision)
            logger.debug(
                "Processed reading: %.2f kWh, anomaly %.4f, %s",
                reading.generated_kwh, anomaly.value, decision.reason_code.value,
            )
        return PipelineResult(attestation=attestation, decision=decision)

    def process_many(self, readings: Iterable[TelemetryReading]) -> list[PipelineResult]:
        ordered = sorted(readings, key=lambda r: r.timestamp_utc)
        return [self.process(r) for r in ordered]

    def summary(self) -> PipelineSummary:
        approved = self._store.find_by_status(VerificationState.APPROVED)
        rejected = self._store.find_by_status(VerificationState.REJECTED)
        pending = self._store.find_by_status(VerificationState.PENDING)
        return PipelineSummary(
            total=self._store.count(),
            approved=len(approved),
            rejected=len(rejected),
            pending=len(pending),
            net_reduction_kg_approved=sum(a.emissions.net_reduction_kg for a in approved),
        )


def build_scorer(config: AppConfig) -> AnomalyScorer:
    """Load the persisted model if configured and present, else train on synthetic data."""
    scorer_cfg = config.scorer
    if scorer_cfg.saved_model_path:
        path = Path(scorer_cfg.saved_model_path)
        if path.exists():
            return AnomalyScorer.load(path, scorer_cfg)

    scorer = AnomalyScorer(scorer_cfg)
    samples = generate_readings(
        scorer_cfg.synthetic_training_samples,
        seed=scorer_cfg.seed,
        device_count=scorer_cfg.synthetic_device_count,
    )
    scorer.train([s.reading for s in samples])
    return scorer


def build_pipeline(config: AppConfig) -> MRVPipeline:
    """Wire a pipeline with its own scorer.

    When the scorer calibrates its threshold (``scorer.contamination``), the
    policy's anomaly threshold follows the calibrated value.
    """
    scorer = build_scorer(config)
    policy = config.policy
    if config.scorer.contamination is not None:
        policy = policy.model_copy(update={"anomaly_threshold": scorer.threshold})
        logger.info("Policy anomaly threshold calibrated to %.4f", scorer.threshold)
    return MRVPipeline(scorer=scorer, policy=policy)

"""Builds hash-bound attestations from a reading and its evaluation."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from hydro_mrv.attestation.canonical import canonical_json, canonical_payload
from hydro_mrv.models import AnomalyScore, Attestation, EmissionsResult, TelemetryReading

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AttestationBuilder:
    """Creates immutable attestations with a SHA-256 content hash.

    The hash covers the canonical serialization of reading, emissions and
    anomaly score. ``created_at`` is recorded but not hashed, so identical
    inputs always hash identically.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    @staticmethod
    def compute_hash(
        reading: TelemetryReading,
        emissions: EmissionsResult,
        anomaly: AnomalyScore,
    ) -> str:
        """Raises SerializationError if any float in the inputs is non-finite."""
        payload = canonical_json(canonical_payload(reading, emissions, anomaly))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def build(
        self,
        reading: TelemetryReading,
        emissions: EmissionsResult,
        anomaly: AnomalyScore,
    ) -> Attestation:
        content_hash = self.compute_hash(reading, emissions, anomaly)
        attestation = Attestation(
            reading=reading,
            emissions=emissions,
            anomaly=anomaly,
            content_hash=content_hash,
            created_at=self._clock(),
        )
        logger.debug("Built attestation %s for %s", content_hash[:12], reading.device_id)
        return attestation

    @classmethod
    def verify_integrity(cls, attestation: Attestation) -> bool:
        """True when the attestation's content still matches its recorded hash."""
        expected = cls.compute_hash(attestation.reading, attestation.emissions, attestation.anomaly)
        return expected == attestation.content_hash

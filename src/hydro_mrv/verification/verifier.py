"""Policy verification of attestations.

Each attestation moves PENDING -> APPROVED or PENDING -> REJECTED exactly
once. Rules are evaluated in order and the first match decides:

  1. anomaly score above threshold           -> ANOMALY_REJECTED
  2. generation negative or above plausible  -> IMPLAUSIBLE_READING
  3. reading older than the allowed age      -> STALE_READING
  4. otherwise                               -> OK (approved)

Rejections are final; a caller whose conditions change must submit a new
attestation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from hydro_mrv.attestation.builder import AttestationBuilder
from hydro_mrv.config.schema import VerificationPolicy
from hydro_mrv.errors import AttestationIntegrityError
from hydro_mrv.models import Attestation, ReasonCode, VerificationDecision

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Verifier:
    """Applies a verification policy to attestations. Stateless apart from its clock."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    def _evaluate(
        self,
        attestation: Attestation,
        policy: VerificationPolicy,
        now: datetime,
    ) -> tuple[ReasonCode, str]:
        anomaly = attestation.anomaly.value
        if anomaly > policy.anomaly_threshold:
            return (
                ReasonCode.ANOMALY_REJECTED,
                f"anomaly score {anomaly:.4f} exceeds threshold {policy.anomaly_threshold:.4f}",
            )

        kwh = attestation.reading.generated_kwh
        if kwh < 0 or kwh > policy.max_plausible_kwh_per_reading:
            return (
                ReasonCode.IMPLAUSIBLE_READING,
                f"generated_kwh {kwh} outside [0, {policy.max_plausible_kwh_per_reading}]",
            )

        age = (now - attestation.reading.timestamp_utc).total_seconds()
        if age > policy.max_reading_age_seconds:
            return (
                ReasonCode.STALE_READING,
                f"reading age {age:.0f}s exceeds {policy.max_reading_age_seconds}s",
            )

        return ReasonCode.OK, "all checks passed"

    def verify(self, attestation: Attestation, policy: VerificationPolicy) -> VerificationDecision:
        """Decide approve/reject for one attestation.

        Raises AttestationIntegrityError if the attestation's content no
        longer matches its hash.
        """
        recomputed = AttestationBuilder.compute_hash(
            attestation.reading, attestation.emissions, attestation.anomaly,
        )
        if recomputed != attestation.content_hash:
            logger.warning(
                "Integrity check failed for attestation %s from %s",
                attestation.content_hash[:12], attestation.device_id,
            )
            raise AttestationIntegrityError(expected=attestation.content_hash, actual=recomputed)

        now = self._clock()
        reason_code, reason = self._evaluate(attestation, policy, now)
        decision = VerificationDecision(
            attestation_hash=attestation.content_hash,
            approved=reason_code is ReasonCode.OK,
            reason_code=reason_code,
            verified_at=now,
            reason=reason,
        )

        if decision.approved:
            logger.info("Attestation %s approved", attestation.content_hash[:12])
        else:
            logger.info(
                "Attestation %s rejected: %s (%s)",
                attestation.content_hash[:12], reason_code.value, reason,
            )
        return decision

    def verify_many(
        self,
        attestations: Sequence[Attestation],
        policy: VerificationPolicy,
        max_workers: int = 4,
    ) -> list[VerificationDecision]:
        """Verify independent attestations concurrently; results follow input order."""
        if not attestations:
            return []
        if max_workers <= 1 or len(attestations) == 1:
            return [self.verify(a, policy) for a in attestations]
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="verify") as pool:
            return list(pool.map(lambda a: self.verify(a, policy), attestations))

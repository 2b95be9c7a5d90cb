"""In-process store for attestations and their verification decisions."""

from __future__ import annotations

import json
import logging
import threading

from hydro_mrv.models import Attestation, VerificationDecision, VerificationState

logger = logging.getLogger(__name__)


class InMemoryAttestationStore:
    """Thread-safe attestation store keyed by content hash.

    Decisions reference attestations by hash; a decision can only be
    recorded for an attestation already in the store.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._attestations: dict[str, Attestation] = {}
        self._decisions: dict[str, VerificationDecision] = {}

    def save(self, attestation: Attestation) -> Attestation:
        with self._lock:
            self._attestations[attestation.content_hash] = attestation
        return attestation

    def get(self, content_hash: str) -> Attestation | None:
        with self._lock:
            return self._attestations.get(content_hash)

    def record_decision(self, decision: VerificationDecision) -> None:
        """Record the decision for a stored attestation. Decisions are final."""
        with self._lock:
            if decision.attestation_hash not in self._attestations:
                raise KeyError(f"No attestation stored for hash {decision.attestation_hash}")
            existing = self._decisions.get(decision.attestation_hash)
            if existing is not None and existing.state.is_terminal:
                raise ValueError(
                    f"Attestation {decision.attestation_hash} already {existing.state.value}"
                )
            self._decisions[decision.attestation_hash] = decision

    def decision_for(self, content_hash: str) -> VerificationDecision | None:
        with self._lock:
            return self._decisions.get(content_hash)

    def state_of(self, content_hash: str) -> VerificationState:
        """PENDING until a decision is recorded, then APPROVED or REJECTED."""
        with self._lock:
            if content_hash not in self._attestations:
                raise KeyError(f"No attestation stored for hash {content_hash}")
            decision = self._decisions.get(content_hash)
        return decision.state if decision else VerificationState.PENDING

    def find_by_device(self, device_id: str) -> list[Attestation]:
        with self._lock:
            return [a for a in self._attestations.values() if a.device_id == device_id]

    def find_by_status(self, state: VerificationState) -> list[Attestation]:
        with self._lock:
            if state is VerificationState.PENDING:
                return [a for h, a in self._attestations.items() if h not in self._decisions]
            return [
                self._attestations[h]
                for h, d in self._decisions.items()
                if d.state is state
            ]

    def all(self) -> list[Attestation]:
        with self._lock:
            return list(self._attestations.values())

    def count(self) -> int:
        with self._lock:
            return len(self._attestations)

    def export_json(self) -> str:
        """Serialize all attestations and decisions as a JSON document."""
        with self._lock:
            records = [
                {
                    "attestation": a.to_dict(),
                    "decision": self._decisions[h].to_dict() if h in self._decisions else None,
                }
                for h, a in self._attestations.items()
            ]
        return json.dumps(records, indent=2, sort_keys=True)

    def import_json(self, text: str) -> int:
        """Merge records produced by ``export_json``; returns the number imported."""
        records = json.loads(text)
        if not isinstance(records, list):
            raise ValueError("import_json expects a JSON array of attestation records")

        imported = 0
        for record in records:
            attestation = Attestation.from_dict(record["attestation"])
            self.save(attestation)
            if record.get("decision"):
                self.record_decision(VerificationDecision.from_dict(record["decision"]))
            imported += 1
        logger.info("Imported %d attestation records", imported)
        return imported

    def clear(self) -> None:
        with self._lock:
            self._attestations.clear()
            self._decisions.clear()

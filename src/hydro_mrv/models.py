"""Data model shared by the calculator, scorer, builder and verifier."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from hydro_mrv.attestation.canonical import (
    canonical_json,
    format_float,
    format_instant,
    format_optional_float,
    parse_instant,
)


def _parse_optional(value: str | None) -> float | None:
    return None if value is None else float(value)


@dataclass(frozen=True)
class TelemetryReading:
    """A single metered generation reading from a hydro plant."""

    device_id: str
    timestamp_utc: datetime
    generated_kwh: float
    grid_emission_factor: float  # kg CO2 / kWh
    flow_rate_m3_per_s: float | None = None
    head_height_m: float | None = None

    def __post_init__(self) -> None:
        ts = self.timestamp_utc
        # Naive timestamps are taken as UTC; offsets are converted to UTC
        ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
        object.__setattr__(self, "timestamp_utc", ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "timestamp_utc": format_instant(self.timestamp_utc),
            "generated_kwh": format_float(self.generated_kwh, "reading.generated_kwh"),
            "grid_emission_factor": format_float(
                self.grid_emission_factor, "reading.grid_emission_factor",
            ),
            "flow_rate_m3_per_s": format_optional_float(
                self.flow_rate_m3_per_s, "reading.flow_rate_m3_per_s",
            ),
            "head_height_m": format_optional_float(self.head_height_m, "reading.head_height_m"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TelemetryReading:
        timestamp = data["timestamp_utc"]
        return cls(
            device_id=str(data["device_id"]),
            timestamp_utc=parse_instant(timestamp) if isinstance(timestamp, str) else timestamp,
            generated_kwh=float(data["generated_kwh"]),
            grid_emission_factor=float(data["grid_emission_factor"]),
            flow_rate_m3_per_s=_parse_optional(data.get("flow_rate_m3_per_s")),
            head_height_m=_parse_optional(data.get("head_height_m")),
        )


@dataclass(frozen=True)
class EmissionsResult:
    """ACM0002 emission figures for one reading or monitoring period (kg CO2)."""

    baseline_emissions_kg: float
    project_emissions_kg: float
    net_reduction_kg: float
    leakage_emissions_kg: float = 0.0
    methodology: str = "ACM0002"

    def to_dict(self) -> dict[str, Any]:
        return {
            "baseline_emissions_kg": format_float(
                self.baseline_emissions_kg, "emissions.baseline_emissions_kg",
            ),
            "project_emissions_kg": format_float(
                self.project_emissions_kg, "emissions.project_emissions_kg",
            ),
            "leakage_emissions_kg": format_float(
                self.leakage_emissions_kg, "emissions.leakage_emissions_kg",
            ),
            "net_reduction_kg": format_float(self.net_reduction_kg, "emissions.net_reduction_kg"),
            "methodology": self.methodology,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmissionsResult:
        return cls(
            baseline_emissions_kg=float(data["baseline_emissions_kg"]),
            project_emissions_kg=float(data["project_emissions_kg"]),
            net_reduction_kg=float(data["net_reduction_kg"]),
            leakage_emissions_kg=float(data.get("leakage_emissions_kg", 0.0)),
            methodology=data.get("methodology", "ACM0002"),
        )


@dataclass(frozen=True)
class AnomalyScore:
    value: float  # 0.0 to 1.0, near 1 = likely anomalous
    is_anomalous: bool
    threshold: float = 0.5

    @classmethod
    def from_value(cls, value: float, threshold: float = 0.5) -> AnomalyScore:
        return cls(value=value, is_anomalous=value > threshold, threshold=threshold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": format_float(self.value, "anomaly.value"),
            "is_anomalous": self.is_anomalous,
            "threshold": format_float(self.threshold, "anomaly.threshold"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnomalyScore:
        return cls(
            value=float(data["value"]),
            is_anomalous=bool(data["is_anomalous"]),
            threshold=float(data.get("threshold", 0.5)),
        )


@dataclass(frozen=True)
class Attestation:
    """Hash-bound record of a reading and its derived evaluation.

    Construct through ``AttestationBuilder.build``; ``content_hash`` covers
    reading, emissions and anomaly but not ``created_at``.
    """

    reading: TelemetryReading
    emissions: EmissionsResult
    anomaly: AnomalyScore
    content_hash: str
    created_at: datetime

    @property
    def device_id(self) -> str:
        return self.reading.device_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "reading": self.reading.to_dict(),
            "emissions": self.emissions.to_dict(),
            "anomaly": self.anomaly.to_dict(),
            "content_hash": self.content_hash,
            "created_at": format_instant(self.created_at),
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attestation:
        return cls(
            reading=TelemetryReading.from_dict(data["reading"]),
            emissions=EmissionsResult.from_dict(data["emissions"]),
            anomaly=AnomalyScore.from_dict(data["anomaly"]),
            content_hash=str(data["content_hash"]),
            created_at=parse_instant(data["created_at"]),
        )

    @classmethod
    def from_json(cls, text: str) -> Attestation:
        return cls.from_dict(json.loads(text))


class ReasonCode(str, Enum):
    OK = "OK"
    ANOMALY_REJECTED = "ANOMALY_REJECTED"
    IMPLAUSIBLE_READING = "IMPLAUSIBLE_READING"
    STALE_READING = "STALE_READING"


class VerificationState(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationState.PENDING


@dataclass(frozen=True)
class VerificationDecision:
    """Outcome of verifying one attestation, referenced by its hash."""

    attestation_hash: str
    approved: bool
    reason_code: ReasonCode
    verified_at: datetime
    reason: str = ""

    @property
    def state(self) -> VerificationState:
        return VerificationState.APPROVED if self.approved else VerificationState.REJECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "attestation_hash": self.attestation_hash,
            "approved": self.approved,
            "state": self.state.value,
            "reason_code": self.reason_code.value,
            "reason": self.reason,
            "verified_at": format_instant(self.verified_at),
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationDecision:
        return cls(
            attestation_hash=str(data["attestation_hash"]),
            approved=bool(data["approved"]),
            reason_code=ReasonCode(data["reason_code"]),
            verified_at=parse_instant(data["verified_at"]),
            reason=data.get("reason", ""),
        )

    @classmethod
    def from_json(cls, text: str) -> VerificationDecision:
        return cls.from_dict(json.loads(text))

"""Tests for canonical serialization, attestation building and the store."""

from __future__ import annotations

import dataclasses
import json
import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from hydro_mrv.attestation.builder import AttestationBuilder
from hydro_mrv.attestation.canonical import (
    canonical_json,
    format_float,
    format_instant,
    parse_instant,
)
from hydro_mrv.attestation.store import InMemoryAttestationStore
from hydro_mrv.emissions.calculator import compute
from hydro_mrv.errors import SerializationError
from hydro_mrv.models import (
    AnomalyScore,
    Attestation,
    ReasonCode,
    TelemetryReading,
    VerificationDecision,
    VerificationState,
)


def _attest(
    builder: AttestationBuilder,
    reading: TelemetryReading,
    anomaly_value: float = 0.1,
) -> Attestation:
    return builder.build(reading, compute(reading), AnomalyScore.from_value(anomaly_value))


@pytest.fixture
def builder(clock: Callable[[], datetime]) -> AttestationBuilder:
    return AttestationBuilder(clock=clock)


# ── Canonical form ───────────────────────────────────────────


class TestCanonical:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (800.0, "800.0"),
            (800, "800.0"),
            (0.1, "0.1"),
            (1e-7, "0.0000001"),
            (1e22, "10000000000000000000000.0"),
            (-0.0, "0.0"),
        ],
    )
    def test_format_float(self, value: float, expected: str) -> None:
        assert format_float(value, "x") == expected

    def test_format_float_distinguishes_adjacent_doubles(self) -> None:
        a = 1000.0
        b = math.nextafter(a, math.inf)
        assert format_float(a, "x") != format_float(b, "x")
        assert float(format_float(b, "x")) == b

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, value: float) -> None:
        with pytest.raises(SerializationError) as exc:
            format_float(value, "reading.generated_kwh")
        assert exc.value.field == "reading.generated_kwh"

    def test_instant_round_trip(self) -> None:
        ts = datetime(2025, 1, 1, 10, 30, 15, 123456, tzinfo=timezone(timedelta(hours=5, minutes=30)))
        text = format_instant(ts)
        assert text == "2025-01-01T05:00:15.123456Z"
        assert parse_instant(text) == ts

    def test_canonical_json_is_compact_and_sorted(self) -> None:
        assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == '{"a":{"c":3,"d":2},"b":1}'


# ── Builder ──────────────────────────────────────────────────


class TestAttestationBuilder:
    def test_build_binds_inputs(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading], now: datetime,
    ) -> None:
        reading = make_reading()
        att = _attest(builder, reading)
        assert att.reading is reading
        assert att.emissions.net_reduction_kg == pytest.approx(800.0)
        assert att.created_at == now
        assert len(att.content_hash) == 64
        int(att.content_hash, 16)

    def test_hash_stable_for_identical_inputs(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        later = AttestationBuilder(clock=lambda: datetime(2030, 1, 1, tzinfo=timezone.utc))
        a = _attest(builder, make_reading())
        b = _attest(later, make_reading())
        assert a.content_hash == b.content_hash
        assert a.created_at != b.created_at

    @pytest.mark.parametrize(
        "changes",
        [
            {"generated_kwh": 1000.0000001},
            {"grid_emission_factor": 0.81},
            {"device_id": "TURBINE-002"},
            {"age_seconds": 11},
            {"flow_rate_m3_per_s": 2.0},
        ],
    )
    def test_hash_changes_with_any_field(
        self,
        builder: AttestationBuilder,
        make_reading: Callable[..., TelemetryReading],
        changes: dict,
    ) -> None:
        base = _attest(builder, make_reading())
        changed = _attest(builder, make_reading(**changes))
        assert base.content_hash != changed.content_hash

    def test_hash_changes_with_anomaly(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        reading = make_reading()
        assert _attest(builder, reading, 0.1).content_hash != _attest(builder, reading, 0.1000001).content_hash

    def test_non_finite_anomaly_raises(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        reading = make_reading()
        bad = AnomalyScore(value=math.nan, is_anomalous=False)
        with pytest.raises(SerializationError) as exc:
            builder.build(reading, compute(reading), bad)
        assert exc.value.field == "anomaly.value"

    def test_non_finite_reading_raises(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        good = make_reading()
        bad = make_reading(generated_kwh=math.inf)
        with pytest.raises(SerializationError) as exc:
            builder.build(bad, compute(good), AnomalyScore.from_value(0.1))
        assert exc.value.field == "reading.generated_kwh"

    def test_attestation_is_immutable(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        att = _attest(builder, make_reading())
        with pytest.raises(dataclasses.FrozenInstanceError):
            att.content_hash = "0" * 64  # type: ignore[misc]

    def test_verify_integrity_detects_tampering(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        att = _attest(builder, make_reading())
        assert AttestationBuilder.verify_integrity(att)
        tampered = dataclasses.replace(att, reading=make_reading(generated_kwh=2000.0))
        assert not AttestationBuilder.verify_integrity(tampered)

    def test_json_round_trip_keeps_hash_valid(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        att = _attest(
            builder, make_reading(generated_kwh=1234.5678, flow_rate_m3_per_s=3.3, head_height_m=41.2),
        )
        restored = Attestation.from_json(att.to_json())
        assert restored == att
        assert AttestationBuilder.verify_integrity(restored)
        assert json.loads(att.to_json())["emissions"]["methodology"] == "ACM0002"


# ── Store ────────────────────────────────────────────────────


def _decision(att: Attestation, approved: bool, now: datetime) -> VerificationDecision:
    return VerificationDecision(
        attestation_hash=att.content_hash,
        approved=approved,
        reason_code=ReasonCode.OK if approved else ReasonCode.ANOMALY_REJECTED,
        verified_at=now,
    )


class TestAttestationStore:
    def test_save_and_get(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        store = InMemoryAttestationStore()
        att = store.save(_attest(builder, make_reading()))
        assert store.get(att.content_hash) is att
        assert store.get("missing") is None
        assert store.count() == 1

    def test_state_transitions(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading], now: datetime,
    ) -> None:
        store = InMemoryAttestationStore()
        att = store.save(_attest(builder, make_reading()))
        assert store.state_of(att.content_hash) is VerificationState.PENDING
        store.record_decision(_decision(att, approved=False, now=now))
        assert store.state_of(att.content_hash) is VerificationState.REJECTED
        assert store.decision_for(att.content_hash).reason_code is ReasonCode.ANOMALY_REJECTED

    def test_decision_is_final(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading], now: datetime,
    ) -> None:
        store = InMemoryAttestationStore()
        att = store.save(_attest(builder, make_reading()))
        store.record_decision(_decision(att, approved=False, now=now))
        assert store.state_of(att.content_hash).is_terminal
        with pytest.raises(ValueError):
            store.record_decision(_decision(att, approved=True, now=now))
        assert store.state_of(att.content_hash) is VerificationState.REJECTED

    def test_decision_requires_attestation(

        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading], now: datetime,
    ) -> None:
        store = InMemoryAttestationStore()
        att = _attest(builder, make_reading())
        with pytest.raises(KeyError):
            store.record_decision(_decision(att, approved=True, now=now))

    def test_find_by_device_and_status(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading], now: datetime,
    ) -> None:
        store = InMemoryAttestationStore()
        a = store.save(_attest(builder, make_reading(device_id="TURBINE-001")))
        b = store.save(_attest(builder, make_reading(device_id="TURBINE-002")))
        c = store.save(_attest(builder, make_reading(device_id="TURBINE-002", generated_kwh=10.0)))
        store.record_decision(_decision(a, approved=True, now=now))
        store.record_decision(_decision(b, approved=False, now=now))

        assert store.find_by_device("TURBINE-002") == [b, c]
        assert store.find_by_status(VerificationState.APPROVED) == [a]
        assert store.find_by_status(VerificationState.REJECTED) == [b]
        assert store.find_by_status(VerificationState.PENDING) == [c]

    def test_export_import(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading], now: datetime,
    ) -> None:
        store = InMemoryAttestationStore()
        a = store.save(_attest(builder, make_reading()))
        store.save(_attest(builder, make_reading(generated_kwh=42.0)))
        store.record_decision(_decision(a, approved=True, now=now))

        other = InMemoryAttestationStore()
        assert other.import_json(store.export_json()) == 2
        assert other.count() == 2
        assert other.get(a.content_hash) == a
        assert other.state_of(a.content_hash) is VerificationState.APPROVED

    def test_import_rejects_non_list(self) -> None:
        with pytest.raises(ValueError):
            InMemoryAttestationStore().import_json('{"not": "a list"}')

    def test_clear(
        self, builder: AttestationBuilder, make_reading: Callable[..., TelemetryReading],
    ) -> None:
        store = InMemoryAttestationStore()
        store.save(_attest(builder, make_reading()))
        store.clear()
        assert store.count() == 0
        assert store.all() == []

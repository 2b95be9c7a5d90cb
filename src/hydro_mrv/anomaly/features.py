"""Numeric feature extraction for the anomaly scorer.

Features (4 total):
  [0] generated_kwh        raw meter value
  [1] hour_of_day          fractional UTC hour, 0.0-24.0
  [2] kwh_rate_of_change   kWh per hour versus the device's previous reading
  [3] efficiency_ratio     metered kWh / theoretical hydro output, NaN when
                           flow or head is not reported (the forest imputes it)

Theoretical output: P_kW = rho * g * Q * H * eta / 1000, evaluated over
one hour, with eta fixed at a typical turbine efficiency.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable

from hydro_mrv.models import TelemetryReading

FEATURE_NAMES = (
    "generated_kwh",
    "hour_of_day",
    "kwh_rate_of_change",
    "efficiency_ratio",
)

RHO = 1000.0  # kg/m3
G = 9.81  # m/s2
TURBINE_EFFICIENCY = 0.85


def theoretical_kwh(flow_rate_m3_per_s: float, head_height_m: float) -> float:
    """Theoretical hydro output for one hour of generation."""
    return RHO * G * flow_rate_m3_per_s * head_height_m * TURBINE_EFFICIENCY / 1000


def _efficiency_ratio(reading: TelemetryReading) -> float:
    flow = reading.flow_rate_m3_per_s
    head = reading.head_height_m
    if not flow or not head or flow <= 0 or head <= 0:
        return math.nan
    return reading.generated_kwh / theoretical_kwh(flow, head)


def _rate_of_change(reading: TelemetryReading, previous: TelemetryReading | None) -> float:
    if previous is None or previous.device_id != reading.device_id:
        return 0.0
    hours = (reading.timestamp_utc - previous.timestamp_utc).total_seconds() / 3600
    if hours <= 0:
        return 0.0
    return (reading.generated_kwh - previous.generated_kwh) / hours


def extract_features(
    reading: TelemetryReading,
    previous: TelemetryReading | None = None,
) -> list[float]:
    """Convert a reading into a feature vector ordered as FEATURE_NAMES."""
    ts = reading.timestamp_utc
    hour = ts.hour + ts.minute / 60 + ts.second / 3600
    return [
        float(reading.generated_kwh),
        hour,
        _rate_of_change(reading, previous),
        _efficiency_ratio(reading),
    ]


def extract_feature_matrix(readings: Iterable[TelemetryReading]) -> list[list[float]]:
    """Extract features for many readings, chaining each device's previous reading.

    Rows are returned in input order; the rate-of-change feature is computed
    against the chronologically preceding reading of the same device.
    """
    indexed = list(enumerate(readings))
    by_device: dict[str, list[tuple[int, TelemetryReading]]] = defaultdict(list)
    for idx, reading in indexed:
        by_device[reading.device_id].append((idx, reading))

    rows: list[list[float]] = [[] for _ in indexed]
    for series in by_device.values():
        series.sort(key=lambda item: item[1].timestamp_utc)
        previous: TelemetryReading | None = None
        for idx, reading in series:
            rows[idx] = extract_features(reading, previous)
            previous = reading
    return rows

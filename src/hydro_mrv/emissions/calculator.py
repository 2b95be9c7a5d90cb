"""ACM0002 emission-reduction calculation for grid-connected hydropower.

    BE_y = EG_y * EF_grid      baseline: grid electricity displaced
    PE_y = 0                   run-of-river plant, no reservoir
    LE_y = 0                   no leakage for grid-connected renewables
    ER_y = BE_y - PE_y - LE_y
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from hydro_mrv.errors import InvalidInputError
from hydro_mrv.models import EmissionsResult, TelemetryReading

logger = logging.getLogger(__name__)

METHODOLOGY = "ACM0002"


def _check_finite(field: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError(field, value, "a finite number")


def compute(reading: TelemetryReading) -> EmissionsResult:
    """Compute baseline, project and net emissions for one reading."""
    _check_finite("generated_kwh", reading.generated_kwh)
    _check_finite("grid_emission_factor", reading.grid_emission_factor)
    if reading.generated_kwh < 0:
        raise InvalidInputError("generated_kwh", reading.generated_kwh, ">= 0")
    if reading.grid_emission_factor <= 0:
        raise InvalidInputError("grid_emission_factor", reading.grid_emission_factor, "> 0")

    baseline = reading.generated_kwh * reading.grid_emission_factor
    project = 0.0
    leakage = 0.0
    return EmissionsResult(
        baseline_emissions_kg=baseline,
        project_emissions_kg=project,
        net_reduction_kg=baseline - project - leakage,
        leakage_emissions_kg=leakage,
        methodology=METHODOLOGY,
    )


def compute_period(readings: Iterable[TelemetryReading]) -> EmissionsResult:
    """Aggregate emissions over a monitoring period.

    Each reading is validated individually, so a single bad reading fails
    the whole period with the offending field named.
    """
    baseline = project = leakage = 0.0
    count = 0
    for reading in readings:
        result = compute(reading)
        baseline += result.baseline_emissions_kg
        project += result.project_emissions_kg
        leakage += result.leakage_emissions_kg
        count += 1

    if count == 0:
        raise InvalidInputError("readings", [], "a non-empty monitoring period")

    logger.debug("Monitoring period: %d readings, baseline %.3f kg", count, baseline)
    return EmissionsResult(
        baseline_emissions_kg=baseline,
        project_emissions_kg=project,
        net_reduction_kg=baseline - project - leakage,
        leakage_emissions_kg=leakage,
        methodology=METHODOLOGY,
    )

"""Run a JSON-lines file of telemetry readings through attest-and-verify.

Each input line is a reading object (``device_id``, ``timestamp_utc``,
``generated_kwh``, ``grid_emission_factor`` and optional sensor fields).
One canonical JSON line is printed per reading with its attestation and
decision, followed by a summary line.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from hydro_mrv.attestation.canonical import canonical_json
from hydro_mrv.config.manager import ConfigManager
from hydro_mrv.logging.structured import setup_logging_from_config
from hydro_mrv.models import TelemetryReading
from hydro_mrv.pipeline import build_pipeline


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("readings", type=Path, help="JSON-lines file of readings")
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--defaults", default="config.defaults.yaml")
    parser.add_argument("--export", type=Path, default=None, help="Write store export JSON here")
    return parser.parse_args()


def _load_readings(path: Path) -> list[TelemetryReading]:
    readings = []
    with path.open(encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                readings.append(TelemetryReading.from_dict(json.loads(line)))
    return readings


def main() -> None:
    args = parse_args()
    manager = ConfigManager(defaults_path=Path(args.defaults), user_path=Path(args.config))
    config = manager.load()
    setup_logging_from_config(config.logging)

    pipeline = build_pipeline(config)
    for result in pipeline.process_many(_load_readings(args.readings)):
        sys.stdout.write(
            canonical_json({
                "attestation": result.attestation.to_dict(),
                "decision": result.decision.to_dict(),
            }) + "\n"
        )

    summary = pipeline.summary()
    sys.stdout.write(
        canonical_json({
            "total": summary.total,
            "approved": summary.approved,
            "rejected": summary.rejected,
            "approval_rate": f"{summary.approval_rate:.4f}",
            "net_reduction_kg_approved": f"{summary.net_reduction_kg_approved:.6f}",
        }) + "\n"
    )
    if args.export:
        args.export.write_text(pipeline.store.export_json())


if __name__ == "__main__":
    main()

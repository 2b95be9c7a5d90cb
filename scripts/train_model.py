"""Train the anomaly scorer on synthetic hydro telemetry and save the model."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from hydro_mrv.anomaly.scorer import AnomalyScorer
from hydro_mrv.anomaly.synthetic import generate_readings
from hydro_mrv.config.manager import ConfigManager
from hydro_mrv.logging.structured import setup_logging_from_config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--defaults", default="config.defaults.yaml")
    parser.add_argument("--output", default="", help="Model path (defaults to scorer.saved_model_path)")
    parser.add_argument("--samples", type=int, default=0, help="Override synthetic sample count")
    parser.add_argument("--seed", type=int, default=None)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    manager = ConfigManager(defaults_path=Path(args.defaults), user_path=Path(args.config))
    config = manager.load()
    setup_logging_from_config(config.logging)

    scorer_cfg = config.scorer
    if args.seed is not None:
        scorer_cfg = scorer_cfg.model_copy(update={"seed": args.seed})
    samples = args.samples or scorer_cfg.synthetic_training_samples
    output = args.output or scorer_cfg.saved_model_path
    if not output:
        raise SystemExit("No output path: pass --output or set scorer.saved_model_path")

    scorer = AnomalyScorer(scorer_cfg)
    readings = generate_readings(samples, seed=scorer_cfg.seed, device_count=scorer_cfg.synthetic_device_count)
    scorer.train([s.reading for s in readings])
    scorer.save(output)
    print(json.dumps(scorer.info(), indent=2))


if __name__ == "__main__":
    main()

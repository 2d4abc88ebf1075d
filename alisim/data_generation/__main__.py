from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .alignment_simulator import AlignmentSimulator
from .config import load_generation_config

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate sequence alignments along a fixed tree using the YAML/JSON configuration file.",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config/simulation.yaml"),
        help="Path to the configuration file (default: config/simulation.yaml)",
    )
    parser.add_argument(
        "--seed",
        "-s",
        type=int,
        default=None,
        help="Override the seed from the configuration file",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging verbosity (default: INFO)",
    )
    return parser.parse_args()


def main() -> None:
    import time
    args = parse_args()
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = load_generation_config(args.config)
    if args.seed is not None:
        config = config.with_seed(args.seed)
    simulator = AlignmentSimulator(config)
    t0 = time.time()
    output_paths = simulator.write_alignments()
    t1 = time.time()
    print(f"Simulated {len(output_paths)} alignment(s) with model {simulator.model.text}:")
    for path in output_paths:
        print(f"  {path}")
    print(f"Time taken: {t1 - t0:.2f} seconds")


if __name__ == "__main__":
    main()

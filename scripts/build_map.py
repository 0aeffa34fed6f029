from __future__ import annotations

import sys
from pathlib import Path

# Allow running scripts without requiring an editable install (`pip install -e .`).
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
sys.path.insert(0, str(SRC_PATH))

import argparse
import asyncio
import logging
from typing import Optional

from bikeflow.app.controller import MapController
from bikeflow.config.loader import load_config
from bikeflow.preprocessing.time_codec import MINUTES_PER_DAY
from bikeflow.schemas.core import NO_FILTER
from bikeflow.utils.logging import configure_logging


logger = logging.getLogger(__name__)


def _minute(value: str) -> int:
    minute = int(value)
    if minute != NO_FILTER and not 0 <= minute < MINUTES_PER_DAY:
        raise argparse.ArgumentTypeError(f"minute must be {NO_FILTER} or in [0, {MINUTES_PER_DAY}): {value}")
    return minute


async def build_map(controller: MapController, out_path: Path, *, minute: int = NO_FILTER) -> Optional[Path]:
    """Load both sources, apply the optional time filter and write the map HTML."""
    if await controller.load() is None:
        return None
    if minute != NO_FILTER:
        controller.apply_filter(minute)
    return controller.save_map(out_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render the station traffic map to a static HTML file.")
    parser.add_argument("--config", default=None, help="Config JSON (defaults to config/default.json)")
    parser.add_argument("--out", default="data/maps/traffic.html")
    parser.add_argument("--minute", type=_minute, default=NO_FILTER, help="Minutes since midnight; -1 for all day")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(config.logging)

    controller = MapController(config)
    try:
        out = asyncio.run(build_map(controller, Path(args.out), minute=args.minute))
    finally:
        controller.close()

    if out is None:
        logger.error("No map written")
        return 1
    logger.info("Wrote %s", out)
    if controller.diagnostics.records:
        logger.info("Recovered issues: %s", ", ".join(sorted(controller.diagnostics.codes())))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

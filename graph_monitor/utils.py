"""Small utility functions for logging, progress reporting and filesystem output.

These helpers are used across the commands to keep the core logic clean and
focused.
"""

import json
import logging
import os
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install the root logging format used by the command line interface."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


def log_progress(
    logger: logging.Logger, label: str, examined: int, total: int, pace: float = 5.0
) -> None:
    """Log ``examined/total`` at INFO each time another ``pace`` percent is done."""
    if total <= 0:
        return
    step = max(1, int(total * pace / 100.0))
    if examined % step == 0 or examined == total:
        logger.info(
            "progress (%s): %d%% :: examined : %d/%d",
            label,
            round(100.0 * examined / total),
            examined,
            total,
        )


def ensure_dir(path: str) -> None:
    """Create a directory if it does not already exist."""
    os.makedirs(path, exist_ok=True)


def write_json(path: str, obj: Dict[str, Any]) -> None:
    """Write a mapping as JSON to ``path`` with stable formatting."""
    parent = os.path.dirname(os.path.abspath(path))
    ensure_dir(parent)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)

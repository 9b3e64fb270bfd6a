"""Utility helpers shared across the card scanner."""
from __future__ import annotations

import logging
import math
import os
import pathlib
from typing import Any, Optional

LOGGER_NAME = "cardscan"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for ``name`` (default ``cardscan``), given a stderr handler once."""
    logger = logging.getLogger(name or LOGGER_NAME)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def ensure_directory(path: str | os.PathLike[str]) -> pathlib.Path:
    """Make sure the state directory ``path`` exists, parents included."""
    directory = pathlib.Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


class ScanError(RuntimeError):
    """Base class for recoverable failures inside the scan pipeline."""


def coerce_int(value: Any) -> Optional[int]:
    """Best-effort ``int`` for a stat value from a model reply; ``None`` if unusable.

    ``json.loads`` accepts ``NaN``, ``Infinity`` and overflowing literals such
    as ``1e999``; those come back as ``None`` like any other junk.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))

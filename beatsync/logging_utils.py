"""Console logging for engine components.

Records carry the emitting component in ``tag`` and render as
``[INFO][Calibrator] Grid locked | bpm=120``.
"""

import logging
from typing import Any

logger = logging.getLogger("beatsync")

if not logger.handlers:
    _console = logging.StreamHandler()
    _console.setFormatter(logging.Formatter("[%(levelname)s][%(tag)s] %(message)s"))
    logger.addHandler(_console)
    logger.setLevel(logging.INFO)


def _level_number(name: str) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log ``message`` for component ``tag``; keyword fields are appended as key=value."""
    if fields:
        message += " | " + " ".join(f"{key}={value}" for key, value in fields.items())
    logger.log(_level_number(level), message, extra={"tag": tag})


def set_log_level(level: str) -> None:
    """Set the engine log level by name; unknown names fall back to INFO."""
    logger.setLevel(_level_number(level))

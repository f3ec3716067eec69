"""
Logging configuration for the command line entry point.
"""
import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Installs a single stderr handler on the ``stackup`` logger.

    :param level: Level name; falls back to ``STACKUP_LOG_LEVEL``, then WARNING.
    """
    name = (level or os.getenv("STACKUP_LOG_LEVEL", "WARNING")).upper()
    resolved = getattr(logging, name, None)
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {name}")

    root = logging.getLogger("stackup")
    root.setLevel(resolved)
    for existing in [h for h in root.handlers if getattr(h, "_stackup", False)]:
        root.removeHandler(existing)
    # bound to the current sys.stderr, which may have been swapped since the last call
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._stackup = True
    root.addHandler(handler)

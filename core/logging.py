"""
Logging configuration
"""

import logging
import sys
from typing import Dict, Optional
from core.config import settings

# Chatty third-party loggers; an explicit override still wins
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "httpcore", "apscheduler")


def parse_level_overrides(value: str) -> Dict[str, int]:
    """Parse "name=LEVEL,name=LEVEL"; unknown levels and malformed pairs are ignored"""
    overrides = {}
    for pair in (value or "").split(","):
        name, _, level = pair.partition("=")
        level_value = logging.getLevelName(level.strip().upper())
        if name.strip() and isinstance(level_value, int):
            overrides[name.strip()] = level_value
    return overrides


def setup_logging(level: Optional[str] = None, overrides: Optional[str] = None):
    """Configure root logging for the API process and the scripts"""
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    level_overrides = parse_level_overrides(
        overrides if overrides is not None else settings.LOG_LEVEL_OVERRIDES
    )
    for name, value in level_overrides.items():
        logging.getLogger(name).setLevel(value)

    logging.getLogger(__name__).info(
        f"Logging configured at {level_name}"
        + (f" with overrides for {', '.join(sorted(level_overrides))}" if level_overrides else "")
    )

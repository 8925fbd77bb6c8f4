# src/logging_config.py
#
# Logging setup for the notification service: one console handler on the
# root logger plus per-logger level overrides from settings

import logging
import sys

from config import settings

_HANDLER_NAME = "lawnpro-console"

# vendor client chatter; overridable through LOG_LEVELS
_QUIET_LOGGERS = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "urllib3": "WARNING",
}


def parse_level_overrides(spec: str) -> dict:
    """
    Parse "src.notifications=DEBUG,httpx=INFO" into {logger: level}.
    Malformed entries are skipped.
    """
    overrides = {}
    for item in (spec or "").split(","):
        name, sep, level = item.partition("=")
        if sep and name.strip() and level.strip():
            overrides[name.strip()] = level.strip().upper()
    return overrides


def setup_logging(log_level: str = None, overrides: str = None):
    """
    Configure the root logger once per process.

    Args:
        log_level: Root level name, defaults to settings.LOG_LEVEL
        overrides: logger=level pairs, defaults to settings.LOG_LEVELS
    """
    log_level = (log_level or settings.LOG_LEVEL).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # uvicorn reload and test imports call this more than once
    if not any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.set_name(_HANDLER_NAME)
        console_handler.setFormatter(logging.Formatter(
            fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(console_handler)

    levels = dict(_QUIET_LOGGERS)
    levels.update(parse_level_overrides(settings.LOG_LEVELS if overrides is None else overrides))
    for name, level in levels.items():
        logging.getLogger(name).setLevel(getattr(logging, level, logging.WARNING))

    return root_logger

from __future__ import annotations

import logging
import os
import sys

try:
    from constants import DEFAULT_LOG_LEVEL, LOG_FORMAT, LOG_LEVEL_ENV
except ImportError:
    from .constants import DEFAULT_LOG_LEVEL, LOG_FORMAT, LOG_LEVEL_ENV

LOGGER_NAME = "scorebridge"


def resolve_log_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


log_level = resolve_log_level(os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL))

logger = logging.getLogger(LOGGER_NAME)
if not logger.handlers:
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream_handler)
logger.setLevel(log_level)

# =============================================
# File: shopassist/utils/logging.py
# Purpose: Logging configuration
# =============================================
import os
import sys

from loguru import logger

_configured = False


def setup_logging() -> None:
    """Console sink at LOG_LEVEL; a rotating file sink as well when LOG_FILE is set."""
    global _configured
    if _configured:
        return
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    log_file = os.getenv("LOG_FILE")
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB")
    _configured = True

# ============================================================================
#  File: logging_setup.py
#  Purpose: Installs loguru sinks for the orchestrator from LOG_CONFIG
# ============================================================================
# SECTION 1: Imports
# ============================================================================

import os
import sys
from typing import Optional

from loguru import logger

from plan_orchestrator.config import LOG_CONFIG, LOG_DIR

# ============================================================================
# SECTION 2: Functions
# ============================================================================
# Function 2.1: configure_logging
# ============================================================================
def configure_logging(log_dir: Optional[str] = LOG_DIR, console_level: Optional[str] = None) -> None:
    """
    Replaces loguru's default sink with a console sink and, when log_dir is
    given, a rotating file sink.

    Args:
        log_dir: Directory for the rotating log file, or None for console only
        console_level: Overrides the console level from LOG_CONFIG
    """
    fmt = LOG_CONFIG["formatters"]["default"]["format"]
    console = LOG_CONFIG["handlers"]["console"]
    file_cfg = LOG_CONFIG["handlers"]["file"]

    logger.remove()
    logger.add(sys.stderr, level=console_level or console["level"], format=fmt)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            os.path.join(log_dir, file_cfg["filename"]),
            level=file_cfg["level"],
            rotation=file_cfg["rotation"],
            retention=file_cfg["retention"],
            format=fmt,
            enqueue=True,
        )
    logger.debug(f"Logging configured (log_dir={log_dir})")
#
#
## End of Script

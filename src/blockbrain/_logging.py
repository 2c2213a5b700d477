"""Logging configuration for blockbrain.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the BRAIN_LOG_LEVEL environment variable
(DEBUG, INFO, WARNING, ERROR). The default is WARNING so that command output
on stdout stays clean.
"""

import logging
import os
import sys

PACKAGE_LOGGER = "blockbrain"


def configure_logging() -> None:
    """Configure logging for the blockbrain package.

    Call this once at application startup (cli.main). Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger(PACKAGE_LOGGER)

    if root_logger.handlers:
        return

    level_name = os.environ.get("BRAIN_LOG_LEVEL", "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Avoid duplicate messages through the root logger
    root_logger.propagate = False


def set_quiet_mode(quiet: bool) -> None:
    """Restrict package logging to errors only."""
    if not quiet:
        return
    root_logger = logging.getLogger(PACKAGE_LOGGER)
    root_logger.setLevel(logging.ERROR)
    for handler in root_logger.handlers:
        handler.setLevel(logging.ERROR)

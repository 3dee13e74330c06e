"""Logging configuration for mdvault.

Usage in other modules:
    import logging
    log = logging.getLogger(__name__)

The log level can be configured via the MDVAULT_LOG_LEVEL environment variable:
    - DEBUG: Resolution details, search-tool fallbacks
    - INFO: Phase summaries (default)
    - WARNING: Depth limits reached, write failures, rollbacks
    - ERROR: Errors that prevented an operation
"""

import logging
import os
import sys

_PACKAGE_LOGGER = "mdvault"


def configure_logging() -> None:
    """Configure logging for the mdvault package.

    Call this once at application startup (the CLI does it).
    Subsequent calls are no-ops.
    """
    root_logger = logging.getLogger(_PACKAGE_LOGGER)

    if root_logger.handlers:
        return

    level_name = os.environ.get("MDVAULT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

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

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False


def _set_level(level: int) -> None:
    root_logger = logging.getLogger(_PACKAGE_LOGGER)
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def set_quiet_mode(quiet: bool) -> None:
    """Only show errors on stderr when quiet is set."""
    if quiet:
        _set_level(logging.ERROR)


def set_verbose_mode(verbose: bool) -> None:
    """Show debug output (resolution details, search fallbacks)."""
    if verbose:
        _set_level(logging.DEBUG)


"""Logging setup for applications that embed the engine."""

import logging
import sys

PACKAGE_LOGGER = "tfengine"


def configure_logging(debug: bool = False, verbose: bool = False) -> None:
    """Configure application logging.

    Args:
        debug: Enable debug-level logging if True.
        verbose: Enable verbose logging from the engine internals if True.
    """
    # Determine logging level
    if debug:
        level = logging.DEBUG
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    elif verbose:
        level = logging.INFO
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        level = logging.INFO
        format_str = "%(levelname)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stdout,
        force=True,  # Override existing configuration
    )

    if not verbose and not debug:
        # Quiet mode: only pass summaries and warnings
        logging.getLogger().setLevel(logging.WARNING)
        logging.getLogger(f"{PACKAGE_LOGGER}.engine").setLevel(logging.INFO)
    else:
        logging.getLogger(PACKAGE_LOGGER).setLevel(level)


__all__ = ["configure_logging", "PACKAGE_LOGGER"]

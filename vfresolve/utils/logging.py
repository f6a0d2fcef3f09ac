"""
Shared logging configuration for vfresolve.

Skipped glyphs log at WARNING, per-table progress at INFO and decoding
detail at DEBUG.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger("vfresolve")


def set_verbosity(verbose: bool = False, quiet: bool = False) -> None:
    """Switch the package logger to DEBUG, WARNING or back to INFO."""
    if verbose:
        logger.setLevel(logging.DEBUG)
    elif quiet:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.INFO)

"""Logging configuration using loguru.

The CLI prints tokens on stdout, so log output always goes to stderr.
"""

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru for the CLI.

    Args:
        verbose: Show debug output instead of warnings and errors only.
    """
    # Remove default handler
    logger.remove()
    logger.add(
        sys.stderr,
        format=_FORMAT,
        level="DEBUG" if verbose else "WARNING",
        colorize=None,
    )

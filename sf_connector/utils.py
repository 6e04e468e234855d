"""
Common Utilities

Basic utility functions used across the package with no internal dependencies.
"""

import logging

logger = logging.getLogger(__name__)


def log_section_header(title: str, width: int = 70) -> None:
    """
    Log a section header with visual separator.

    Example:
        >>> log_section_header("STEP 1: Prepare")
        # Logs:
        # ======================================================================
        # STEP 1: Prepare
        # ======================================================================
    """
    separator = "=" * width
    logger.info(separator)
    logger.info(title)
    logger.info(separator)

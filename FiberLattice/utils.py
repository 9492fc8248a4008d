"""
Utility Functions
=================

This module provides general utility functions used throughout FiberLattice,
including logging configuration and the color scheme used by the plots.

Functions
---------
configure_logging
    Set up logging for the FiberLattice package with customizable
    output format and destinations.

Constants
---------
_FIBER_COLOR_SCHEME
    Colors distinguishing fiber roles in visualizations.
"""

import logging
import FiberLattice


def configure_logging(level=logging.INFO, logfile=None):
    """Configure logging for the FiberLattice package.

    Sets up a logger with a standard format and optional file output.
    This is called automatically when FiberLattice is imported.

    Parameters
    ----------
    level : int, default logging.INFO
        Logging level (e.g., logging.DEBUG, logging.INFO, logging.WARNING).
    logfile : str, optional
        Path to log file. If provided, logs are written to both console
        and file. If None, logs only to console.

    Examples
    --------
    >>> from FiberLattice.utils import configure_logging
    >>> import logging
    >>>
    >>> # Show per-recompute summaries and keep a copy on disk
    >>> configure_logging(level=logging.DEBUG, logfile='fiberlattice.log')

    Notes
    -----
    The log format is: "HH:MM:SS message"
    """
    logger = logging.getLogger(FiberLattice.__name__)
    logger.setLevel(level)

    logger_handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
    logger_handler.setFormatter(formatter)
    logger.addHandler(logger_handler)

    if logfile is not None:
        file_logger_handler = logging.FileHandler(logfile)
        file_logger_handler.setFormatter(formatter)
        logger.addHandler(file_logger_handler)


#: Fiber color scheme
#:
#: Dictionary mapping fiber roles to RGB tuples (0-255 range).
#: ``normal`` and ``selected`` are used for the selection lattice,
#: ``center`` and ``neighbor`` for the fixed 3x3 bundle.
_FIBER_COLOR_SCHEME = {
    "normal": (0, 128, 128),
    "selected": (255, 165, 0),
    "center": (255, 0, 0),
    "neighbor": (0, 0, 255),
    "grid": (128, 128, 128),
}


def rgb(name: str) -> tuple[float, float, float]:
    """Color of the scheme as a matplotlib-compatible (0-1 range) tuple."""
    r, g, b = _FIBER_COLOR_SCHEME[name]
    return (r / 255, g / 255, b / 255)

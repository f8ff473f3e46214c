"""
Utility Functions
=================

This module provides general utility functions used throughout MetaBlobs,
including logging configuration and the colours of the default scene.

Functions
---------
configure_logging
    Set up logging for the MetaBlobs package with customizable
    output format and destinations.
int_to_color
    Unpack a ``0xRRGGBB`` integer into an RGB tuple.

Constants
---------
SCENE_COLORS
    Colours used by :class:`MetaBlobs.scene.Scene` when drawing.
"""

import logging
import MetaBlobs


def configure_logging(level=logging.INFO, logfile=None):
    """Configure logging for the MetaBlobs package.

    Sets up a logger with a standard format and optional file output.
    This is called automatically when MetaBlobs is imported.

    Parameters
    ----------
    level : int, default logging.INFO
        Logging level (e.g., logging.DEBUG, logging.INFO, logging.WARNING).
    logfile : str, optional
        Path to log file. If provided, logs are written to both console
        and file. If None, logs only to console.

    Examples
    --------
    >>> from MetaBlobs.utils import configure_logging
    >>> import logging
    >>>
    >>> # Set debug level and log to file
    >>> configure_logging(level=logging.DEBUG, logfile='metablobs.log')

    Notes
    -----
    The log format is: "HH:MM:SS message"
    """
    logger = logging.getLogger(MetaBlobs.__name__)
    logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        logger_handler = logging.StreamHandler()
        logger_handler.setFormatter(formatter)
        logger.addHandler(logger_handler)

    if logfile is not None:
        file_logger_handler = logging.FileHandler(logfile)
        file_logger_handler.setFormatter(formatter)
        logger.addHandler(file_logger_handler)


def int_to_color(rgb: int) -> tuple[int, int, int]:
    """Split a ``0xRRGGBB`` integer into its (r, g, b) components (0-255)."""
    return (rgb >> 16 & 0xFF, rgb >> 8 & 0xFF, rgb & 0xFF)


#: Scene colour scheme
#:
#: Dictionary mapping roles to RGB tuples (0-255 range).
SCENE_COLORS = {
    "background": (80, 80, 80),
    "minor_grid": (100, 100, 100),
    "major_grid": (140, 140, 140),
    "surface": int_to_color(0x8A2BE2),
    "specular": int_to_color(0xADFF2F),
}

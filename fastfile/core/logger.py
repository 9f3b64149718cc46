"""Logging configuration for the file conversion service"""

import logging
import sys
from pathlib import Path
from typing import Optional

from .config import settings

# Libraries used by the converter backends that log at DEBUG/INFO on their own
BACKEND_LIBRARY_LOGGERS = ("PIL", "py7zr", "fitz")


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    service_name: Optional[str] = None
) -> logging.Logger:
    """
    Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        service_name: Name of the service for logger

    Returns:
        Configured logger instance
    """
    # Use settings if not provided
    log_level = (log_level or settings.log_level).upper()
    log_file = log_file or settings.log_file
    service_name = service_name or settings.service_name

    # Create service logger
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, log_level))

    # Clear handlers left by an earlier setup
    logger.handlers.clear()

    # Create formatter
    formatter = logging.Formatter(settings.log_format)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (if specified)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level))
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Keep service records out of uvicorn's root handlers
    logger.propagate = False

    # Backend libraries only report warnings
    for name in BACKEND_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance for a specific module

    Args:
        name: Module name (usually __name__) or a short component name

    Returns:
        Logger instance under the service logger
    """
    service_name = settings.service_name
    # Package modules are already named "fastfile.<...>"
    if name == service_name or name.startswith(f"{service_name}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{service_name}.{name}")

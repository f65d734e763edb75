"""Centralized logging configuration for the image build engine."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Optional[str] = "mami.log") -> None:
    """Configure root logging for command-line runs."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)

    # third-party loggers only above INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("asyncssh").setLevel(logging.WARNING)


def setup_logger(
    name: str, log_file: str = None, level: str = "INFO"
) -> logging.Logger:
    """Setup a logger with console and optional file output.

    Examples:
        # Console only
        logger = setup_logger(__name__)

        # Console + file
        logger = setup_logger(__name__, "build.log")
    """
    logger = logging.getLogger(name)
    try:
        logger.setLevel(getattr(logging, level.upper()))
    except AttributeError:
        logger.setLevel(logging.INFO)

    if not logger.handlers and not logging.getLogger().handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

        if log_file:
            Path("logs").mkdir(exist_ok=True)
            file_handler = logging.FileHandler(f"logs/{log_file}")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def get_infrastructure_logger(module_name: str) -> logging.Logger:
    """Get logger for infrastructure modules."""
    return setup_logger(f"infrastructure.{module_name}")


def apply_log_level(level: str) -> None:
    """Set the root log level from a build configuration."""
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))

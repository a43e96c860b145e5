"""Logging utilities."""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional


def setup_logger(name: str = 'robustcal', log_level: int = logging.INFO,
                 log_file: str = None) -> logging.Logger:
    """Setup logger with console and optional file handler."""
    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # repeated calls must not stack handlers
    for handler in list(logger.handlers):
        if getattr(handler, '_robustcal', False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler._robustcal = True
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler._robustcal = True
        logger.addHandler(file_handler)

    return logger


def create_session_log_file(log_dir: str = "logs", method: Optional[str] = None) -> str:
    """
    Path of a timestamped log file for a calibration session.

    The directory is created. The robust method, when given, is part of the
    file name so that runs of several methods can be told apart.
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stem = "calibration" if method is None else f"calibration_{method}"
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return str(directory / f"{stem}_{timestamp}.log")

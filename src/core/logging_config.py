"""
Logging configuration for the copilot.

Console output plus a size-rotated file per logger name under config.logs_dir.
"""

import logging
import logging.handlers

from .config import config


def setup_logging(logger_name: str = "pnl_copilot") -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        logger_name: Name of the logger; also used as the log file stem

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        return logger

    logger.setLevel(config.log_level)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = config.logs_dir / f"{logger_name}.log"
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
    )
    file_handler.setLevel(config.log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger

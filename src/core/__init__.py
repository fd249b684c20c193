"""
Core module: Configuration, logging, and exception handling.
"""

from .config import AnomalyConfig, AnomalyThresholds, BaselineConfig, Config, config
from .exceptions import (
    AnomalyDetectionError,
    ModelInferenceError,
    DataValidationError,
    ConfigurationError,
)
from .logging_config import setup_logging

__all__ = [
    "AnomalyConfig",
    "AnomalyThresholds",
    "BaselineConfig",
    "Config",
    "config",
    "setup_logging",
    "AnomalyDetectionError",
    "ModelInferenceError",
    "DataValidationError",
    "ConfigurationError",
]

"""
Custom exceptions for the Store P&L Anomaly Copilot.

Missing data is not an error anywhere in the anomaly core; these exceptions
mark contract violations, unusable input files, and narration failures.
"""


class AnomalyDetectionError(Exception):
    """Raised when the anomaly core is called in violation of its contract."""
    pass


class ModelInferenceError(Exception):
    """Raised when narration inference fails (model loading, generation, etc.)."""
    pass


class DataValidationError(Exception):
    """Raised when dataset input fails validation or ingestion."""
    pass


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass

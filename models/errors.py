"""
Exception hierarchy for the prediction client.

Every error raised by the client derives from PredictionError so callers can
catch the whole family at once, while the subclasses keep "the job failed"
apart from "we stopped waiting" and from transport problems.
"""

from typing import Any, Optional


class PredictionError(Exception):
    """Base exception for prediction-related errors."""
    pass


class ConfigurationError(PredictionError, ValueError):
    """Raised for invalid arguments, before any network call is made."""
    pass


class APIKeyError(ConfigurationError):
    """Raised when the API token is missing."""
    pass


class ProtocolError(PredictionError):
    """Raised when the remote service answers with something unexpected."""
    pass


class PredictionFailedError(PredictionError):
    """Raised when a prediction reaches a terminal failure status."""

    def __init__(self, message: str, prediction: Optional[Any] = None):
        super().__init__(message)
        self.prediction = prediction


class PredictionCanceledError(PredictionFailedError):
    """Raised when a prediction was canceled or aborted."""
    pass


class PollingExhaustedError(PredictionError):
    """Raised when polling gives up while the prediction is still running."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class StreamingError(PredictionError):
    """Raised when the event stream reports an error event."""
    pass


class TransportError(PredictionError):
    """Raised when the HTTP exchange itself fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

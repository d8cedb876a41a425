"""
Prediction lifecycle states.

The remote service reports one of six statuses. Locally they collapse into
three classes that drive the client: keep polling, return the result, or
raise.
"""

from enum import Enum
from typing import Union

from models.errors import ProtocolError


class PredictionStatus(Enum):
    """Prediction status as reported by the remote service."""
    STARTING = "starting"      # queued, waiting for a worker
    PROCESSING = "processing"  # running
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    ABORTED = "aborted"

    @classmethod
    def from_wire(cls, value: str) -> "PredictionStatus":
        """
        Look up a status by its wire value.

        Raises:
            ProtocolError: If the value is not one of the known statuses
        """
        try:
            return cls(value)
        except ValueError:
            raise ProtocolError(f"Unknown prediction status: {value!r}") from None


class StatusClass(Enum):
    """Classification of a status used by polling and streaming."""
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


_CLASSIFICATION = {
    PredictionStatus.STARTING: StatusClass.PENDING,
    PredictionStatus.PROCESSING: StatusClass.PENDING,
    PredictionStatus.SUCCEEDED: StatusClass.SUCCESS,
    PredictionStatus.FAILED: StatusClass.FAILURE,
    PredictionStatus.CANCELED: StatusClass.FAILURE,
    PredictionStatus.ABORTED: StatusClass.FAILURE,
}


def classify(status: Union[PredictionStatus, str]) -> StatusClass:
    """
    Classify a status as success, failure or still pending.

    Args:
        status: A PredictionStatus or its wire string

    Returns:
        The StatusClass for the status

    Raises:
        ProtocolError: If the status is unknown or missing
    """
    if isinstance(status, str):
        status = PredictionStatus.from_wire(status)
    if not isinstance(status, PredictionStatus):
        raise ProtocolError(f"Unknown prediction status: {status!r}")
    return _CLASSIFICATION[status]


def is_cancellation(status: PredictionStatus) -> bool:
    """Return True for the canceled and aborted statuses."""
    return status in (PredictionStatus.CANCELED, PredictionStatus.ABORTED)

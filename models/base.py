"""
Base classes and data structures for the prediction client.

This module provides:
- PredictionRequest: Body of a prediction submission
- PredictionResponse: Immutable snapshot of a prediction
- Metrics, PredictionUrls: Nested parts of a snapshot
- FileUploadResponse: Result of a file upload
- BasePredictionClient: Abstract interface used by higher-level callers
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from models.errors import ProtocolError
from models.status import PredictionStatus, StatusClass, classify


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class PredictionRequest:
    """
    Request to create a prediction.

    Attributes:
        version: Model version identifier. Required when submitting without a
            model name; must be absent when a model name is given
        input: Model-specific input parameters
        webhook: Optional webhook URL for async notifications
        webhook_events_filter: Optional webhook events to subscribe to
            ("start", "output", "logs", "completed")
        stream: Optional flag requesting a stream URL in the response
    """
    version: Optional[str] = None
    input: Dict[str, Any] = field(default_factory=dict)
    webhook: Optional[str] = None
    webhook_events_filter: Optional[List[str]] = None
    stream: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire format, omitting unset fields."""
        return _drop_none({
            'version': self.version or None,
            'input': self.input,
            'webhook': self.webhook,
            'webhook_events_filter': self.webhook_events_filter,
            'stream': self.stream,
        })


@dataclass(frozen=True)
class Metrics:
    """Timing and token usage reported for a prediction."""
    predict_time: Optional[float] = None
    total_time: Optional[float] = None
    input_token_count: Optional[int] = None
    output_token_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Metrics"]:
        if not data:
            return None
        return cls(
            predict_time=data.get('predict_time'),
            total_time=data.get('total_time'),
            input_token_count=data.get('input_token_count'),
            output_token_count=data.get('output_token_count'),
        )

    @property
    def total_tokens(self) -> int:
        """Get total token count."""
        return (self.input_token_count or 0) + (self.output_token_count or 0)


@dataclass(frozen=True)
class PredictionUrls:
    """URLs for interacting with a prediction."""
    get: Optional[str] = None
    cancel: Optional[str] = None
    stream: Optional[str] = None
    web: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PredictionUrls"]:
        if not data:
            return None
        return cls(
            get=data.get('get'),
            cancel=data.get('cancel'),
            stream=data.get('stream'),
            web=data.get('web'),
        )


@dataclass(frozen=True)
class PredictionResponse:
    """
    Snapshot of a prediction as returned by the remote service.

    Snapshots are never modified once received; every poll yields a new one.

    Attributes:
        id: Unique identifier assigned by the service
        model: Model identifier in "owner/name" form
        version: Version identifier of the model
        status: Current lifecycle status
        input: The input that was submitted
        output: Prediction output, any JSON value (absent until success)
        error: Error message, present only on failure
        logs: Log output from the model
        metrics: Timing and token counts
        urls: Related URLs (get, cancel, stream, web)
        created_at: ISO 8601 creation timestamp
        started_at: ISO 8601 start timestamp
        completed_at: ISO 8601 completion timestamp
        data_removed: Whether input/output were purged after the retention window
        source: How the prediction was created ("web" or "api")
        deployment: Name of the deployment that created the prediction
        deadline: ISO 8601 time at which the prediction is auto-canceled
    """
    id: Optional[str] = None
    model: Optional[str] = None
    version: Optional[str] = None
    status: Optional[PredictionStatus] = None
    input: Dict[str, Any] = field(default_factory=dict)
    output: Any = None
    error: Optional[str] = None
    logs: Optional[str] = None
    metrics: Optional[Metrics] = None
    urls: Optional[PredictionUrls] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    data_removed: Optional[bool] = None
    source: Optional[str] = None
    deployment: Optional[str] = None
    deadline: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictionResponse":
        """
        Build a snapshot from a decoded JSON body.

        Raises:
            ProtocolError: If the body is not an object or has an unknown status
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")

        status = data.get('status')
        return cls(
            id=data.get('id'),
            model=data.get('model'),
            version=data.get('version'),
            status=PredictionStatus.from_wire(status) if status is not None else None,
            input=data.get('input') or {},
            output=data.get('output'),
            error=data.get('error'),
            logs=data.get('logs'),
            metrics=Metrics.from_dict(data.get('metrics')),
            urls=PredictionUrls.from_dict(data.get('urls')),
            created_at=data.get('created_at'),
            started_at=data.get('started_at'),
            completed_at=data.get('completed_at'),
            data_removed=data.get('data_removed'),
            source=data.get('source'),
            deployment=data.get('deployment'),
            deadline=data.get('deadline'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to the wire shape, omitting unset fields."""
        result = asdict(self)
        result['status'] = self.status.value if self.status else None
        if result['metrics']:
            result['metrics'] = _drop_none(result['metrics'])
        if result['urls']:
            result['urls'] = _drop_none(result['urls'])
        return _drop_none(result)

    @property
    def status_class(self) -> StatusClass:
        """Classification of the current status."""
        return classify(self.status)

    @property
    def is_terminal(self) -> bool:
        """Whether the prediction has stopped changing."""
        return self.status_class is not StatusClass.PENDING

    @property
    def stream_url(self) -> Optional[str]:
        """SSE URL for streaming output, if the model supports it."""
        return self.urls.stream if self.urls else None


@dataclass(frozen=True)
class FileUploadResponse:
    """
    Response from the file upload endpoint.

    Attributes:
        id: Unique identifier for the file
        content_type: MIME type of the file
        size: Length of the file in bytes
        checksums: Checksums keyed by algorithm name (e.g. "sha256")
        metadata: User-provided metadata
        urls: URLs for the file; "get" is the one to reference in an input
        created_at: ISO 8601 creation timestamp
        expires_at: ISO 8601 expiry timestamp
    """
    id: str
    content_type: Optional[str] = None
    size: Optional[int] = None
    checksums: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    urls: Dict[str, str] = field(default_factory=dict)
    created_at: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileUploadResponse":
        if not isinstance(data, dict) or not data.get('id'):
            raise ProtocolError("File upload did not return a valid response.")
        return cls(
            id=data['id'],
            content_type=data.get('content_type'),
            size=data.get('size'),
            checksums=data.get('checksums') or {},
            metadata=data.get('metadata') or {},
            urls=data.get('urls') or {},
            created_at=data.get('created_at'),
            expires_at=data.get('expires_at'),
        )

    @property
    def url(self) -> Optional[str]:
        """URL to reference the uploaded file in a prediction input."""
        return self.urls.get('get')


class BasePredictionClient(ABC):
    """
    Abstract interface for prediction clients.

    Higher-level callers (chat, media or structured-output adapters) only
    depend on these four operations.
    """

    @abstractmethod
    def create_prediction(
        self,
        model_name: Optional[str],
        request: PredictionRequest,
        prefer_wait: Optional[str] = None,
        cancel_after: Optional[str] = None
    ) -> PredictionResponse:
        """Submit a prediction and return the first snapshot."""
        pass

    @abstractmethod
    def wait_for_completion(self, prediction_id: str) -> PredictionResponse:
        """Block until the prediction succeeds, or raise."""
        pass

    @abstractmethod
    def cancel_prediction(self, prediction_id: str) -> PredictionResponse:
        """Request cancellation of a prediction."""
        pass

    @abstractmethod
    def create_prediction_stream(
        self,
        model_name: Optional[str],
        request: PredictionRequest
    ) -> Iterator[PredictionResponse]:
        """Submit a prediction and iterate over its streamed output."""
        pass

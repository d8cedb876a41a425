"""
Client for the Replicate Predictions API.

This module provides:
- ReplicateClient: submit, poll, cancel, wait for and stream predictions
- format_prefer_header: builds the synchronous-wait header value
- create_client: factory that fills in settings from the environment

Predictions can be submitted two ways:
- Official models by name ("owner/name"): POST /models/{owner/name}/predictions
- Any model by version id: POST /predictions with the version in the body
"""

import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Union

import requests

from config import (
    CONTENT_TYPE_EVENT_STREAM,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_OCTET_STREAM,
    DEFAULT_BASE_URL,
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TIMEOUT,
    ENV_API_TOKEN,
    ENV_BASE_URL,
    ENV_MAX_POLL_ATTEMPTS,
    ENV_POLL_INTERVAL,
    FILES_PATH,
    HEADER_ACCEPT,
    HEADER_AUTHORIZATION,
    HEADER_CACHE_CONTROL,
    HEADER_CANCEL_AFTER,
    HEADER_PREFER,
    MODELS_PATH,
    PREDICTIONS_PATH,
    PREFER_WAIT,
    PREFER_WAIT_PREFIX,
)
from models.base import (
    BasePredictionClient,
    FileUploadResponse,
    PredictionRequest,
    PredictionResponse,
)
from models.errors import (
    APIKeyError,
    ConfigurationError,
    PredictionCanceledError,
    PredictionFailedError,
    ProtocolError,
    TransportError,
)
from models.status import StatusClass, is_cancellation
from models.streaming import PredictionStream
from utils.polling import PollOutcome, run_until_done

logger = logging.getLogger(__name__)


def format_prefer_header(prefer_wait: Optional[str]) -> Optional[str]:
    """
    Build the value of the Prefer header.

    - "wait" -> "wait" (wait as long as the service allows, up to 60s)
    - "5" -> "wait=5" (wait up to 5 seconds)
    - "wait=5" -> "wait=5" (already formatted)

    Returns:
        Header value, or None when no synchronous wait was requested
    """
    if not prefer_wait:
        return None
    if prefer_wait == PREFER_WAIT or prefer_wait.startswith(PREFER_WAIT_PREFIX):
        return prefer_wait
    return f"{PREFER_WAIT_PREFIX}{prefer_wait}"


def _has_text(value: Optional[str]) -> bool:
    return value is not None and value != ''


def _require_id(prediction_id: Optional[str]) -> None:
    if not _has_text(prediction_id):
        raise ConfigurationError("Prediction ID must not be empty")


class ReplicateClient(BasePredictionClient):
    """
    Replicate Predictions API client.

    The client is blocking and holds only immutable settings plus a
    requests.Session, so one instance can be shared between threads.

    Example:
        client = ReplicateClient(api_key=os.getenv("REPLICATE_API_TOKEN"))
        request = PredictionRequest(input={"prompt": "Hello"})
        result = client.create_prediction_and_wait("meta/meta-llama-3-8b-instruct", request)
        print(result.output)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Any = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Replicate API token
            base_url: API base URL
            max_poll_attempts: Maximum status polls in wait_for_completion
            poll_interval: Seconds between status polls
            timeout: requests timeout, a float or a (connect, read) tuple
            session: Optional preconfigured requests.Session
        """
        if not _has_text(base_url):
            raise ConfigurationError("base_url cannot be empty")
        if max_poll_attempts < 1:
            raise ConfigurationError("max_poll_attempts must be positive")
        if poll_interval < 0:
            raise ConfigurationError("poll_interval must not be negative")

        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.max_poll_attempts = max_poll_attempts
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.session = session

    def _get_session(self) -> requests.Session:
        """Get or create the HTTP session."""
        if self.session is None:
            self.session = requests.Session()
        return self.session

    def _auth_headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise APIKeyError("Replicate API token not provided")
        return {HEADER_AUTHORIZATION: f"Bearer {self.api_key}"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _request(self, method: str, path: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> Any:
        """Send a request and return the decoded JSON body."""
        all_headers = self._auth_headers()
        all_headers.update(headers or {})
        url = self._url(path)

        try:
            response = self._get_session().request(
                method, url, headers=all_headers, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            detail = e.response.text if e.response is not None else str(e)
            raise TransportError(
                f"{method} {path} failed with status {status_code}: {detail}", status_code
            ) from e
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"{method} {path} did not return JSON") from e

    @staticmethod
    def _to_prediction(data: Any, action: str) -> PredictionResponse:
        prediction = PredictionResponse.from_dict(data)
        if not _has_text(prediction.id):
            raise ProtocolError(f"{action} did not return a valid response.")
        return prediction

    @staticmethod
    def _build_path(model_name: Optional[str], request: PredictionRequest) -> str:
        """
        Pick the submission endpoint.

        Official models have their own URL and always run the latest version.
        Other models share one URL and need the version in the body.
        """
        has_model = _has_text(model_name)
        has_version = _has_text(request.version)

        if not has_model and not has_version:
            raise ConfigurationError("Either model name or version must be specified")
        if has_model and has_version:
            raise ConfigurationError("Cannot specify both model name and version")

        if has_model:
            return f"{MODELS_PATH}/{model_name}{PREDICTIONS_PATH}"
        return PREDICTIONS_PATH

    def create_prediction(
        self,
        model_name: Optional[str],
        request: PredictionRequest,
        prefer_wait: Optional[str] = None,
        cancel_after: Optional[str] = None
    ) -> PredictionResponse:
        """
        Create a prediction.

        Args:
            model_name: "owner/name" of an official model, or None when the
                request carries a version
            request: The prediction request
            prefer_wait: Optional synchronous wait: "wait", "5" or "wait=5"
            cancel_after: Optional auto-cancel duration, e.g. "5m", "1h30m", "90s"

        Returns:
            The first snapshot, already terminal if the service finished
            within the synchronous wait

        Raises:
            ConfigurationError: If the request is missing or the model/version
                selection is ambiguous
        """
        if request is None:
            raise ConfigurationError("Request must not be None")

        path = self._build_path(model_name, request)
        headers = {'Content-Type': CONTENT_TYPE_JSON}

        prefer = format_prefer_header(prefer_wait)
        if prefer:
            headers[HEADER_PREFER] = prefer
        if _has_text(cancel_after):
            headers[HEADER_CANCEL_AFTER] = cancel_after

        logger.info("Creating prediction for %s", model_name or f"version {request.version}")
        data = self._request('POST', path, headers=headers, json=request.to_dict())
        prediction = self._to_prediction(data, "Prediction request")
        logger.info("Created prediction %s (status=%s)", prediction.id,
                    prediction.status.value if prediction.status else None)
        return prediction

    def get_prediction(self, prediction_id: str) -> PredictionResponse:
        """Retrieve the current snapshot of a prediction."""
        _require_id(prediction_id)
        data = self._request('GET', f"{PREDICTIONS_PATH}/{prediction_id}")
        return self._to_prediction(data, "Polling for Prediction")

    def cancel_prediction(self, prediction_id: str) -> PredictionResponse:
        """
        Cancel a running prediction.

        Does not wait for the cancellation to take effect; the returned
        snapshot is whatever the service reports right after the request.
        """
        _require_id(prediction_id)
        logger.info("Canceling prediction %s", prediction_id)
        data = self._request('POST', f"{PREDICTIONS_PATH}/{prediction_id}/cancel")
        return self._to_prediction(data, "Cancel request")

    @staticmethod
    def _outcome(prediction: PredictionResponse) -> PollOutcome[PredictionResponse]:
        """Map a snapshot onto the three poll outcomes."""
        status_class = prediction.status_class

        if status_class is StatusClass.SUCCESS:
            return PollOutcome.done(prediction)
        if status_class is StatusClass.PENDING:
            return PollOutcome.pending(f"prediction {prediction.id} is {prediction.status.value}")

        if is_cancellation(prediction.status):
            message = f"Prediction was {prediction.status.value}"
            if prediction.error:
                message += f": {prediction.error}"
            return PollOutcome.failed(PredictionCanceledError(message, prediction))

        error = prediction.error if prediction.error else "Unknown error"
        return PollOutcome.failed(PredictionFailedError(f"Prediction failed: {error}", prediction))

    def wait_for_completion(self, prediction_id: str) -> PredictionResponse:
        """
        Poll a prediction until it succeeds.

        Returns:
            The succeeded snapshot

        Raises:
            PredictionFailedError: If the prediction failed
            PredictionCanceledError: If it was canceled or aborted
            PollingExhaustedError: If it was still running after the last poll
        """
        _require_id(prediction_id)
        return run_until_done(
            lambda: self._outcome(self.get_prediction(prediction_id)),
            max_attempts=self.max_poll_attempts,
            interval=self.poll_interval,
        )

    def create_prediction_and_wait(
        self,
        model_name: Optional[str],
        request: PredictionRequest,
        prefer_wait: Optional[str] = None,
        cancel_after: Optional[str] = None
    ) -> PredictionResponse:
        """
        Create a prediction and block until it succeeds.

        See create_prediction for the arguments and wait_for_completion for
        the errors raised.
        """
        prediction = self.create_prediction(model_name, request, prefer_wait, cancel_after)

        # The synchronous wait may already have produced the final snapshot
        if prediction.is_terminal:
            outcome = self._outcome(prediction)
            if outcome.error is not None:
                raise outcome.error
            return outcome.value

        return self.wait_for_completion(prediction.id)

    def create_prediction_stream(
        self,
        model_name: Optional[str],
        request: PredictionRequest
    ) -> PredictionStream:
        """
        Create a prediction and stream its output.

        The request should set stream=True. The SSE connection is opened when
        iteration starts.

        Raises:
            ProtocolError: If the submission response has no stream URL
        """
        initial = self.create_prediction(model_name, request)
        stream_url = initial.stream_url
        if not stream_url:
            logger.error("No stream URL in response: %s", initial)
            raise ProtocolError("No stream URL returned from prediction")

        headers = self._auth_headers()
        headers[HEADER_ACCEPT] = CONTENT_TYPE_EVENT_STREAM
        headers[HEADER_CACHE_CONTROL] = 'no-store'
        connect_timeout = self.timeout[0] if isinstance(self.timeout, tuple) else self.timeout

        def open_connection() -> requests.Response:
            return self._get_session().get(
                stream_url, headers=headers, stream=True, timeout=(connect_timeout, None)
            )

        return PredictionStream(initial, open_connection)

    def upload_file(
        self,
        file: Union[str, Path, BinaryIO],
        filename: Optional[str] = None
    ) -> FileUploadResponse:
        """
        Upload a file for use in a prediction input.

        Args:
            file: Path to the file, or an open binary file object
            filename: Name to store the file under (defaults to the path's name)

        Returns:
            Upload response; its `url` can be passed in a prediction input
        """
        if file is None:
            raise ConfigurationError("File must not be None")

        if isinstance(file, (str, Path)):
            path = Path(file)
            filename = filename or path.name
            with open(path, 'rb') as handle:
                return self._upload(handle, filename)

        filename = filename or os.path.basename(getattr(file, 'name', '') or '')
        return self._upload(file, filename)

    def _upload(self, handle: BinaryIO, filename: str) -> FileUploadResponse:
        if not _has_text(filename):
            raise ConfigurationError("Filename must not be empty")

        logger.info("Uploading file %s", filename)
        data = self._request(
            'POST',
            FILES_PATH,
            files={'content': (filename, handle, CONTENT_TYPE_OCTET_STREAM)},
        )
        return FileUploadResponse.from_dict(data)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url})"


# =============================================================================
# Factory Function
# =============================================================================

def _env_number(name: str, convert, default):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return convert(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


def create_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    max_poll_attempts: Optional[int] = None,
    poll_interval: Optional[float] = None,
    **kwargs
) -> ReplicateClient:
    """
    Create a client, falling back to environment variables for unset settings.

    Args:
        api_key: API token (default: REPLICATE_API_TOKEN)
        base_url: API base URL (default: REPLICATE_BASE_URL or the public API)
        max_poll_attempts: Poll cap (default: REPLICATE_MAX_POLL_ATTEMPTS or 60)
        poll_interval: Poll delay in seconds (default: REPLICATE_POLL_INTERVAL or 5)
        **kwargs: Additional arguments passed to the ReplicateClient constructor

    Returns:
        Configured ReplicateClient
    """
    if max_poll_attempts is None:
        max_poll_attempts = _env_number(ENV_MAX_POLL_ATTEMPTS, int, DEFAULT_MAX_POLL_ATTEMPTS)
    if poll_interval is None:
        poll_interval = _env_number(ENV_POLL_INTERVAL, float, DEFAULT_POLL_INTERVAL)

    return ReplicateClient(
        api_key=api_key or os.getenv(ENV_API_TOKEN),
        base_url=base_url or os.getenv(ENV_BASE_URL, DEFAULT_BASE_URL),
        max_poll_attempts=max_poll_attempts,
        poll_interval=poll_interval,
        **kwargs
    )

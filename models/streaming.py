"""
Server-sent event streaming for predictions.

A streamed prediction publishes its output on an SSE URL returned with the
submission. Events are turned into prediction snapshots one at a time:
- "output": emit a snapshot whose output is the chunk
- "done": stop cleanly
- "error": stop with a StreamingError
- anything else: ignored
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional, Union

import requests

from config import EVENT_DONE, EVENT_ERROR, EVENT_OUTPUT
from models.base import PredictionResponse
from models.errors import ProtocolError, StreamingError, TransportError
from models.status import PredictionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSentEvent:
    """A single dispatched SSE event."""
    event: str = 'message'
    data: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


def iter_sse_events(lines: Iterable[Union[bytes, str]]) -> Iterator[ServerSentEvent]:
    """
    Parse text/event-stream lines into events.

    Args:
        lines: Lines without their line terminators. Bytes are decoded as
            UTF-8, the only encoding the event-stream format allows

    Yields:
        ServerSentEvent for every blank-line-terminated block that has fields
    """
    event_type = None
    data_lines = []
    event_id = None
    retry = None
    has_fields = False

    for line in lines:
        if isinstance(line, bytes):
            line = line.decode('utf-8')

        if not line:
            if has_fields:
                yield ServerSentEvent(
                    event=event_type or 'message',
                    data='\n'.join(data_lines) if data_lines else None,
                    id=event_id,
                    retry=retry,
                )
            event_type, data_lines, event_id, retry, has_fields = None, [], None, None, False
            continue

        if line.startswith(':'):
            continue

        name, _, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]

        if name == 'event':
            event_type = value
        elif name == 'data':
            data_lines.append(value)
        elif name == 'id':
            event_id = value
        elif name == 'retry':
            if value.isdigit():
                retry = int(value)
        else:
            continue
        has_fields = True

    # Connection closed without a trailing blank line
    if has_fields:
        yield ServerSentEvent(
            event=event_type or 'message',
            data='\n'.join(data_lines) if data_lines else None,
            id=event_id,
            retry=retry,
        )


def synthesize_chunk(initial: PredictionResponse, text: Optional[str]) -> PredictionResponse:
    """
    Build the snapshot emitted for one output chunk.

    Everything describing the prediction is copied from the initial snapshot.
    The status is always "processing", also for the last chunk before "done".
    """
    return replace(
        initial,
        status=PredictionStatus.PROCESSING,
        output=text if text is not None else '',
        error=None,
        logs=None,
        metrics=None,
        completed_at=None,
    )


class StreamState(Enum):
    OPEN = "open"
    EMITTING = "emitting"
    COMPLETED = "completed"
    FAILED = "failed"


class PredictionStream:
    """
    Lazy iterator of streamed prediction snapshots.

    The connection is opened on the first call to next() and closed when the
    stream completes, fails, or the consumer calls close(). A stream cannot be
    restarted; submit a new prediction to stream again.

    Example:
        with client.create_prediction_stream("meta/llama", request) as stream:
            for chunk in stream:
                print(chunk.output, end="")
    """

    def __init__(
        self,
        initial: PredictionResponse,
        open_connection: Callable[[], requests.Response]
    ):
        """
        Args:
            initial: Snapshot returned by the submission
            open_connection: Opens the SSE connection to the stream URL
        """
        self.initial = initial
        self._open_connection = open_connection
        self._response = None
        self._events = None
        self.state = StreamState.OPEN

    @property
    def prediction_id(self) -> Optional[str]:
        return self.initial.id

    def __iter__(self) -> "PredictionStream":
        return self

    def __next__(self) -> PredictionResponse:
        if self.state in (StreamState.COMPLETED, StreamState.FAILED):
            raise StopIteration

        try:
            if self._events is None:
                self._connect()
            for event in self._events:
                chunk = self._handle(event)
                if chunk is not None:
                    return chunk
                if self.state is StreamState.COMPLETED:
                    raise StopIteration
        except requests.RequestException as e:
            self._fail()
            logger.error("Stream for prediction %s broke: %s", self.prediction_id, e)
            status_code = e.response.status_code if e.response is not None else None
            raise TransportError(f"Streaming connection failed: {e}", status_code) from e
        except UnicodeDecodeError as e:
            self._fail()
            logger.error("Stream for prediction %s sent invalid UTF-8: %s", self.prediction_id, e)
            raise ProtocolError(f"Stream is not valid UTF-8: {e}") from e

        # Remote closed the connection without a "done" event
        self._finish()
        raise StopIteration

    def _connect(self) -> None:
        self._response = self._open_connection()
        self._response.raise_for_status()
        self._events = iter_sse_events(self._response.iter_lines())
        self.state = StreamState.EMITTING
        logger.debug("Opened stream for prediction %s", self.prediction_id)

    def _handle(self, event: ServerSentEvent) -> Optional[PredictionResponse]:
        if event.event == EVENT_ERROR:
            self._fail()
            message = event.data if event.data is not None else "Unknown error"
            logger.error("Stream for prediction %s reported: %s", self.prediction_id, message)
            raise StreamingError(f"Streaming error: {message}")
        if event.event == EVENT_DONE:
            self._finish()
            return None
        if event.event == EVENT_OUTPUT:
            return synthesize_chunk(self.initial, event.data)
        return None

    def _finish(self) -> None:
        self.state = StreamState.COMPLETED
        self._release()

    def _fail(self) -> None:
        self.state = StreamState.FAILED
        self._release()

    def _release(self) -> None:
        if self._response is not None:
            self._response.close()
            self._response = None
        self._events = None

    def close(self) -> None:
        """Drop the stream and close the underlying connection."""
        if self.state in (StreamState.OPEN, StreamState.EMITTING):
            self._finish()

    def __enter__(self) -> "PredictionStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PredictionStream(id={self.prediction_id}, state={self.state.value})"

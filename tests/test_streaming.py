from unittest.mock import MagicMock

import pytest
import requests

from models.base import PredictionRequest, PredictionResponse
from models.errors import ProtocolError, StreamingError, TransportError
from models.status import PredictionStatus
from models.streaming import (
    PredictionStream,
    ServerSentEvent,
    StreamState,
    iter_sse_events,
    synthesize_chunk,
)
from tests.fixtures.payloads import (
    API_KEY,
    PREDICTION_ID,
    STREAM_URL,
    json_response,
    prediction_payload,
    raw_sse_response,
    sse_response,
)

MODEL_NAME = "meta/meta-llama-3-8b-instruct"


def event_lines(*events):
    """SSE wire lines for (event, data) pairs."""
    lines = []
    for event, data in events:
        lines.append(f"event: {event}")
        if data is not None:
            for part in data.split("\n"):
                lines.append(f"data: {part}")
        lines.append("")
    return lines


@pytest.fixture
def initial():
    return PredictionResponse.from_dict(prediction_payload(
        "starting",
        logs="booting",
        metrics={"predict_time": 0.1},
        completed_at="2025-01-01T12:00:09.000Z",
        started_at="2025-01-01T12:00:01.000Z",
        deployment="my-deployment",
    ))


def make_stream(initial, response):
    opener = MagicMock(return_value=response)
    return PredictionStream(initial, opener), opener


class TestIterSseEvents:
    """text/event-stream parsing"""

    def test_basic_events(self):
        events = list(iter_sse_events(event_lines(("output", "ab"), ("done", "{}"))))
        assert events == [
            ServerSentEvent(event="output", data="ab"),
            ServerSentEvent(event="done", data="{}"),
        ]

    def test_multiline_data_is_joined(self):
        events = list(iter_sse_events(["event: output", "data: line one", "data: line two", ""]))
        assert events[0].data == "line one\nline two"

    def test_only_one_leading_space_is_stripped(self):
        events = list(iter_sse_events(["event: output", "data:   indented", ""]))
        assert events[0].data == "  indented"

    def test_comments_and_unknown_fields_are_skipped(self):
        lines = [": keep-alive", "", "foo: bar", "", "event: output", "data: x", ""]
        assert list(iter_sse_events(lines)) == [ServerSentEvent(event="output", data="x")]

    def test_default_event_type_is_message(self):
        assert list(iter_sse_events(["data: hello", ""]))[0].event == "message"

    def test_id_and_retry(self):
        events = list(iter_sse_events(["id: 7", "retry: 3000", "event: output", "data: x", ""]))
        assert events[0].id == "7"
        assert events[0].retry == 3000

    def test_event_without_data(self):
        assert list(iter_sse_events(["event: done", ""])) == [ServerSentEvent(event="done", data=None)]

    def test_pending_event_dispatched_at_end(self):
        assert list(iter_sse_events(["event: output", "data: tail"])) == [
            ServerSentEvent(event="output", data="tail")
        ]

    def test_bytes_lines(self):
        assert list(iter_sse_events([b"event: output", b"data: x", b""]))[0].data == "x"


class TestSynthesizeChunk:

    def test_copies_identity_and_clears_result_fields(self, initial):
        chunk = synthesize_chunk(initial, "Hello")

        assert chunk.id == initial.id
        assert chunk.model == initial.model
        assert chunk.version == initial.version
        assert chunk.input == initial.input
        assert chunk.urls == initial.urls
        assert chunk.created_at == initial.created_at
        assert chunk.started_at == initial.started_at
        assert chunk.deployment == "my-deployment"
        assert chunk.status is PredictionStatus.PROCESSING
        assert chunk.output == "Hello"
        assert chunk.error is None
        assert chunk.logs is None
        assert chunk.metrics is None
        assert chunk.completed_at is None

    def test_missing_text_becomes_empty_string(self, initial):
        assert synthesize_chunk(initial, None).output == ""

    def test_initial_snapshot_is_untouched(self, initial):
        synthesize_chunk(initial, "x")
        assert initial.status is PredictionStatus.STARTING
        assert initial.logs == "booting"


class TestPredictionStream:
    """Event demultiplexing"""

    def test_outputs_then_done(self, initial):
        response = sse_response(event_lines(("output", "ab"), ("output", "cd"), ("done", "{}")))
        stream, _ = make_stream(initial, response)

        chunks = list(stream)

        assert [chunk.output for chunk in chunks] == ["ab", "cd"]
        assert all(chunk.id == PREDICTION_ID for chunk in chunks)
        assert all(chunk.status is PredictionStatus.PROCESSING for chunk in chunks)
        assert stream.state is StreamState.COMPLETED
        response.close.assert_called_once()

    def test_error_event_after_output(self, initial):
        response = sse_response(event_lines(("output", "x"), ("error", "boom")))
        stream, _ = make_stream(initial, response)

        assert next(stream).output == "x"
        with pytest.raises(StreamingError, match="boom"):
            next(stream)

        assert stream.state is StreamState.FAILED
        response.close.assert_called_once()
        with pytest.raises(StopIteration):
            next(stream)

    def test_error_event_without_payload(self, initial):
        stream, _ = make_stream(initial, sse_response(event_lines(("error", None))))

        with pytest.raises(StreamingError, match="Unknown error"):
            next(stream)

    def test_output_without_payload(self, initial):
        stream, _ = make_stream(initial, sse_response(event_lines(("output", None), ("done", None))))
        assert [chunk.output for chunk in stream] == [""]

    def test_other_events_are_ignored(self, initial):
        lines = event_lines(("logs", "loading weights"), ("output", "a"), ("ping", None), ("output", "b"), ("done", ""))
        stream, _ = make_stream(initial, sse_response(lines))

        assert [chunk.output for chunk in stream] == ["a", "b"]

    def test_events_after_done_are_not_read(self, initial):
        lines = event_lines(("output", "a"), ("done", ""), ("output", "late"))
        stream, _ = make_stream(initial, sse_response(lines))

        assert [chunk.output for chunk in stream] == ["a"]

    def test_connection_opened_lazily(self, initial):
        stream, opener = make_stream(initial, sse_response(event_lines(("done", ""))))

        opener.assert_not_called()
        assert stream.state is StreamState.OPEN
        assert list(stream) == []
        opener.assert_called_once()

    def test_not_restartable(self, initial):
        stream, opener = make_stream(initial, sse_response(event_lines(("output", "a"), ("done", ""))))

        assert len(list(stream)) == 1
        assert list(stream) == []
        opener.assert_called_once()

    def test_remote_close_without_done_ends_cleanly(self, initial):
        stream, _ = make_stream(initial, sse_response(event_lines(("output", "a"))))

        assert [chunk.output for chunk in stream] == ["a"]
        assert stream.state is StreamState.COMPLETED

    def test_transport_error_mid_stream(self, initial):
        response = sse_response(
            event_lines(("output", "a")),
            error=requests.exceptions.ChunkedEncodingError("connection reset"),
        )
        stream, _ = make_stream(initial, response)

        assert next(stream).output == "a"
        with pytest.raises(TransportError) as exc_info:
            next(stream)

        assert not isinstance(exc_info.value, StreamingError)
        assert stream.state is StreamState.FAILED
        response.close.assert_called_once()

    def test_http_error_on_connect(self, initial):
        response = json_response({}, status_code=503)
        stream, _ = make_stream(initial, response)

        with pytest.raises(TransportError) as exc_info:
            next(stream)
        assert exc_info.value.status_code == 503

    def test_close_drops_connection(self, initial):
        response = sse_response(event_lines(("output", "a"), ("output", "b"), ("done", "")))
        stream, _ = make_stream(initial, response)

        with stream:
            assert next(stream).output == "a"

        response.close.assert_called_once()
        assert stream.state is StreamState.COMPLETED
        with pytest.raises(StopIteration):
            next(stream)

    def test_last_chunk_stays_processing(self, initial):
        stream, _ = make_stream(initial, sse_response(event_lines(("output", "end"), ("done", ""))))
        chunks = list(stream)
        assert chunks[-1].status is PredictionStatus.PROCESSING

    def test_real_response_decodes_utf8(self, initial):
        body = (
            "event: output\ndata: café 😀\n\n"
            "event: output\ndata: a\u2028b\x0cc\n\n"
            "event: done\n\n"
        ).encode("utf-8")
        response = raw_sse_response(body)
        assert response.encoding == "ISO-8859-1"
        stream, _ = make_stream(initial, response)

        assert [chunk.output for chunk in stream] == ["café 😀", "a\u2028b\x0cc"]
        assert stream.state is StreamState.COMPLETED

    def test_invalid_utf8_fails_stream(self, initial):
        response = raw_sse_response(b"event: output\ndata: ok\n\nevent: output\ndata: \xff\xfe\n\nevent: done\n\n")
        response.close = MagicMock(wraps=response.close)
        stream, _ = make_stream(initial, response)

        assert next(stream).output == "ok"
        with pytest.raises(ProtocolError, match="UTF-8"):
            next(stream)

        assert stream.state is StreamState.FAILED
        response.close.assert_called_once()
        with pytest.raises(StopIteration):
            next(stream)


class TestClientStream:

    def test_stream_through_client(self, client, session):
        session.request.return_value = json_response(prediction_payload())
        session.get.return_value = sse_response(event_lines(("output", "ab"), ("output", "cd"), ("done", "{}")))

        stream = client.create_prediction_stream(MODEL_NAME, PredictionRequest(input={"prompt": "hi"}, stream=True))
        chunks = list(stream)

        assert [chunk.output for chunk in chunks] == ["ab", "cd"]
        assert session.request.call_args.kwargs["json"]["stream"] is True
        args, kwargs = session.get.call_args
        assert args == (STREAM_URL,)
        assert kwargs["stream"] is True
        assert kwargs["headers"]["Accept"] == "text/event-stream"
        assert kwargs["headers"]["Cache-Control"] == "no-store"
        assert kwargs["headers"]["Authorization"] == f"Bearer {API_KEY}"

    def test_submission_has_no_wait_headers(self, client, session):
        session.request.return_value = json_response(prediction_payload())

        client.create_prediction_stream(MODEL_NAME, PredictionRequest(stream=True))

        headers = session.request.call_args.kwargs["headers"]
        assert "Prefer" not in headers
        assert "Cancel-After" not in headers

    def test_missing_stream_url(self, client, session):
        payload = prediction_payload()
        payload["urls"] = {"get": "https://example.com/get"}
        session.request.return_value = json_response(payload)

        with pytest.raises(ProtocolError, match="No stream URL"):
            client.create_prediction_stream(MODEL_NAME, PredictionRequest(stream=True))
        session.get.assert_not_called()

import threading
from unittest.mock import Mock

import pytest
import requests

from app.services.preview_client import (
    CaptionPreviewClient,
    DebouncedPreview,
    PreviewRequestError,
)


def _response(status_code, body):
    response = Mock()
    response.status_code = status_code
    response.text = str(body)
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    s = Mock(spec=requests.Session)
    s.headers = {}
    return s


class TestCaptionPreviewClient:

    def test_returns_meta(self, session):
        session.post.return_value = _response(200, {"ok": True, "data": {"meta": {"rasterW": 600}}})
        client = CaptionPreviewClient("http://localhost:8000/", token="abc", session=session)

        meta = client.preview({"text": "hi"}, client_hint="mobile")

        assert meta == {"rasterW": 600}
        args, kwargs = session.post.call_args
        assert args[0] == "http://localhost:8000/api/caption/preview"
        assert kwargs["json"] == {"text": "hi"}
        assert kwargs["headers"] == {"x-client": "mobile"}
        assert session.headers["Authorization"] == "Bearer abc"

    def test_error_status_raises(self, session):
        session.post.return_value = _response(400, {"ok": False, "error": "INVALID_INPUT", "detail": "bad"})
        client = CaptionPreviewClient("http://localhost:8000", session=session)

        with pytest.raises(PreviewRequestError) as exc_info:
            client.preview({})
        assert exc_info.value.status_code == 400
        assert exc_info.value.payload["detail"] == "bad"

    def test_ok_false_raises(self, session):
        session.post.return_value = _response(200, {"ok": False, "detail": "nope"})
        client = CaptionPreviewClient("http://localhost:8000", session=session)
        with pytest.raises(PreviewRequestError):
            client.preview({})

    def test_non_json_raises(self, session):
        session.post.return_value = _response(502, ValueError("no json"))
        client = CaptionPreviewClient("http://localhost:8000", session=session)
        with pytest.raises(PreviewRequestError):
            client.preview({})

    def test_network_errors_propagate(self, session):
        session.post.side_effect = requests.exceptions.ConnectionError("down")
        client = CaptionPreviewClient("http://localhost:8000", session=session)
        with pytest.raises(requests.exceptions.ConnectionError):
            client.preview({})


class TestDebouncedPreview:

    def test_burst_sends_last_payload_once(self):
        client = Mock()
        client.preview.return_value = {"rasterW": 1}
        done = threading.Event()
        results = []

        def callback(error, meta):
            results.append((error, meta))
            done.set()

        debounced = DebouncedPreview(client, callback, delay=0.05)
        for i in range(5):
            debounced({"text": str(i)})

        assert done.wait(2.0)
        debounced.cancel()
        assert client.preview.call_count == 1
        client.preview.assert_called_with({"text": "4"}, client_hint=None)
        assert results == [(None, {"rasterW": 1})]

    def test_errors_go_to_callback(self):
        client = Mock()
        error = PreviewRequestError("bad", status_code=400)
        client.preview.side_effect = error
        results = []

        debounced = DebouncedPreview(client, lambda e, m: results.append((e, m)), delay=10)
        debounced({"text": "x"})
        debounced.flush()

        assert results == [(error, None)]

    def test_cancel_drops_pending(self):
        client = Mock()
        debounced = DebouncedPreview(client, lambda e, m: None, delay=10)
        debounced({"text": "x"})
        debounced.cancel()
        debounced.flush()
        client.preview.assert_not_called()

import io
import logging

import pytest

from app.core.logging import get_logger, setup_logging


class TestLogging:

    def test_setup_logging_writes_to_stream(self):
        stream = io.StringIO()
        setup_logging("INFO", stream=stream)
        get_logger("app.tests").info("caption ready")
        assert "caption ready" in stream.getvalue()
        assert "app.tests" in stream.getvalue()

    def test_invalid_level(self):
        with pytest.raises(ValueError):
            setup_logging("LOUD")

    def test_level_applied(self):
        setup_logging("warning", stream=io.StringIO())
        assert logging.getLogger("app").level == logging.WARNING
        setup_logging("DEBUG")


class TestErrorEnvelope:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "frame": {"W": 1080, "H": 1920}}

    def test_unknown_route(self, client):
        res = client.get("/api/nothing-here")
        assert res.status_code == 404
        assert res.json() == {"ok": False, "error": "NOT_FOUND", "detail": "Not Found"}

    def test_validation_errors_are_400(self, client):
        res = client.post("/api/caption/parity", json={"expectedUrl": "x"})
        assert res.status_code == 400
        body = res.json()
        assert body["ok"] is False
        assert body["error"] == "INVALID_INPUT"
        assert any(err["loc"][-1] == "actualUrl" for err in body["detail"])

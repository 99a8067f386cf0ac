"""Tests for promptprint.transport -- HTTP error mapping and the timeout race."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
import requests
import responses

from promptprint.transport import (
    AttemptTimeout,
    HttpTransport,
    ResponseParseError,
    TransportError,
    call_with_timeout,
)

URL = "https://api.example.test/v1/thing"


class TestTransportError:
    @pytest.mark.parametrize(
        "status,retryable",
        [(None, True), (408, True), (429, True), (500, True), (503, True), (400, False), (401, False), (404, False)],
    )
    def test_retryable(self, status, retryable):
        assert TransportError("x", status_code=status).retryable is retryable

    def test_parse_error_always_retryable(self):
        assert ResponseParseError("bad", status_code=200).retryable is True


class TestRequestJson:
    @responses.activate
    def test_returns_parsed_body(self):
        responses.add(responses.POST, URL, json={"ok": True})
        transport = HttpTransport(headers={"User-Agent": "promptprint-test"})
        assert transport.request_json("POST", URL, json={"a": 1}) == {"ok": True}
        assert responses.calls[0].request.headers["User-Agent"] == "promptprint-test"

    @responses.activate
    def test_per_call_headers(self):
        responses.add(responses.GET, URL, json=[])
        HttpTransport().request_json("GET", URL, headers={"X-API-Key": "k"}, params={"q": "1"})
        request = responses.calls[0].request
        assert request.headers["X-API-Key"] == "k"
        assert request.url == f"{URL}?q=1"

    @responses.activate
    def test_empty_body_is_none(self):
        responses.add(responses.DELETE, URL, status=204)
        assert HttpTransport().request_json("DELETE", URL) is None

    @responses.activate
    def test_http_error_carries_status_and_detail(self):
        responses.add(responses.GET, URL, json={"message": "Price expired"}, status=404)
        with pytest.raises(TransportError) as exc_info:
            HttpTransport().request_json("GET", URL)
        err = exc_info.value
        assert err.status_code == 404
        assert err.code == "HTTP_404"
        assert "Price expired" in str(err)
        assert err.retryable is False

    @responses.activate
    def test_invalid_json(self):
        responses.add(responses.GET, URL, body="<html>", status=200)
        with pytest.raises(ResponseParseError) as exc_info:
            HttpTransport().request_json("GET", URL)
        assert exc_info.value.code == "INVALID_RESPONSE"

    @responses.activate
    def test_connection_error(self):
        responses.add(responses.GET, URL, body=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(TransportError) as exc_info:
            HttpTransport().request_json("GET", URL)
        assert exc_info.value.code == "CONNECTION_ERROR"
        assert exc_info.value.retryable is True

    @responses.activate
    def test_timeout(self):
        responses.add(responses.GET, URL, body=requests.exceptions.ReadTimeout("slow"))
        with pytest.raises(TransportError) as exc_info:
            HttpTransport(timeout=3).request_json("GET", URL)
        assert exc_info.value.code == "TIMEOUT"
        assert "3" in str(exc_info.value)

    def test_per_call_timeout_overrides_default(self):
        session = MagicMock()
        session.request.side_effect = requests.exceptions.ReadTimeout("slow")
        transport = HttpTransport(timeout=30, session=session)
        with pytest.raises(TransportError) as exc_info:
            transport.request_json("GET", URL, timeout=0.5)
        assert session.request.call_args.kwargs["timeout"] == 0.5
        assert "0.5s" in str(exc_info.value)
        assert exc_info.value.code == "TIMEOUT"

    def test_default_timeout_when_not_overridden(self):
        session = MagicMock()
        session.request.return_value.ok = True
        session.request.return_value.status_code = 200
        session.request.return_value.content = b"{}"
        session.request.return_value.json.return_value = {}
        HttpTransport(timeout=7, session=session).request_json("GET", URL)
        assert session.request.call_args.kwargs["timeout"] == 7


class TestUploadAndFetch:
    @responses.activate
    def test_upload_multipart(self):
        responses.add(responses.POST, URL, json=[{"modelId": "m1"}])
        result = HttpTransport().upload(
            URL,
            files={"file": ("model.obj", b"v 0 0 0\n", "application/octet-stream")},
            data={"unit": "mm"},
        )
        assert result == [{"modelId": "m1"}]
        assert responses.calls[0].request.headers["Content-Type"].startswith("multipart/form-data")

    @responses.activate
    def test_fetch_bytes(self):
        responses.add(responses.GET, URL, body=b"\x00\x01binary")
        assert HttpTransport().fetch_bytes(URL) == b"\x00\x01binary"

    @responses.activate
    def test_fetch_error(self):
        responses.add(responses.GET, URL, status=502)
        with pytest.raises(TransportError) as exc_info:
            HttpTransport().fetch_bytes(URL)
        assert exc_info.value.status_code == 502


class TestCallWithTimeout:
    def test_returns_result(self):
        with ThreadPoolExecutor(max_workers=1) as executor:
            assert call_with_timeout(lambda: 42, 1.0, executor) == 42

    def test_propagates_exception(self):
        def boom():
            raise ValueError("nope")

        with ThreadPoolExecutor(max_workers=1) as executor:
            with pytest.raises(ValueError, match="nope"):
                call_with_timeout(boom, 1.0, executor)

    def test_timer_wins(self):
        release = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            with pytest.raises(AttemptTimeout):
                call_with_timeout(lambda: release.wait(5), 0.01, executor)
        finally:
            release.set()
            executor.shutdown(wait=True)

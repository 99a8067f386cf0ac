"""HTTP transport shared by the Meshy and Craftcloud clients.

Wraps a :class:`requests.Session` behind three calls the rest of the
package depends on:

- :meth:`HttpTransport.request_json` -- JSON request, parsed JSON response
- :meth:`HttpTransport.upload` -- multipart upload, parsed JSON response
- :meth:`HttpTransport.fetch_bytes` -- raw download of a remote file

Every non-2xx response raises :class:`TransportError` carrying the HTTP
status code.  A body that cannot be parsed as JSON raises the distinct
:class:`ResponseParseError`.  Clients accept any object with the same
methods, so tests can inject fakes.

Also provides :func:`call_with_timeout`, the "first of (call, timer) wins"
race used for per-attempt polling deadlines.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Any, Callable, TypeVar

import requests
from requests.exceptions import ConnectionError as ReqConnectionError
from requests.exceptions import RequestException, Timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes worth repeating the request for.
_RETRYABLE_STATUS_CODES = {408, 429}


class TransportError(Exception):
    """Raised when an HTTP call fails at the network or HTTP level."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """True for network failures, timeouts, 408, 429 and 5xx."""
        if self.status_code is None:
            return True
        return self.status_code in _RETRYABLE_STATUS_CODES or self.status_code >= 500


class ResponseParseError(TransportError):
    """Raised when a successful response body is not valid JSON."""

    @property
    def retryable(self) -> bool:
        return True


class AttemptTimeout(Exception):
    """Raised by :func:`call_with_timeout` when the timer wins the race."""


def call_with_timeout(
    fn: Callable[[], T],
    timeout: float,
    executor: concurrent.futures.Executor,
) -> T:
    """Run *fn* on *executor* and wait at most *timeout* seconds for it.

    If the timer expires first the future is cancelled (a no-op when it is
    already running) and :class:`AttemptTimeout` is raised.  The abandoned
    call's result is discarded.  Exceptions raised by *fn* propagate.
    """
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        future.cancel()
        raise AttemptTimeout(f"Call did not complete within {timeout}s") from None


class HttpTransport:
    """JSON and multipart HTTP calls over a shared :class:`requests.Session`.

    Args:
        headers: Default headers sent with every request.
        timeout: Socket timeout in seconds for every request.
        session: Optional pre-built session (mainly for tests).
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()
        if headers:
            self._session.headers.update(headers)

    @property
    def timeout(self) -> float:
        return self._timeout

    def request_json(
        self,
        method: str,
        url: str,
        *,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a JSON request and return the parsed JSON response body.

        *timeout* overrides the transport-wide socket timeout for this call.
        """
        response = self._send(method, url, json=json, params=params, headers=headers, timeout=timeout)
        return self._parse(response, method, url)

    def upload(
        self,
        url: str,
        *,
        files: dict[str, Any],
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST a multipart form and return the parsed JSON response body."""
        response = self._send("POST", url, files=files, data=data, headers=headers)
        return self._parse(response, "POST", url)

    def fetch_bytes(self, url: str, *, headers: dict[str, str] | None = None) -> bytes:
        """GET *url* and return the raw response body."""
        response = self._send("GET", url, headers=headers)
        return response.content

    # -- internals ------------------------------------------------------------

    def _send(
        self,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        timeout = self._timeout if timeout is None else timeout
        try:
            response = self._session.request(method, url, timeout=timeout, **kwargs)
        except Timeout as exc:
            raise TransportError(
                f"{method} {url} timed out after {timeout}s",
                code="TIMEOUT",
            ) from exc
        except ReqConnectionError as exc:
            raise TransportError(
                f"Could not connect for {method} {url}",
                code="CONNECTION_ERROR",
            ) from exc
        except RequestException as exc:
            raise TransportError(
                f"Request error for {method} {url}: {exc}",
                code="REQUEST_ERROR",
            ) from exc

        if not response.ok:
            raise TransportError(
                f"HTTP {response.status_code} for {method} {url}: {_error_detail(response)}",
                code=f"HTTP_{response.status_code}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _parse(response: requests.Response, method: str, url: str) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseParseError(
                f"Invalid JSON in response to {method} {url}",
                code="INVALID_RESPONSE",
                status_code=response.status_code,
            ) from exc


def _error_detail(response: requests.Response) -> str:
    """Best-effort short description of an error response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, str) and message:
            return message
    return response.text[:200]

"""Meshy text-to-3D client.

Submits a preview-mode generation task to the Meshy API
(https://docs.meshy.ai) and polls it until the service reports a terminal
state, handing progress updates to a caller-supplied callback.  Preview
mode produces untextured geometry, which is all a print quote needs.

Authentication
--------------
Set ``PROMPTPRINT_MESHY_API_KEY`` or pass ``api_key`` to the constructor.

Download proxy
--------------
Meshy asset URLs are signed and served without CORS headers.  When
``proxy_url`` is configured, task submission is routed through the proxy
and the returned ``glb``/``obj`` URLs are rewritten to
``{proxy_url}/{url-encoded asset URL}``.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote as url_quote

from promptprint.config import MeshySettings
from promptprint.generation.base import (
    GeneratedModel,
    GenerationAuthError,
    GenerationError,
    GenerationFailedError,
    GenerationJob,
    GenerationStatus,
    GenerationTimeoutError,
    GenerationValidationError,
    ProgressCallback,
)
from promptprint.transport import HttpTransport, TransportError

logger = logging.getLogger(__name__)

_STATUS_MAP: Dict[str, GenerationStatus] = {
    "PENDING": GenerationStatus.PENDING,
    "PROCESSING": GenerationStatus.PROCESSING,
    "IN_PROGRESS": GenerationStatus.PROCESSING,
    "SUCCEEDED": GenerationStatus.SUCCEEDED,
    "FAILED": GenerationStatus.FAILED,
    "CANCELED": GenerationStatus.FAILED,
    "CANCELLED": GenerationStatus.FAILED,
    "EXPIRED": GenerationStatus.FAILED,
}


class _ProgressReporter:
    """Deliver clamped, non-decreasing progress values to a callback."""

    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self._callback = callback
        self._last: Optional[int] = None

    def report(self, value: int) -> None:
        if self._callback is None:
            return
        value = max(0, min(100, value))
        if self._last is not None and value < self._last:
            logger.debug("Dropping regressive progress %d (last %d)", value, self._last)
            return
        self._last = value
        try:
            self._callback(value)
        except Exception:
            logger.warning("Progress callback raised; ignoring", exc_info=True)


class MeshyClient:
    """Meshy text-to-3D generation with progress polling.

    Args:
        api_key: Meshy API key.  Falls back to ``settings.api_key`` and
            then ``PROMPTPRINT_MESHY_API_KEY``.
        settings: Endpoint, request body and polling settings.
        transport: HTTP transport; a fresh :class:`HttpTransport` by default.
        sleep: Called with the poll interval between attempts.

    Raises:
        GenerationAuthError: If no API key is available.
    """

    def __init__(
        self,
        api_key: str = "",
        *,
        settings: MeshySettings | None = None,
        transport: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or MeshySettings()
        key = api_key or self._settings.api_key or os.environ.get("PROMPTPRINT_MESHY_API_KEY", "")
        if not isinstance(key, str) or not key.strip():
            raise GenerationAuthError(
                "Valid Meshy API key is required.  Set PROMPTPRINT_MESHY_API_KEY or pass api_key.",
                code="AUTH_REQUIRED",
            )
        self._api_key = key.strip()
        self._base_url = self._settings.base_url.rstrip("/")
        self._proxy_url = self._settings.proxy_url.rstrip("/")
        self._transport = transport or HttpTransport(timeout=self._settings.request_timeout)
        self._sleep = sleep
        self._progress_callback: Optional[ProgressCallback] = None
        self._busy = threading.Lock()

    @property
    def name(self) -> str:
        return "meshy"

    def on_progress(self, callback: Optional[ProgressCallback]) -> None:
        """Set the default progress callback used by :meth:`generate_model`."""
        self._progress_callback = callback

    # ------------------------------------------------------------------
    # Primitive calls
    # ------------------------------------------------------------------

    def submit(self, prompt: str) -> str:
        """Submit a preview generation task and return its task ID."""
        body: Dict[str, Any] = {
            "mode": self._settings.mode,
            "prompt": prompt,
            "negative_prompt": self._settings.negative_prompt,
            "art_style": self._settings.art_style,
            "should_remesh": self._settings.should_remesh,
        }
        url = f"{self._base_url}/text-to-3d"
        headers = self._auth_headers()
        if self._proxy_url:
            url = self._proxied(url)
            headers["X-API-KEY"] = self._settings.proxy_api_key

        data = self._call("POST", url, json=body, headers=headers)
        task_id = data.get("result") if isinstance(data, dict) else None
        if not task_id or not isinstance(task_id, str):
            raise GenerationError("Meshy API returned no task ID.", code="INVALID_RESPONSE")

        logger.info("Submitted Meshy task %s", task_id)
        return task_id

    def get_job(self, job_id: str) -> GenerationJob:
        """Read the current state of a generation task."""
        data = self._call(
            "GET",
            f"{self._base_url}/text-to-3d/{url_quote(job_id, safe='')}",
            headers=self._auth_headers(),
        )
        if not isinstance(data, dict):
            raise GenerationError(
                f"Unexpected Meshy status response type: {type(data).__name__}",
                code="INVALID_RESPONSE",
            )

        status_str = str(data.get("status", "PENDING")).upper()
        status = _STATUS_MAP.get(status_str)
        if status is None:
            logger.debug("Unknown Meshy status %r for task %s; treating as pending", status_str, job_id)
            status = GenerationStatus.PENDING

        progress: Optional[int] = None
        raw_progress = data.get("progress")
        if isinstance(raw_progress, (int, float)) and not isinstance(raw_progress, bool):
            progress = int(raw_progress)

        model_urls: Dict[str, str] = {}
        raw_urls = data.get("model_urls")
        if isinstance(raw_urls, dict):
            model_urls = {k: v for k, v in raw_urls.items() if isinstance(v, str) and v}

        error: Optional[str] = None
        if isinstance(data.get("error"), str) and data["error"]:
            error = data["error"]
        elif isinstance(data.get("task_error"), dict):
            error = data["task_error"].get("message") or None

        return GenerationJob(
            id=job_id,
            status=status,
            progress=progress,
            model_urls=model_urls,
            error=error,
        )

    # ------------------------------------------------------------------
    # Poller
    # ------------------------------------------------------------------

    def generate_model(
        self,
        prompt: str,
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GeneratedModel:
        """Generate a model from *prompt* and wait for both mesh formats.

        Polls every ``poll_interval`` seconds, at most ``max_poll_attempts``
        times.  A ``SUCCEEDED`` task that does not yet list both ``glb`` and
        ``obj`` URLs keeps being polled.

        Raises:
            GenerationValidationError: If *prompt* is empty.  No request is made.
            GenerationAuthError: If Meshy rejects the API key.
            GenerationFailedError: If the task fails on Meshy's side.
            GenerationTimeoutError: If the attempt budget runs out.
            GenerationError: On any other transport or response problem, or
                if another generation is already running on this client.
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise GenerationValidationError("Valid prompt is required", code="INVALID_PROMPT")

        if not self._busy.acquire(blocking=False):
            raise GenerationError(
                "A generation is already running on this client.",
                code="JOB_IN_PROGRESS",
            )
        try:
            return self._poll(prompt, on_progress or self._progress_callback)
        except GenerationError as exc:
            logger.error("Meshy generation failed: %s", exc)
            raise
        finally:
            self._busy.release()

    def _poll(self, prompt: str, callback: Optional[ProgressCallback]) -> GeneratedModel:
        job_id = self.submit(prompt)
        reporter = _ProgressReporter(callback)
        max_attempts = self._settings.max_poll_attempts

        for attempt in range(max_attempts):
            job = self.get_job(job_id)
            if job.progress is not None:
                reporter.report(job.progress)

            if job.status is GenerationStatus.SUCCEEDED and job.has_all_formats:
                logger.info("Meshy task %s succeeded after %d polls", job_id, attempt + 1)
                return GeneratedModel(
                    job_id=job_id,
                    glb_url=self._asset_url(job.model_urls["glb"]),
                    obj_url=self._asset_url(job.model_urls["obj"]),
                    prompt=prompt,
                )
            if job.status is GenerationStatus.FAILED:
                raise GenerationFailedError(
                    job.error or "Preview generation failed",
                    code="GENERATION_FAILED",
                )

            logger.debug(
                "Meshy task %s %s (progress %s, attempt %d/%d)",
                job_id,
                job.status.value,
                job.progress,
                attempt + 1,
                max_attempts,
            )
            if attempt + 1 < max_attempts:
                self._sleep(self._settings.poll_interval)

        raise GenerationTimeoutError("Preview generation timed out", code="TIMEOUT")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _proxied(self, url: str) -> str:
        return f"{self._proxy_url}/{url_quote(url, safe='')}"

    def _asset_url(self, url: str) -> str:
        return self._proxied(url) if self._proxy_url else url

    def _call(self, method: str, url: str, **kwargs: Any) -> Any:
        """Run a transport call, translating failures into generation errors."""
        try:
            return self._transport.request_json(method, url, **kwargs)
        except TransportError as exc:
            if exc.status_code in (401, 403):
                raise GenerationAuthError(
                    "Meshy API key is invalid or expired.", code="AUTH_INVALID"
                ) from exc
            if exc.status_code == 429:
                raise GenerationError(
                    "Meshy API rate limit exceeded.  Try again later.", code="RATE_LIMITED"
                ) from exc
            raise GenerationError(f"Meshy API error: {exc}", code=exc.code or "API_ERROR") from exc

    def __repr__(self) -> str:
        return f"<MeshyClient base_url={self._base_url!r} proxy_url={self._proxy_url!r}>"

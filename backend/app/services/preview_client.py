"""
HTTP client for the caption preview endpoint, plus a debounce wrapper so a
typing user does not trigger one request per keystroke.
"""

import threading
from typing import Any, Callable, Dict, Optional

import requests

from app.core.logging import get_logger

logger = get_logger(__name__)

PREVIEW_PATH = "/api/caption/preview"
DEFAULT_DEBOUNCE_SECONDS = 0.3


class PreviewRequestError(Exception):
    """Preview endpoint answered with a non-2xx status or `ok: false`."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class CaptionPreviewClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def preview(self, payload: Dict[str, Any], client_hint: Optional[str] = None) -> Dict[str, Any]:
        """
        POST one preview request and return `data.meta`.

        Raises:
            PreviewRequestError: HTTP error status or `ok: false` body
            requests.exceptions.RequestException: transport failures
        """
        headers = {"x-client": client_hint} if client_hint else None
        response = self.session.post(
            f"{self.base_url}{PREVIEW_PATH}",
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400 or not isinstance(body, dict) or not body.get("ok"):
            detail = body.get("detail") if isinstance(body, dict) else response.text
            logger.warning("Caption preview failed (%s): %s", response.status_code, detail)
            raise PreviewRequestError(
                f"preview failed with status {response.status_code}: {detail}",
                status_code=response.status_code,
                payload=body,
            )
        return body["data"]["meta"]


PreviewCallback = Callable[[Optional[Exception], Optional[Dict[str, Any]]], None]


class DebouncedPreview:
    """
    Coalesce bursts of preview calls; only the last payload within `delay`
    seconds is sent. `callback(error, meta)` runs on the timer thread.
    """

    def __init__(
        self,
        client: CaptionPreviewClient,
        callback: PreviewCallback,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.client = client
        self.callback = callback
        self.delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def __call__(self, payload: Dict[str, Any], client_hint: Optional[str] = None) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire, args=(payload, client_hint))
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, payload: Dict[str, Any], client_hint: Optional[str]) -> None:
        with self._lock:
            if self._timer is threading.current_thread():
                self._timer = None
        try:
            meta = self.client.preview(payload, client_hint=client_hint)
        except (PreviewRequestError, requests.exceptions.RequestException) as e:
            self.callback(e, None)
            return
        self.callback(None, meta)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self) -> None:
        """Send the pending payload now on the calling thread, if any."""
        with self._lock:
            timer = self._timer
        if timer is None:
            return
        timer.cancel()
        timer.function(*timer.args, **timer.kwargs)
        with self._lock:
            if self._timer is timer:
                self._timer = None

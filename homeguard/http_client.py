"""Pull-based REST client for controllers running the HTTP firmware."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from requests import RequestException

from homeguard.errors import DecodeFailure, RequestFailure
from homeguard.metrics import MetricsLogger
from homeguard.models.connection_state import ConnectionState
from homeguard.models.mode import Mode

logger = logging.getLogger(__name__)

AWAY_PATH = "/api/away"
SECURITY_PATH = "/api/security"
STATUS_PATH = "/api/status"

_MODE_PATHS = {Mode.AWAY: AWAY_PATH, Mode.SECURITY: SECURITY_PATH}


class HttpTransport:
    """Talk to ``/api/away``, ``/api/security`` and ``/api/status``.

    Mode changes succeed only on a 2xx answer. Status reads never raise:
    transport errors and malformed bodies both come back as ``None``.
    No request timeout is applied unless one is configured.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._metrics = metrics
        self._state = ConnectionState.disconnected()

    @property
    def endpoint(self) -> str:
        return self.base_url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state.is_connected

    async def connect(self) -> ConnectionState:
        # HTTP keeps no session open; "connected" means the client is ready.
        self._state = ConnectionState.connected()
        return self._state

    async def close(self) -> None:
        self._session.close()
        self._state = ConnectionState.disconnected()

    async def set_away(self, enabled: bool) -> bool:
        return await self._post_enabled(AWAY_PATH, enabled)

    async def set_security(self, enabled: bool) -> bool:
        return await self._post_enabled(SECURITY_PATH, enabled)

    async def set_mode(self, mode: Mode, enabled: bool) -> bool:
        path = _MODE_PATHS.get(Mode.parse(mode))
        if path is None:
            raise ValueError(f"{Mode.parse(mode).value} mode is not available over HTTP")
        return await self._post_enabled(path, enabled)

    async def get_status(self) -> Optional[Dict[str, bool]]:
        url = self._url(STATUS_PATH)
        try:
            payload = await asyncio.to_thread(self._fetch_status, url)
        except RequestException as exc:
            logger.warning("Status request to %s failed: %s", url, exc)
            self._metrics_log("status", status="error", message=str(exc))
            return None
        except DecodeFailure as exc:
            logger.warning("Status from %s could not be decoded: %s", url, exc)
            self._metrics_log("status", status="decode_error", message=str(exc))
            return None
        if payload is None:
            return None
        self._metrics_log("status", status="ok", extra=payload)
        return payload

    async def _post_enabled(self, path: str, enabled: bool) -> bool:
        url = self._url(path)
        try:
            status_code = await asyncio.to_thread(self._post, url, {"enabled": bool(enabled)})
        except RequestFailure as exc:
            logger.warning("POST %s rejected: %s", url, exc)
            self._metrics_log(
                "request", status="rejected", value=exc.status_code, message=str(exc), extra={"path": path}
            )
            return False
        except RequestException as exc:
            logger.warning("POST %s failed: %s", url, exc)
            self._metrics_log("request", status="error", message=str(exc), extra={"path": path})
            return False
        self._metrics_log(
            "request",
            status="ok",
            value=float(status_code),
            extra={"path": path, "enabled": bool(enabled)},
        )
        return True

    def _post(self, url: str, body: Dict[str, Any]) -> int:
        response = self._session.post(
            url,
            json=body,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        status_code = int(response.status_code)
        if not 200 <= status_code < 300:
            raise RequestFailure(f"HTTP {status_code}", status_code=status_code)
        return status_code

    def _fetch_status(self, url: str) -> Optional[Dict[str, bool]]:
        response = self._session.get(url, timeout=self.timeout)
        if response.status_code != 200:
            logger.info("Status request to %s answered with HTTP %s", url, response.status_code)
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodeFailure(f"invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise DecodeFailure("status must be a JSON object")
        return {
            "away": payload.get("away") is True,
            "security": payload.get("security") is True,
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _metrics_log(
        self,
        event: str,
        *,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not self._metrics:
            return
        payload: Dict[str, Any] = {"endpoint": self.base_url}
        if extra:
            payload.update(extra)
        try:
            self._metrics.log(event, status=status, value=value, message=message, extra=payload)
        except Exception:  # pragma: no cover - diagnostics must not break requests
            logger.debug("Metrics logging failed for %s", event, exc_info=True)


__all__ = ["AWAY_PATH", "HttpTransport", "SECURITY_PATH", "STATUS_PATH"]

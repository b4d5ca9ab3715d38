"""Flask stand-in for the controller's HTTP firmware, for local development."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request


DEFAULT_HOST = os.getenv("HOMEGUARD_EMULATOR_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("HOMEGUARD_EMULATOR_PORT", "8080"))

logger = logging.getLogger("homeguard.emulator")


class DeviceState:
    """Mode flags held by the emulated controller."""

    def __init__(self, away: bool = False, security: bool = False) -> None:
        self._lock = threading.Lock()
        self._flags: Dict[str, bool] = {"away": away, "security": security}
        self.reject = False

    def set(self, mode: str, enabled: bool) -> Dict[str, bool]:
        with self._lock:
            self._flags[mode] = enabled
            return dict(self._flags)

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._flags)


def create_app(state: Optional[DeviceState] = None) -> Flask:
    app = Flask(__name__)
    device = state or DeviceState()
    app.config["DEVICE_STATE"] = device

    def _apply(mode: str):
        if device.reject:
            return jsonify({"ok": False, "error": "device busy"}), 503
        payload: Any = request.get_json(silent=True)
        if not isinstance(payload, dict) or not isinstance(payload.get("enabled"), bool):
            return jsonify({"ok": False, "error": "expected {\"enabled\": bool}"}), 400
        flags = device.set(mode, payload["enabled"])
        logger.info("%s mode %s", mode.capitalize(), "armed" if payload["enabled"] else "disarmed")
        return jsonify({"ok": True, **flags})

    @app.post("/api/away")
    def api_away():
        return _apply("away")

    @app.post("/api/security")
    def api_security():
        return _apply("security")

    @app.get("/api/status")
    def api_status():
        return jsonify(device.snapshot())

    return app


def main(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    app = create_app()
    logger.info("Emulating controller on http://%s:%s", host, port)
    app.run(debug=False, host=host, port=port, use_reloader=False)


if __name__ == "__main__":
    main()

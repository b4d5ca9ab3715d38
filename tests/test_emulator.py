"""Tests for the Flask controller emulator, alone and behind the HTTP transport."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Optional

from homeguard.emulator import DeviceState, create_app
from homeguard.http_client import HttpTransport
from homeguard.models import Mode
from homeguard.protocol import get_profile
from homeguard.reconciler import Reconciler
from homeguard.store import HistoryStore


class _FlaskSession:
    """Just enough of ``requests.Session`` to route calls into a Flask test client."""

    def __init__(self, client) -> None:
        self._client = client

    def post(self, url: str, json: Any = None, headers: Optional[dict] = None, timeout: Any = None):
        return self._wrap(self._client.post(url, json=json, headers=headers))

    def get(self, url: str, timeout: Any = None):
        return self._wrap(self._client.get(url))

    def close(self) -> None:
        pass

    @staticmethod
    def _wrap(response):
        return SimpleNamespace(status_code=response.status_code, json=response.get_json)


class EmulatorAppTest(unittest.TestCase):
    def setUp(self) -> None:
        self.state = DeviceState()
        self.client = create_app(self.state).test_client()

    def test_status_reflects_posted_flags(self) -> None:
        self.assertEqual(self.client.get("/api/status").get_json(), {"away": False, "security": False})

        response = self.client.post("/api/away", json={"enabled": True})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"ok": True, "away": True, "security": False})
        self.assertEqual(self.client.get("/api/status").get_json(), {"away": True, "security": False})

    def test_invalid_body_is_rejected(self) -> None:
        for body in ({"enabled": "yes"}, {}, ["enabled"]):
            with self.subTest(body=body):
                response = self.client.post("/api/security", json=body)
                self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.post("/api/security", data="not json").status_code, 400)
        self.assertEqual(self.state.snapshot(), {"away": False, "security": False})

    def test_busy_device_answers_503(self) -> None:
        self.state.reject = True
        response = self.client.post("/api/away", json={"enabled": True})
        self.assertEqual(response.status_code, 503)
        self.assertFalse(self.state.snapshot()["away"])


class HttpVariantEndToEndTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.device = DeviceState(away=False, security=True)
        session = _FlaskSession(create_app(self.device).test_client())
        self.transport = HttpTransport("http://controller.local", session=session)
        self.store = HistoryStore.open(Path(self._tmp.name, "history.sqlite3"))
        self.reconciler = Reconciler(get_profile("http"), self.transport, store=self.store)

    async def asyncTearDown(self) -> None:
        await self.reconciler.stop()
        self._tmp.cleanup()

    async def test_startup_sync_then_confirmed_toggle(self) -> None:
        await self.reconciler.start()
        self.assertEqual(self.reconciler.modes, {Mode.AWAY: False, Mode.SECURITY: True})

        self.assertTrue(await self.reconciler.toggle(Mode.AWAY, True))

        self.assertTrue(self.device.snapshot()["away"])
        self.assertEqual(self.reconciler.history[-1].reason, "Away mode armed")
        self.assertEqual(self.store.load(), list(self.reconciler.history))

    async def test_busy_device_leaves_local_state_alone(self) -> None:
        await self.reconciler.start()
        self.device.reject = True

        self.assertFalse(await self.reconciler.toggle(Mode.SECURITY, False))

        self.assertTrue(self.reconciler.is_active(Mode.SECURITY))
        self.assertEqual(self.reconciler.history, ())
        self.assertEqual(self.reconciler.last_notice.message, "Failed to update Security mode on device")


if __name__ == "__main__":
    unittest.main()

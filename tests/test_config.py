"""Tests for environment configuration and reconciler wiring."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from homeguard.ble import BleUartTransport
from homeguard.config import DeviceConfig, build_reconciler, build_transport
from homeguard.errors import ConfigurationError
from homeguard.http_client import HttpTransport
from homeguard.network import NetworkMonitor
from homeguard.transport import RfcommTransport, TcpTransport


class DeviceConfigTest(unittest.TestCase):
    def test_defaults_without_environment(self) -> None:
        config = DeviceConfig.from_env({})
        self.assertEqual(config.variant, "http")
        self.assertEqual(config.base_url, "http://192.168.4.1")
        self.assertIsNone(config.http_timeout)
        self.assertTrue(config.check_network)

    def test_environment_values_are_parsed(self) -> None:
        config = DeviceConfig.from_env({
            "HOMEGUARD_VARIANT": " Bluetooth ",
            "HOMEGUARD_BT_ADDRESS": "00:11:22:33:44:55",
            "HOMEGUARD_BT_CHANNEL": "3",
            "HOMEGUARD_BT_LINK": "ble",
            "HOMEGUARD_TCP_PORT": "4000",
            "HOMEGUARD_HTTP_TIMEOUT": "2.5",
            "HOMEGUARD_CHECK_NETWORK": "off",
        })
        self.assertEqual(config.profile.name, "bluetooth")
        self.assertEqual(config.bt_channel, 3)
        self.assertEqual(config.bt_link, "ble")
        self.assertEqual(config.tcp_port, 4000)
        self.assertEqual(config.http_timeout, 2.5)
        self.assertFalse(config.check_network)

    def test_bad_numbers_raise_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            DeviceConfig.from_env({"HOMEGUARD_TCP_PORT": "eighty"})
        with self.assertRaises(ConfigurationError):
            DeviceConfig.from_env({"HOMEGUARD_HTTP_TIMEOUT": "soon"})

    def test_overrides_skip_none_and_reject_unknown_keys(self) -> None:
        base = DeviceConfig(variant="tcp", tcp_host="10.0.0.2")
        updated = base.with_overrides(tcp_host=None, tcp_port=5000)
        self.assertEqual((updated.tcp_host, updated.tcp_port), ("10.0.0.2", 5000))
        self.assertEqual(base.tcp_port, 3333)
        with self.assertRaises(ConfigurationError):
            base.with_overrides(colour="red")

    def test_validation_per_variant(self) -> None:
        invalid = [
            DeviceConfig(variant="bluetooth"),
            DeviceConfig(variant="bluetooth", bt_address="AA", bt_link="usb"),
            DeviceConfig(variant="bluetooth", bt_address="AA", bt_channel=31),
            DeviceConfig(variant="tcp", tcp_host=""),
            DeviceConfig(variant="tcp", tcp_port=70000),
            DeviceConfig(variant="http", base_url="192.168.4.1"),
            DeviceConfig(variant="http", http_timeout=0),
            DeviceConfig(variant="serial"),
        ]
        for config in invalid:
            with self.subTest(config=config):
                with self.assertRaises(ConfigurationError):
                    config.validate()


class WiringTest(unittest.TestCase):
    def test_build_transport_by_variant(self) -> None:
        self.assertIsInstance(build_transport(DeviceConfig(variant="http")), HttpTransport)
        self.assertIsInstance(build_transport(DeviceConfig(variant="tcp")), TcpTransport)
        rfcomm = build_transport(DeviceConfig(variant="bluetooth", bt_address="00:11:22:33:44:55", bt_channel=2))
        self.assertIsInstance(rfcomm, RfcommTransport)
        self.assertEqual(rfcomm.endpoint, "00:11:22:33:44:55/2")
        ble = build_transport(DeviceConfig(variant="bluetooth", bt_address="AA:BB:CC:DD:EE:FF", bt_link="ble"))
        self.assertIsInstance(ble, BleUartTransport)

    def test_bluetooth_transport_needs_an_address(self) -> None:
        for link in ("rfcomm", "ble"):
            with self.subTest(link=link):
                with self.assertRaises(ConfigurationError):
                    build_transport(DeviceConfig(variant="bluetooth", bt_link=link))

    def test_http_reconciler_gets_store_and_network_check(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = DeviceConfig(variant="http", db_path=str(Path(tmp, "state", "hg.sqlite3")))
            reconciler = build_reconciler(config)
            try:
                self.assertIsNotNone(reconciler.store)
                self.assertIsInstance(reconciler._network_available, NetworkMonitor)
                self.assertTrue(reconciler.profile.confirm_toggles)
                self.assertTrue(Path(tmp, "state").is_dir())
            finally:
                reconciler.store.close()

    def test_network_check_can_be_disabled(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = DeviceConfig(variant="http", db_path=str(Path(tmp, "hg.sqlite3")), check_network=False)
            reconciler = build_reconciler(config)
            try:
                self.assertIsNone(reconciler._network_available)
            finally:
                reconciler.store.close()

    def test_push_reconciler_keeps_history_in_memory(self) -> None:
        reconciler = build_reconciler(DeviceConfig(variant="tcp", tcp_host="127.0.0.1"))
        self.assertIsNone(reconciler.store)
        self.assertIsNone(reconciler._network_available)
        self.assertEqual(reconciler.transport.endpoint, "127.0.0.1:3333")


if __name__ == "__main__":
    unittest.main()

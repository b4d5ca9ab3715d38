"""Device configuration from environment variables and the wiring that uses it."""
from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from homeguard.errors import ConfigurationError
from homeguard.http_client import HttpTransport
from homeguard.metrics import MetricsLogger
from homeguard.models.notification_system import NotificationSystem
from homeguard.network import NetworkMonitor
from homeguard.protocol import VariantProfile, get_profile
from homeguard.reconciler import Reconciler
from homeguard.store import HistoryStore
from homeguard.transport import RfcommTransport, StreamTransport, TcpTransport

logger = logging.getLogger(__name__)

DEFAULT_VARIANT = "http"
DEFAULT_BASE_URL = "http://192.168.4.1"
DEFAULT_BT_CHANNEL = 1
DEFAULT_BT_LINK = "rfcomm"
DEFAULT_TCP_HOST = "192.168.4.1"
DEFAULT_TCP_PORT = 3333
DEFAULT_DB_PATH = "homeguard.sqlite3"

BT_LINKS = ("rfcomm", "ble")


def _env_text(environ: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = _env_text(environ, name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(environ: Mapping[str, str], name: str) -> Optional[float]:
    raw = _env_text(environ, name, None)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _env_text(environ, name, None)
    if raw is None:
        return default
    return raw.lower() not in ("0", "false", "no", "off")


@dataclass(slots=True)
class DeviceConfig:
    """Where the controller lives and which firmware variant it runs."""

    variant: str = DEFAULT_VARIANT
    base_url: str = DEFAULT_BASE_URL
    bt_address: Optional[str] = None
    bt_channel: int = DEFAULT_BT_CHANNEL
    bt_link: str = DEFAULT_BT_LINK
    tcp_host: str = DEFAULT_TCP_HOST
    tcp_port: int = DEFAULT_TCP_PORT
    db_path: str = DEFAULT_DB_PATH
    metrics_log: Optional[str] = None
    http_timeout: Optional[float] = None
    check_network: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DeviceConfig":
        env = os.environ if environ is None else environ
        return cls(
            variant=_env_text(env, "HOMEGUARD_VARIANT", DEFAULT_VARIANT) or DEFAULT_VARIANT,
            base_url=_env_text(env, "HOMEGUARD_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
            bt_address=_env_text(env, "HOMEGUARD_BT_ADDRESS", None),
            bt_channel=_env_int(env, "HOMEGUARD_BT_CHANNEL", DEFAULT_BT_CHANNEL),
            bt_link=_env_text(env, "HOMEGUARD_BT_LINK", DEFAULT_BT_LINK) or DEFAULT_BT_LINK,
            tcp_host=_env_text(env, "HOMEGUARD_TCP_HOST", DEFAULT_TCP_HOST) or DEFAULT_TCP_HOST,
            tcp_port=_env_int(env, "HOMEGUARD_TCP_PORT", DEFAULT_TCP_PORT),
            db_path=_env_text(env, "HOMEGUARD_DB_PATH", DEFAULT_DB_PATH) or DEFAULT_DB_PATH,
            metrics_log=_env_text(env, "HOMEGUARD_METRICS_LOG", None),
            http_timeout=_env_float(env, "HOMEGUARD_HTTP_TIMEOUT"),
            check_network=_env_flag(env, "HOMEGUARD_CHECK_NETWORK", True),
        )

    def with_overrides(self, **overrides: Any) -> "DeviceConfig":
        known = {field.name for field in dataclasses.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **changes)

    @property
    def profile(self) -> VariantProfile:
        return get_profile(self.variant)

    def validate(self) -> None:
        profile = self.profile
        if profile.name == "bluetooth":
            if not self.bt_address:
                raise ConfigurationError("bluetooth variant needs a device address (HOMEGUARD_BT_ADDRESS)")
            if self.bt_link not in BT_LINKS:
                raise ConfigurationError(f"bt_link must be one of {', '.join(BT_LINKS)}")
            if not 1 <= self.bt_channel <= 30:
                raise ConfigurationError("RFCOMM channel must be between 1 and 30")
        elif profile.name == "tcp":
            if not self.tcp_host:
                raise ConfigurationError("tcp variant needs a host")
            if not 0 < self.tcp_port < 65536:
                raise ConfigurationError(f"invalid TCP port {self.tcp_port}")
        elif profile.name == "http":
            if not self.base_url.startswith(("http://", "https://")):
                raise ConfigurationError(f"base URL must start with http:// or https://, got {self.base_url!r}")
        if self.http_timeout is not None and self.http_timeout <= 0:
            raise ConfigurationError("http_timeout must be positive")


Transport = Union[StreamTransport, HttpTransport]


def build_transport(config: DeviceConfig, metrics: Optional[MetricsLogger] = None) -> Transport:
    config.validate()
    variant = config.profile.name
    if variant == "http":
        return HttpTransport(config.base_url, timeout=config.http_timeout, metrics=metrics)
    if variant == "tcp":
        return TcpTransport(config.tcp_host, config.tcp_port, metrics=metrics)
    if not config.bt_address:
        raise ConfigurationError("bluetooth variant needs a device address (HOMEGUARD_BT_ADDRESS)")
    if config.bt_link == "ble":
        from homeguard.ble import BleUartTransport

        return BleUartTransport(config.bt_address, metrics=metrics)
    return RfcommTransport(config.bt_address, config.bt_channel, metrics=metrics)


def build_reconciler(
    config: DeviceConfig,
    *,
    metrics: Optional[MetricsLogger] = None,
    notifier: Optional[NotificationSystem] = None,
) -> Reconciler:
    """Assemble transport, history store and network check for ``config.variant``."""
    if metrics is None and config.metrics_log:
        metrics = MetricsLogger(config.metrics_log, static_extra={"variant": config.variant})
    transport = build_transport(config, metrics)
    profile = config.profile

    store: Optional[HistoryStore] = None
    if profile.persist_history:
        store = HistoryStore.open(config.db_path)

    network_available = None
    if profile.confirm_toggles and config.check_network:
        network_available = NetworkMonitor.for_url(config.base_url)

    logger.debug("Built %s reconciler for %s", profile.name, transport.endpoint)
    return Reconciler(
        profile,
        transport,
        store=store,
        notifier=notifier,
        network_available=network_available,
    )


__all__ = [
    "BT_LINKS",
    "DEFAULT_BASE_URL",
    "DEFAULT_DB_PATH",
    "DEFAULT_TCP_HOST",
    "DEFAULT_TCP_PORT",
    "DEFAULT_VARIANT",
    "DeviceConfig",
    "build_reconciler",
    "build_transport",
]

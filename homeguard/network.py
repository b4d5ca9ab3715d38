"""Local network availability checks guarding HTTP mode changes."""
from __future__ import annotations

import logging
import socket
from typing import Callable, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

RouteCheck = Callable[[str, int], bool]


def route_available(host: str, port: int = 80) -> bool:
    """Return True when the OS has a route to ``host``.

    Connecting a UDP socket selects a route without sending a packet, so this
    answers "is the network up" rather than "is the device alive".
    """
    try:
        candidates = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as exc:
        logger.debug("Cannot resolve %s: %s", host, exc)
        return False
    for family, kind, proto, _, address in candidates:
        try:
            with socket.socket(family, kind, proto) as sock:
                sock.connect(address)
        except OSError as exc:
            logger.debug("No route to %s via %s: %s", host, address, exc)
            continue
        return True
    return False


def host_from_url(url: str) -> tuple[str, int]:
    parts = urlsplit(url)
    if not parts.hostname:
        raise ValueError(f"URL has no host: {url!r}")
    default_port = 443 if parts.scheme == "https" else 80
    return parts.hostname, parts.port or default_port


class NetworkMonitor:
    """Callable availability check that remembers the last answer and logs changes."""

    def __init__(self, host: str, port: int = 80, *, reach: Optional[RouteCheck] = None) -> None:
        self.host = host
        self.port = port
        self._reach: RouteCheck = reach or route_available
        self._last: Optional[bool] = None

    @classmethod
    def for_url(cls, url: str, *, reach: Optional[RouteCheck] = None) -> "NetworkMonitor":
        host, port = host_from_url(url)
        return cls(host, port, reach=reach)

    @property
    def last(self) -> Optional[bool]:
        return self._last

    def check(self) -> bool:
        available = bool(self._reach(self.host, self.port))
        if available != self._last:
            logger.info("Network to %s is %s", self.host, "available" if available else "unavailable")
            self._last = available
        return available

    __call__ = check


__all__ = ["NetworkMonitor", "host_from_url", "route_available"]

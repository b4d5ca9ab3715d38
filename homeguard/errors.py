"""Error taxonomy for device communication."""
from __future__ import annotations

from typing import Optional


class HomeGuardError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(HomeGuardError, ValueError):
    """Invalid variant, endpoint or numeric setting."""


class ConnectionFailure(HomeGuardError):
    """The single connect attempt to the device did not succeed."""


class SendDropped(HomeGuardError):
    """A command was attempted while no connection was live."""


class RequestFailure(HomeGuardError):
    """An HTTP request answered outside the 2xx range."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeFailure(HomeGuardError, ValueError):
    """A device payload could not be decoded."""


__all__ = [
    "HomeGuardError",
    "ConfigurationError",
    "ConnectionFailure",
    "SendDropped",
    "RequestFailure",
    "DecodeFailure",
]

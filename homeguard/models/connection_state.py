from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """Observable state of the single transport session."""

    status: ConnectionStatus
    reason: Optional[str] = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(ConnectionStatus.DISCONNECTED)

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTED)

    @classmethod
    def failed(cls, reason: str) -> "ConnectionState":
        return cls(ConnectionStatus.FAILED, reason)

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status.value}
        if self.reason:
            payload["reason"] = self.reason
        return payload

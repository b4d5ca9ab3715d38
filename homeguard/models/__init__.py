"""Value types shared by the transports, the reconciler and the service layer."""
from .alarm_record import AlarmRecord
from .connection_state import ConnectionState, ConnectionStatus
from .mode import Mode
from .notification_system import Notice, NotificationSystem

__all__ = [
    "AlarmRecord",
    "ConnectionState",
    "ConnectionStatus",
    "Mode",
    "Notice",
    "NotificationSystem",
]

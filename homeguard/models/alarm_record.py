from __future__ import annotations
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(text: str) -> datetime:
    # Python 3.10 fromisoformat does not accept a trailing Z.
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _epoch_micros(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(microseconds=1)


@dataclass(frozen=True, slots=True)
class AlarmRecord:
    """A single entry of the alarm history.

    ``id`` is the creation time in microseconds since the epoch. Two records
    created within the same microsecond share an id; nothing guards against it.
    """

    id: str
    timestamp: datetime
    reason: str
    type: str

    @classmethod
    def create(
        cls,
        reason: str,
        type: str,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "AlarmRecord":
        moment = (clock or _utc_now)()
        return cls(id=str(_epoch_micros(moment)), timestamp=moment, reason=reason, type=type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "type": self.type,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AlarmRecord":
        return cls(
            id=str(payload["id"]),
            timestamp=_parse_timestamp(str(payload["timestamp"])),
            reason=str(payload["reason"]),
            type=str(payload["type"]),
        )

    @classmethod
    def from_json(cls, raw: str) -> "AlarmRecord":
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("alarm record must be a JSON object")
        return cls.from_dict(payload)

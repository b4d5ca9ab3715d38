"""CSV diagnostics log for transport events (connect, send, receive, drop)."""
from __future__ import annotations

import csv
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence


FIELDS: Sequence[str] = ("timestamp", "event", "status", "value", "message", "extra")


def _encode_extra(extra: Mapping[str, Any]) -> str:
    if not extra:
        return ""
    try:
        return json.dumps(extra, separators=(",", ":"), sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(dict(extra))


@dataclass(slots=True)
class MetricRecord:
    timestamp: str
    event: str
    status: str = ""
    value: Optional[float] = None
    message: str = ""
    extra: str = ""

    def as_row(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event,
            "status": self.status,
            "value": "" if self.value is None else self.value,
            "message": self.message,
            "extra": self.extra,
        }


class MetricsLogger:
    """Append-only CSV log of transport diagnostics.

    Rows are flushed as soon as they are written so the file can be tailed
    while a session is running. ``static_extra`` is merged into
    the extra column of every row.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        static_extra: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self._static_extra: Dict[str, Any] = dict(static_extra or {})
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._write_header()

    def log(
        self,
        event: str,
        *,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        merged: Dict[str, Any] = dict(self._static_extra)
        if extra:
            merged.update(extra)
        record = MetricRecord(
            timestamp=self._timestamp(),
            event=event,
            status=status or "",
            value=value,
            message=message or "",
            extra=_encode_extra(merged),
        )
        with self._lock:
            with self.path.open("a", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writerow(record.as_row())
                handle.flush()

    def _write_header(self) -> None:
        if self.path.exists() and self.path.stat().st_size > 0:
            return
        with self._lock:
            with self.path.open("w", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writeheader()

    def _timestamp(self) -> str:
        moment = self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")


__all__ = ["FIELDS", "MetricRecord", "MetricsLogger"]

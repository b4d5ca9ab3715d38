"""SQLite preferences store and the persisted alarm history."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy import String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from homeguard.errors import DecodeFailure
from homeguard.models.alarm_record import AlarmRecord

logger = logging.getLogger(__name__)

HISTORY_KEY = "alarmHistory"


class Base(DeclarativeBase):
    pass


class Preference(Base):
    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Preference {self.key}>"


def _database_url(target: Union[str, Path]) -> str:
    text = str(target)
    if "://" in text:
        return text
    Path(text).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{Path(text).expanduser()}"


class PreferenceStore:
    """Key/value store whose values are lists of strings."""

    def __init__(self, target: Union[str, Path]) -> None:
        self.url = _database_url(target)
        connect_args = {"check_same_thread": False} if self.url.startswith("sqlite") else {}
        # History writes run in worker threads.
        self._engine = create_engine(self.url, connect_args=connect_args)
        Base.metadata.create_all(self._engine)
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)

    def get_string_list(self, key: str) -> Optional[List[str]]:
        with self._sessions() as session:
            row = session.get(Preference, key)
            raw = row.value if row is not None else None
        if raw is None:
            return None
        try:
            values = json.loads(raw)
        except ValueError as exc:
            raise DecodeFailure(f"preference {key!r} is not valid JSON") from exc
        if not isinstance(values, list) or not all(isinstance(item, str) for item in values):
            raise DecodeFailure(f"preference {key!r} is not a list of strings")
        return values

    def set_string_list(self, key: str, values: Sequence[str]) -> None:
        payload = json.dumps(list(values), ensure_ascii=False)
        with self._sessions() as session:
            row = session.get(Preference, key)
            if row is None:
                session.add(Preference(key=key, value=payload))
            else:
                row.value = payload
            try:
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def dispose(self) -> None:
        self._engine.dispose()


class HistoryStore:
    """Alarm history kept as one string list of JSON records under a fixed key."""

    def __init__(self, preferences: PreferenceStore, key: str = HISTORY_KEY) -> None:
        self.preferences = preferences
        self.key = key

    @classmethod
    def open(cls, target: Union[str, Path], key: str = HISTORY_KEY) -> "HistoryStore":
        return cls(PreferenceStore(target), key)

    def load(self) -> List[AlarmRecord]:
        try:
            raw = self.preferences.get_string_list(self.key)
        except DecodeFailure as exc:
            logger.warning("Ignoring unreadable alarm history: %s", exc)
            return []
        records: List[AlarmRecord] = []
        for entry in raw or ():
            try:
                records.append(AlarmRecord.from_json(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed alarm record %r: %s", entry, exc)
        return records

    def save(self, records: Iterable[AlarmRecord]) -> bool:
        encoded = [record.to_json() for record in records]
        try:
            self.preferences.set_string_list(self.key, encoded)
        except SQLAlchemyError:
            logger.exception("Failed to persist alarm history")
            return False
        return True

    def close(self) -> None:
        self.preferences.dispose()


__all__ = ["HISTORY_KEY", "HistoryStore", "Preference", "PreferenceStore"]

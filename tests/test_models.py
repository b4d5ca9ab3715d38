"""Tests for the shared value types."""
from datetime import datetime, timedelta, timezone

import pytest

from homeguard.models import AlarmRecord, ConnectionState, ConnectionStatus, Mode, NotificationSystem


def test_mode_parse():
    assert Mode.parse("Away") is Mode.AWAY
    assert Mode.parse(Mode.SAFE) is Mode.SAFE
    assert Mode.SECURITY.label == "Security"
    with pytest.raises(ValueError):
        Mode.parse("panic")


def test_alarm_record_id_is_microsecond_timestamp():
    moment = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    record = AlarmRecord.create("Away mode armed", "away", clock=lambda: moment)
    assert record.id == "1714564800123456"
    assert record.timestamp == moment


def test_alarm_record_ids_follow_the_clock():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = iter([start, start + timedelta(microseconds=1)])
    first = AlarmRecord.create("a", "away", clock=lambda: next(ticks))
    second = AlarmRecord.create("b", "away", clock=lambda: next(ticks))
    assert int(second.id) == int(first.id) + 1


def test_alarm_record_json_encoding():
    moment = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
    record = AlarmRecord(id="42", timestamp=moment, reason="Motion detected", type="safe")
    assert record.to_dict() == {
        "id": "42",
        "timestamp": "2024-05-01T08:30:00+00:00",
        "reason": "Motion detected",
        "type": "safe",
    }
    assert AlarmRecord.from_json(record.to_json()) == record


def test_alarm_record_rejects_non_objects():
    with pytest.raises(ValueError):
        AlarmRecord.from_json("[1, 2]")
    with pytest.raises(KeyError):
        AlarmRecord.from_dict({"id": "1"})


def test_connection_state_variants():
    assert ConnectionState.connected().is_connected
    failed = ConnectionState.failed("refused")
    assert failed.status is ConnectionStatus.FAILED
    assert failed.to_dict() == {"status": "failed", "reason": "refused"}
    assert ConnectionState.disconnected().to_dict() == {"status": "disconnected"}
    assert not ConnectionState.connecting().is_connected


def test_notification_system_records_and_fans_out():
    notifier = NotificationSystem(maxlen=2)
    seen = []
    notifier.add_listener(lambda notice: seen.append(notice.message))
    for message in ("one", "two", "three"):
        notifier.notify_failure(message)
    assert seen == ["one", "two", "three"]
    assert [n.message for n in notifier.recent()] == ["two", "three"]
    assert notifier.latest.level == "warning"


def test_notification_listener_errors_are_contained():
    notifier = NotificationSystem()

    def broken(_notice):
        raise RuntimeError("boom")

    notifier.add_listener(broken)
    notice = notifier.notify_failure("still recorded")
    assert notifier.latest is notice


def test_alarm_record_accepts_utc_designator():
    record = AlarmRecord.from_json(
        '{"id":"1714564800123456","timestamp":"2024-05-01T12:00:00.123456Z","reason":"Away mode armed","type":"away"}'
    )
    assert record.timestamp == datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

"""Tests for the CSV diagnostics log."""
import csv
import json
from datetime import datetime

from homeguard.metrics import FIELDS, MetricsLogger


def _rows(path):
    with path.open("r", encoding="utf-8", newline="") as handle:
        return list(csv.DictReader(handle))


def test_rows_merge_static_extra(tmp_path):
    path = tmp_path / "logs" / "metrics.csv"
    logger = MetricsLogger(path, static_extra={"variant": "tcp"}, clock=lambda: datetime(2024, 1, 2, 3, 4, 5))
    logger.log("send", status="ok", extra={"command": "CMD:AWAY_ON"})
    logger.log("disconnect", status="closed", value=1.5, message="peer closed", extra={"variant": "override"})

    rows = _rows(path)
    assert list(rows[0]) == list(FIELDS)
    assert rows[0]["timestamp"] == "2024-01-02T03:04:05.000+00:00"
    assert json.loads(rows[0]["extra"]) == {"command": "CMD:AWAY_ON", "variant": "tcp"}
    assert rows[1]["value"] == "1.5"
    assert rows[1]["message"] == "peer closed"
    assert json.loads(rows[1]["extra"]) == {"variant": "override"}


def test_header_written_once_across_loggers(tmp_path):
    path = tmp_path / "metrics.csv"
    MetricsLogger(path).log("connect", status="ok")
    MetricsLogger(path).log("connect", status="error")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(FIELDS)
    assert sum(1 for line in lines if line.startswith("timestamp")) == 1
    assert [row["status"] for row in _rows(path)] == ["ok", "error"]
    assert _rows(path)[0]["extra"] == ""

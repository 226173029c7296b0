# tests/test_logging_utils.py
import json
import os

from service import logging_utils


def _lines(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_daily_file_names_follow_the_clock(frozen_utc, tmp_path):
    assert logging_utils.get_log_path("activity") == str(tmp_path / "logs" / "activity-test-2025-01-01.jsonl")
    assert logging_utils.get_log_path("error") == str(tmp_path / "logs" / "error-test-2025-01-01.jsonl")


def test_records_are_redacted_and_stamped(frozen_utc):
    logging_utils.write_activity_log({
        "event": "delivered",
        "telegram_bot_token": "123:abc",
        "headers": {"Authorization": "Bearer xyz"},
        "note": "Bearer leaked",
    })

    (record,) = _lines(logging_utils.get_log_path("activity"))
    assert record["event"] == "delivered"
    assert record["telegram_bot_token"] == "***REDACTED***"
    assert record["headers"]["Authorization"] == "***REDACTED***"
    assert record["note"] == "Bearer ***REDACTED***"
    assert set(record["_meta"]) == {"host", "pid"}


def test_size_rotation_renames_with_timestamp(frozen_utc, monkeypatch):
    monkeypatch.setenv("ACTIVITY_LOG_MAX_BYTES", "10")
    path = logging_utils.get_log_path("activity")

    logging_utils.write_activity_log({"n": 1})
    logging_utils.write_activity_log({"n": 2})

    assert os.path.exists(f"{path}.20250101-000000")
    assert [r["n"] for r in _lines(f"{path}.20250101-000000")] == [1]
    assert [r["n"] for r in _lines(path)] == [2]

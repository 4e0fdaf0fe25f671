"""Tests for the run event stream."""

import logging
from datetime import datetime, timedelta

from node_maintainer.events import EVENT_LOGGER_NAME, EventLog


class SteppingClock:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0)


def test_markers_and_levels(caplog):
    start = datetime(2026, 10, 18, 2, 0, 0)
    events = EventLog(clock=SteppingClock(start, start, start + timedelta(milliseconds=250)))

    with caplog.at_level(logging.INFO, logger=EVENT_LOGGER_NAME):
        events.ok("NodeHealth", "All 3 nodes Up")
        events.fail("Drain", "Failed to move 'Vol2'")
        events.info("Roles", "7 roles online")

    assert [r.getMessage() for r in caplog.records] == [
        "2026-10-18T02:00:00.000 [OK] NodeHealth: All 3 nodes Up",
        "2026-10-18T02:00:00.000 [FAIL] Drain: Failed to move 'Vol2'",
        "2026-10-18T02:00:00.250 [INFO] Roles: 7 roles online",
    ]
    assert [r.levelno for r in caplog.records] == [logging.INFO, logging.ERROR, logging.INFO]
    assert all(r.name == EVENT_LOGGER_NAME for r in caplog.records)


def test_records_are_kept_in_order():
    events = EventLog()

    events.ok("A", "first")
    events.info("B", "second")

    assert [e.step for e in events.records] == ["A", "B"]
    assert events.records[0].success is True
    assert events.records[1].success is None


def test_timestamps_never_go_backwards():
    start = datetime(2026, 10, 18, 2, 0, 0)
    events = EventLog(clock=SteppingClock(start, start - timedelta(seconds=5), start + timedelta(seconds=1)))

    events.info("A", "a")
    events.info("B", "b")
    events.info("C", "c")

    stamps = [e.timestamp for e in events.records]
    assert stamps == sorted(stamps)
    assert stamps[1] == start


def test_custom_logger(caplog):
    logger = logging.getLogger("test.events")
    events = EventLog(logger=logger)

    with caplog.at_level(logging.INFO, logger="test.events"):
        events.ok("Finish", "done")

    assert caplog.records[0].name == "test.events"


def test_logged_line_carries_clamped_timestamp(caplog):
    start = datetime(2026, 10, 18, 2, 0, 0, 500000)
    events = EventLog(clock=SteppingClock(start, start - timedelta(seconds=5)))

    with caplog.at_level(logging.INFO, logger=EVENT_LOGGER_NAME):
        events.info("A", "a")
        events.info("B", "b")

    assert [r.getMessage() for r in caplog.records] == [
        "2026-10-18T02:00:00.500 [INFO] A: a",
        "2026-10-18T02:00:00.500 [INFO] B: b",
    ]

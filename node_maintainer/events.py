"""Append-only event stream for orchestration runs.

Each event becomes one log line on the ``node_maintainer.events`` logger:
the event timestamp followed by an ``[OK]``, ``[FAIL]`` or ``[INFO]`` marker.
Other tooling greps the log file for those markers, so their spelling must
not change.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from node_maintainer.logging_config import get_logger
from node_maintainer.models.run import EventRecord

EVENT_LOGGER_NAME = "node_maintainer.events"


class EventLog:
    """Records run events in order with non-decreasing timestamps."""

    def __init__(self, logger: logging.Logger | None = None, clock: Callable[[], datetime] = datetime.now):
        self.logger = logger or get_logger(EVENT_LOGGER_NAME)
        self.clock = clock
        self.records: list[EventRecord] = []

    def _timestamp(self) -> datetime:
        now = self.clock()
        if self.records and now < self.records[-1].timestamp:
            # wall clock stepped backwards (time sync); keep the stream ordered
            now = self.records[-1].timestamp
        return now

    def record(self, step: str, message: str, success: bool | None = None) -> EventRecord:
        event = EventRecord(timestamp=self._timestamp(), step=step, success=success, message=message)
        self.records.append(event)

        if success is False:
            level = logging.ERROR
        else:
            level = logging.INFO
        # the event's own (clamped) timestamp, not the handler's asctime
        self.logger.log(level, f"{event.timestamp.isoformat(timespec='milliseconds')} {event.format_line()}")
        return event

    def ok(self, step: str, message: str) -> EventRecord:
        return self.record(step, message, success=True)

    def fail(self, step: str, message: str) -> EventRecord:
        return self.record(step, message, success=False)

    def info(self, step: str, message: str) -> EventRecord:
        return self.record(step, message)

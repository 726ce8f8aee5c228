"""Shared test fixtures for pg-notify-relay."""

import json
from typing import Any, Dict, List

import pytest
from loguru import logger

from pg_notify_relay.broker.base import EventForwarder
from pg_notify_relay.cdc.base import ChangeEvent, PublishError, RawNotification
from pg_notify_relay.cdc.router import EventFilter

SCORECARD_PAYLOAD = {
    "topic": "scorecard.update",
    "originator": "informixProcessor",
    "scorecard_id": "123",
    "name": "Foo",
}


class RecordingForwarder(EventForwarder):
    """In-memory forwarder that records every published event."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[ChangeEvent] = []
        self.initialized = False
        self.closed = False

    def init(self) -> None:
        self.initialized = True

    def publish(self, event: ChangeEvent) -> Any:
        if self.fail:
            raise PublishError("broker unavailable", event)
        self.published.append(event)
        return None

    def close(self, timeout: float = 10.0) -> None:
        self.closed = True

    def get_status(self) -> Dict[str, Any]:
        return {'published': len(self.published)}


def notification(payload: Any, channel: str = "scorecard_trigger") -> RawNotification:
    """Build a RawNotification, JSON-encoding non-string payloads."""
    if not isinstance(payload, str):
        payload = json.dumps(payload)
    return RawNotification(channel=channel, payload=payload, pid=4242)


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def scorecard_filter() -> EventFilter:
    return EventFilter(["scorecard.update"], ["informixProcessor"])


@pytest.fixture
def forwarder() -> RecordingForwarder:
    return RecordingForwarder()


def records_at(records, level: str):
    return [r for r in records if r["level"].name == level]

"""Base types and errors for relaying database notifications"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RawNotification:
    """
    A notification as received from a PostgreSQL channel

    The payload is opaque until the router decodes it.
    """
    channel: str
    payload: str
    pid: Optional[int] = None

    def __str__(self) -> str:
        return f"RawNotification(channel={self.channel}, pid={self.pid})"


@dataclass
class ChangeEvent:
    """
    Decoded change event emitted by a trigger function

    `topic` is both the filter key and the Kafka destination topic,
    `originator` names the subsystem that caused the change and `fields`
    carries every other key of the payload (the changed row's columns).
    `source` is the decoded payload object, kept so the published value
    has the same keys in the same order as the trigger sent them.
    """
    topic: str
    originator: str
    fields: Dict[str, Any] = field(default_factory=dict)
    source: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"ChangeEvent({self.topic} from {self.originator})"

    def to_dict(self) -> Dict[str, Any]:
        """Full field set of the event, as published to the broker"""
        if self.source is not None:
            return dict(self.source)
        return {"topic": self.topic, "originator": self.originator, **self.fields}


class RelayError(Exception):
    """Base exception for relay errors"""
    pass


class SetupError(RelayError):
    """Connection, subscription or initialization failure during bootstrap"""
    pass


class DecodeError(RelayError):
    """Malformed or incomplete notification payload"""

    def __init__(self, message: str, payload: Optional[str] = None):
        super().__init__(message)
        self.payload = payload


class PublishError(RelayError):
    """Broker rejected or failed to accept a message"""

    def __init__(self, message: str, event: Optional[ChangeEvent] = None):
        super().__init__(message)
        self.event = event

"""Receiving, decoding and filtering database notifications"""

from .base import (
    ChangeEvent,
    DecodeError,
    PublishError,
    RawNotification,
    RelayError,
    SetupError,
)
from .router import EventFilter, accept, decode
from .postgres_listener import PostgresNotificationListener
from .relay import NotificationRelay

__all__ = [
    "ChangeEvent",
    "DecodeError",
    "PublishError",
    "RawNotification",
    "RelayError",
    "SetupError",
    "EventFilter",
    "accept",
    "decode",
    "PostgresNotificationListener",
    "NotificationRelay",
]

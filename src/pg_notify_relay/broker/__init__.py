"""Message broker forwarders"""

from .base import EventForwarder
from .kafka_forwarder import KafkaForwarder, serialize_event

__all__ = [
    "EventForwarder",
    "KafkaForwarder",
    "serialize_event",
]

"""Decoding and allow-list filtering of notification payloads"""

import json
from typing import AbstractSet, Iterable

from .base import ChangeEvent, DecodeError

ROUTING_FIELDS = ("topic", "originator")


def _reject_constant(name: str) -> None:
    raise ValueError(f"{name} is not allowed")


def decode(payload: str) -> ChangeEvent:
    """
    Decode a raw notification payload into a ChangeEvent

    Args:
        payload: JSON text produced by a trigger function

    Returns:
        The decoded event

    Raises:
        DecodeError: If the payload is not a JSON object or lacks a string
            `topic` or `originator`
    """
    try:
        data = json.loads(payload, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Payload is not valid JSON: {e}", payload) from e

    if not isinstance(data, dict):
        raise DecodeError(
            f"Payload must be a JSON object, got {type(data).__name__}", payload
        )

    for name in ROUTING_FIELDS:
        if not isinstance(data.get(name), str):
            raise DecodeError(f"Payload has no string '{name}' field", payload)

    fields = {k: v for k, v in data.items() if k not in ROUTING_FIELDS}
    return ChangeEvent(
        topic=data["topic"],
        originator=data["originator"],
        fields=fields,
        source=data
    )


def accept(
    event: ChangeEvent,
    allowed_topics: AbstractSet[str],
    allowed_originators: AbstractSet[str]
) -> bool:
    """True iff both the event's topic and originator are allow-listed"""
    return event.topic in allowed_topics and event.originator in allowed_originators


class EventFilter:
    """Allow-lists of topics and originators, frozen at startup"""

    def __init__(self, topics: Iterable[str], originators: Iterable[str]):
        self.topics = frozenset(topics)
        self.originators = frozenset(originators)

    def accept(self, event: ChangeEvent) -> bool:
        return accept(event, self.topics, self.originators)

    def __repr__(self) -> str:
        return (
            f"EventFilter(topics={sorted(self.topics)}, "
            f"originators={sorted(self.originators)})"
        )

"""
End-to-end relay test against a live PostgreSQL and Kafka.

Skipped unless RELAY_E2E=1. Connection settings come from the usual
configuration sources (RELAY_CONFIG_FILE, POSTGRES__*, KAFKA__* ...).
"""

import json
import os
import time
import uuid

import pytest

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(os.environ.get("RELAY_E2E") != "1", reason="RELAY_E2E=1 not set"),
]

TOPIC = "scorecard.update"
ORIGINATOR = "informixProcessor"


@pytest.fixture
def e2e_settings():
    from pg_notify_relay.config.settings import Settings

    channel = f"relay_e2e_{uuid.uuid4().hex[:8]}"
    settings = Settings()
    settings.postgres.trigger_functions = [channel]
    settings.postgres.trigger_topics = [TOPIC]
    settings.postgres.trigger_originators = [ORIGINATOR]
    settings.relay.poll_interval = 0.5
    return settings


@pytest.fixture
def running_relay(e2e_settings):
    from pg_notify_relay import app

    context = app.build_context(e2e_settings)
    app.start(context)
    yield context
    app.stop(context)


@pytest.fixture
def consumer(e2e_settings):
    from kafka import KafkaConsumer, TopicPartition

    consumer = KafkaConsumer(
        bootstrap_servers=e2e_settings.kafka.brokers_url.split(","),
        consumer_timeout_ms=10000,
        value_deserializer=lambda v: json.loads(v.decode("utf-8"))
    )
    partition = TopicPartition(TOPIC, e2e_settings.kafka.partition)
    consumer.assign([partition])
    consumer.seek_to_end(partition)
    consumer.position(partition)
    yield consumer
    consumer.close()


def _notify(settings, payload):
    import psycopg2

    if not isinstance(payload, str):
        payload = json.dumps(payload)

    conn = psycopg2.connect(**settings.postgres.connection_params)
    conn.autocommit = True
    try:
        with conn.cursor() as cursor:
            cursor.execute(
                "SELECT pg_notify(%s, %s)",
                (settings.postgres.trigger_functions[0], payload)
            )
    finally:
        conn.close()


def _collect(consumer, scorecard_ids, timeout=15.0):
    found = []
    deadline = time.time() + timeout
    while time.time() < deadline and len(found) < len(scorecard_ids):
        for records in consumer.poll(timeout_ms=500).values():
            found.extend(r.value for r in records if r.value.get("scorecard_id") in scorecard_ids)
    return found


class TestRelayEndToEnd:
    """Notifications flow from pg_notify to the Kafka topic."""

    def test_allowed_event_reaches_topic(self, e2e_settings, running_relay, consumer):
        scorecard_id = uuid.uuid4().hex
        payload = {"topic": TOPIC, "originator": ORIGINATOR, "scorecard_id": scorecard_id, "name": "Foo"}

        _notify(e2e_settings, payload)

        assert _collect(consumer, {scorecard_id}) == [payload]

    def test_rejected_and_malformed_are_dropped(self, e2e_settings, running_relay, consumer):
        rejected_id, allowed_id = uuid.uuid4().hex, uuid.uuid4().hex
        rejected = {"topic": TOPIC, "originator": "otherProcessor", "scorecard_id": rejected_id}
        allowed = {"topic": TOPIC, "originator": ORIGINATOR, "scorecard_id": allowed_id}

        _notify(e2e_settings, rejected)
        _notify(e2e_settings, "not-json")
        _notify(e2e_settings, allowed)

        found = _collect(consumer, {rejected_id, allowed_id}, timeout=10.0)
        assert [m["scorecard_id"] for m in found] == [allowed_id]
        assert running_relay.relay.get_status()['metrics']['decode_failed'] == 1

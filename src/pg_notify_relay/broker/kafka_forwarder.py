"""Kafka forwarder for accepted change events"""

import json
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError
from loguru import logger

from .base import EventForwarder
from ..cdc.base import ChangeEvent, PublishError, SetupError

PEM_MARKER = "-----BEGIN"


def serialize_event(event: ChangeEvent) -> bytes:
    """Serialize the full field set of an event to UTF-8 JSON"""
    return json.dumps(event.to_dict(), allow_nan=False).encode("utf-8")


class KafkaForwarder(EventForwarder):
    """
    Publishes change events to Kafka

    Every event goes to the topic named by `event.topic` at a fixed
    partition. Sends are fire-and-forget: completion is only logged from
    the producer's callbacks and never reported back to the caller.
    """

    def __init__(
        self,
        brokers_url: str,
        partition: int = 0,
        ssl_cert: Optional[str] = None,
        ssl_key: Optional[str] = None,
        client_id: str = "pg-notify-relay"
    ):
        """
        Initialize Kafka forwarder

        Args:
            brokers_url: Comma-separated bootstrap servers
            partition: Partition applied to every message
            ssl_cert: Client certificate, as a file path or PEM text
            ssl_key: Client private key, as a file path or PEM text
            client_id: Client id reported to the brokers
        """
        self.brokers_url = brokers_url
        self.partition = partition
        self.ssl_cert = ssl_cert
        self.ssl_key = ssl_key
        self.client_id = client_id

        self.producer: Optional[KafkaProducer] = None
        self._temp_files: List[str] = []

        self.metrics = {'sent': 0, 'delivered': 0, 'failed': 0}
        self.metrics_lock = threading.Lock()

    @property
    def ssl_enabled(self) -> bool:
        return bool(self.ssl_cert and self.ssl_key)

    @property
    def bootstrap_servers(self) -> List[str]:
        return [s.strip() for s in self.brokers_url.split(",") if s.strip()]

    def init(self) -> None:
        """Connect the Kafka producer"""
        if self.producer is not None:
            logger.warning("Kafka producer already initialized")
            return

        try:
            self.producer = KafkaProducer(**self._get_producer_config())
            logger.info(
                f"Initialized kafka producer for {self.brokers_url} "
                f"(partition={self.partition}, ssl={self.ssl_enabled})"
            )
        except (KafkaError, OSError, ValueError) as e:
            self._remove_temp_files()
            raise SetupError(f"Could not setup kafka producer: {e}") from e

    def _get_producer_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            'bootstrap_servers': self.bootstrap_servers,
            'client_id': self.client_id,
            'value_serializer': serialize_event
        }
        if self.ssl_enabled:
            config.update({
                'security_protocol': 'SSL',
                'ssl_certfile': self._as_file(self.ssl_cert),
                'ssl_keyfile': self._as_file(self.ssl_key)
            })
        return config

    def _as_file(self, value: str) -> str:
        """Return a path for a PEM value, writing inline PEM text to a temp file"""
        if PEM_MARKER not in value:
            return value

        fd, path = tempfile.mkstemp(prefix="pg-notify-relay-", suffix=".pem")
        with os.fdopen(fd, "w") as f:
            f.write(value)
        self._temp_files.append(path)
        return path

    def publish(self, event: ChangeEvent) -> Any:
        """Send an event to Kafka without waiting for the acknowledgment"""
        if self.producer is None:
            raise PublishError("Kafka producer is not initialized", event)

        try:
            future = self.producer.send(event.topic, value=event, partition=self.partition)
        except (KafkaError, TypeError, ValueError) as e:
            self._on_send_error(event, e)
            raise PublishError(f"Could not push message to kafka: {e}", event) from e

        with self.metrics_lock:
            self.metrics['sent'] += 1
        future.add_callback(self._on_send_success, event)
        future.add_errback(self._on_send_error, event)
        return future

    def _on_send_success(self, event: ChangeEvent, record_metadata: Any) -> None:
        with self.metrics_lock:
            self.metrics['delivered'] += 1
        logger.debug(
            f"Pushed message to kafka {record_metadata.topic}"
            f"[{record_metadata.partition}]@{record_metadata.offset}: {event.to_dict()}"
        )

    def _on_send_error(self, event: ChangeEvent, error: BaseException) -> None:
        with self.metrics_lock:
            self.metrics['failed'] += 1
        logger.opt(exception=error).error(
            f"Could not push message to kafka: {event.to_dict()}"
        )

    def close(self, timeout: float = 10.0) -> None:
        """Flush in-flight messages and close the producer"""
        if self.producer is not None:
            try:
                self.producer.flush(timeout=timeout)
                self.producer.close(timeout=timeout)
                logger.info("Kafka producer closed")
            except KafkaError as e:
                logger.error(f"Error closing kafka producer: {e}")
            self.producer = None
        self._remove_temp_files()

    def _remove_temp_files(self) -> None:
        while self._temp_files:
            path = self._temp_files.pop()
            try:
                os.remove(path)
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Get forwarder status and delivery counters"""
        with self.metrics_lock:
            metrics = self.metrics.copy()
        return {
            'brokers': self.bootstrap_servers,
            'partition': self.partition,
            'ssl': self.ssl_enabled,
            'initialized': self.producer is not None,
            'metrics': metrics
        }

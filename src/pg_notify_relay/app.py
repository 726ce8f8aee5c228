"""Process bootstrap: wires the listener, relay and forwarder together"""

import signal
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import ValidationError
from pydantic_settings import SettingsError

from .broker.base import EventForwarder
from .broker.kafka_forwarder import KafkaForwarder
from .cdc.base import SetupError
from .cdc.postgres_listener import PostgresNotificationListener
from .cdc.relay import NotificationRelay
from .cdc.router import EventFilter
from .config.settings import Settings, get_settings

EXIT_OK = 0
EXIT_FAILURE = 1


def configure_logging(level: str = "INFO") -> None:
    """Send logs to stderr at the given level"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@dataclass
class RelayContext:
    """
    Process-level owner of both external connections

    Built once at startup. `shutdown` is set by signal handlers and
    `fatal` by the listener when the database connection drops.
    """
    settings: Settings
    listener: PostgresNotificationListener
    forwarder: EventForwarder
    relay: NotificationRelay
    shutdown: threading.Event = field(default_factory=threading.Event)
    fatal: threading.Event = field(default_factory=threading.Event)

    def connection_lost(self, error: Exception) -> None:
        logger.error(f"Database connection lost, relay must be restarted: {error}")
        self.fatal.set()
        self.shutdown.set()

    def get_status(self) -> Dict[str, Any]:
        return {
            'listener': self.listener.get_status(),
            'relay': self.relay.get_status(),
            'forwarder': self.forwarder.get_status()
        }


def build_context(settings: Settings) -> RelayContext:
    """Create the components without opening any connection"""
    pg = settings.postgres
    kafka = settings.kafka

    forwarder = KafkaForwarder(
        brokers_url=kafka.brokers_url,
        partition=kafka.partition,
        ssl_cert=kafka.ssl.cert,
        ssl_key=kafka.ssl.key,
        client_id=kafka.client_id
    )
    relay = NotificationRelay(
        event_filter=EventFilter(pg.trigger_topics, pg.trigger_originators),
        forwarder=forwarder,
        queue_size=settings.relay.queue_size
    )
    listener = PostgresNotificationListener(
        pg.connection_params,
        poll_interval=settings.relay.poll_interval
    )

    context = RelayContext(
        settings=settings,
        listener=listener,
        forwarder=forwarder,
        relay=relay
    )
    listener.on_connection_lost = context.connection_lost
    return context


def start(context: RelayContext) -> None:
    """
    Open connections in order: database listener first, then the broker

    Notifications received while the broker connects wait in the relay
    queue.

    Raises:
        SetupError: If any connection or subscription fails. Whatever was
            opened before the failure is closed again.
    """
    pg = context.settings.postgres

    context.listener.start(pg.trigger_functions, context.relay.submit)

    try:
        context.forwarder.init()
    except SetupError:
        context.listener.close()
        raise

    context.relay.start()
    logger.info(f"Relaying {context.relay.event_filter} from channels {pg.trigger_functions}")


def stop(context: RelayContext) -> None:
    """Stop receiving, drain the queue and flush the producer"""
    timeout = context.settings.relay.shutdown_timeout
    context.listener.close()
    context.relay.stop(timeout=timeout)
    context.forwarder.close(timeout=timeout)
    logger.info(f"Relay stopped: {context.relay.get_status()['metrics']}")


def _install_signal_handlers(context: RelayContext) -> None:
    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        context.shutdown.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


def run(settings: Optional[Settings] = None) -> int:
    """
    Run the relay until a signal arrives or the database connection drops

    Returns:
        Process exit code
    """
    try:
        settings = settings or get_settings()
    except (ValidationError, SettingsError) as e:
        logger.error(f"Could not start relay: invalid configuration: {e}")
        return EXIT_FAILURE
    configure_logging(settings.log_level)

    context = build_context(settings)
    try:
        start(context)
    except SetupError as e:
        logger.opt(exception=e).error(f"Could not start relay: {e}")
        return EXIT_FAILURE

    if threading.current_thread() is threading.main_thread():
        _install_signal_handlers(context)

    while not context.shutdown.wait(timeout=1.0):
        pass
    stop(context)
    return EXIT_FAILURE if context.fatal.is_set() else EXIT_OK


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()

"""PostgreSQL notification listener using LISTEN/NOTIFY"""

import select
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from loguru import logger

from .base import RawNotification, SetupError


class PostgresNotificationListener:
    """
    Listens on PostgreSQL notification channels

    Holds a single autocommit connection for the lifetime of the process.
    A dedicated thread waits on the connection socket and hands every
    notification to the callback given to start(). There is no reconnect:
    a dropped connection stops the listener and calls `on_connection_lost`.
    """

    def __init__(
        self,
        connection_config: Dict[str, Any],
        poll_interval: float = 5.0,
        on_connection_lost: Optional[Callable[[Exception], None]] = None
    ):
        """
        Initialize PostgreSQL notification listener

        Args:
            connection_config: host, port, database, user and password
            poll_interval: Max seconds to wait on the socket before
                re-checking the stop flag
            on_connection_lost: Called once from the listener thread if the
                connection drops
        """
        self.connection_config = connection_config
        self.poll_interval = poll_interval
        self.on_connection_lost = on_connection_lost

        self.connection = None
        self.channels: List[str] = []
        self.is_running = False
        self.notification_count = 0

        self._callback: Optional[Callable[[RawNotification], None]] = None
        self._listen_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(
        self,
        channel_names: Iterable[str],
        callback: Callable[[RawNotification], None]
    ) -> None:
        """
        Connect, subscribe to every channel and start the listener thread

        Args:
            channel_names: Notification channels (trigger function names)
            callback: Invoked once per notification from the listener thread

        Raises:
            SetupError: If the connection or any LISTEN command fails
        """
        if self.is_running:
            logger.warning("Notification listener already running")
            return

        channels = list(dict.fromkeys(channel_names))
        if not channels:
            raise SetupError("No notification channels configured")

        try:
            self.connection = psycopg2.connect(**self._get_connection_params())
            self.connection.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
            logger.info(
                f"Connected to PostgreSQL at "
                f"{self.connection_config.get('host')}:{self.connection_config.get('port')}"
            )

            with self.connection.cursor() as cursor:
                for channel in channels:
                    cursor.execute(sql.SQL("LISTEN {}").format(sql.Identifier(channel)))
                    logger.info(f"Listening on channel: {channel}")
        except Exception as e:
            self._close_connection()
            raise SetupError(f"Failed to set up PostgreSQL listener: {e}") from e

        self.channels = channels
        self._callback = callback
        self._stop_event.clear()
        self.is_running = True

        self._listen_thread = threading.Thread(
            target=self._listen,
            name="pg-notify-listener",
            daemon=True
        )
        self._listen_thread.start()
        logger.info("Listening to notifications")

    def _listen(self) -> None:
        """Receive loop (runs in the listener thread)"""
        try:
            while not self._stop_event.is_set():
                self._poll_once()
        except (psycopg2.Error, OSError, ValueError) as e:
            if self._stop_event.is_set():
                return
            logger.error(f"Lost PostgreSQL notification connection: {e}")
            self.is_running = False
            if self.on_connection_lost:
                self.on_connection_lost(e)

    def _poll_once(self) -> int:
        """
        Wait up to poll_interval for notifications and dispatch them

        Notifications psycopg2 already buffered (for instance while the
        LISTEN commands ran) are dispatched without waiting on the socket.

        Returns:
            Number of notifications dispatched
        """
        if not self.connection.notifies:
            if select.select([self.connection], [], [], self.poll_interval) == ([], [], []):
                return 0
            self.connection.poll()

        dispatched = 0
        while self.connection.notifies:
            notify = self.connection.notifies.pop(0)
            self._dispatch(
                RawNotification(channel=notify.channel, payload=notify.payload, pid=notify.pid)
            )
            dispatched += 1
        return dispatched

    def _dispatch(self, notification: RawNotification) -> None:
        self.notification_count += 1
        logger.debug(f"Received trigger payload on {notification.channel}: {notification.payload}")
        try:
            self._callback(notification)
        except Exception as e:
            logger.opt(exception=e).error(f"Error handling notification from {notification.channel}")

    def close(self) -> None:
        """Stop the listener thread and close the connection"""
        self._stop_event.set()
        self.is_running = False

        if self._listen_thread and self._listen_thread is not threading.current_thread():
            self._listen_thread.join(timeout=self.poll_interval + 1)

        self._close_connection()

    def _close_connection(self) -> None:
        if self.connection is not None:
            try:
                self.connection.close()
                logger.info("PostgreSQL listener connection closed")
            except psycopg2.Error as e:
                logger.warning(f"Error closing PostgreSQL connection: {e}")
            self.connection = None

    def get_status(self) -> Dict[str, Any]:
        """Get current listener status"""
        return {
            'channels': list(self.channels),
            'is_running': self.is_running,
            'notifications_received': self.notification_count,
            'connected': self.connection is not None and not self.connection.closed
        }

    def _get_connection_params(self) -> Dict[str, Any]:
        """Get connection parameters from config"""
        return {
            'host': self.connection_config.get('host', 'localhost'),
            'port': self.connection_config.get('port', 5432),
            'database': self.connection_config.get('database'),
            'user': self.connection_config.get('user'),
            'password': self.connection_config.get('password')
        }

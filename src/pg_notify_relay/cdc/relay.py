"""Dispatches received notifications through the filter to the forwarder"""

import queue
import threading
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from loguru import logger

from .base import DecodeError, PublishError, RawNotification
from .router import EventFilter, decode

if TYPE_CHECKING:
    from ..broker.base import EventForwarder

_STOP = object()


class NotificationRelay:
    """
    Bounded work queue between the listener thread and the forwarder

    The listener calls submit() for every notification; arrival order is
    kept in the queue. A dispatcher thread decodes, filters and hands each
    accepted event to the forwarder. Notifications submitted before start()
    wait in the queue until the forwarder is ready.

    Per-event failures (decode, filter rejection, publish) are logged and
    dropped; they never stop the dispatcher.
    """

    def __init__(
        self,
        event_filter: EventFilter,
        forwarder: "EventForwarder",
        queue_size: int = 1000
    ):
        """
        Initialize notification relay

        Args:
            event_filter: Topic and originator allow-lists
            forwarder: Destination for accepted events
            queue_size: Max notifications waiting for dispatch. When full,
                submit() blocks the listener thread
        """
        self.event_filter = event_filter
        self.forwarder = forwarder
        self.queue_size = queue_size

        self.work_queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self.dispatch_thread: Optional[threading.Thread] = None
        self.is_running = False

        self.metrics = {
            'received': 0,
            'decode_failed': 0,
            'filtered': 0,
            'published': 0,
            'publish_failed': 0,
            'last_event_time': None
        }
        self.metrics_lock = threading.Lock()

    def submit(self, notification: RawNotification) -> None:
        """Enqueue a notification for dispatch (called by the listener)"""
        with self.metrics_lock:
            self.metrics['received'] += 1
            self.metrics['last_event_time'] = datetime.now()
        self.work_queue.put(notification)

    def start(self) -> None:
        """Start the dispatcher thread"""
        if self.is_running:
            logger.warning("Notification relay already running")
            return

        self.is_running = True
        self.dispatch_thread = threading.Thread(
            target=self._dispatch_loop,
            name="pg-notify-dispatcher",
            daemon=True
        )
        self.dispatch_thread.start()

        pending = self.work_queue.qsize()
        if pending:
            logger.info(f"Started dispatcher with {pending} queued notifications")
        else:
            logger.info("Started dispatcher")

    def stop(self, timeout: float = 10.0) -> None:
        """Drain queued notifications and stop the dispatcher thread"""
        if not self.is_running:
            return

        deadline = time.monotonic() + timeout
        try:
            self.work_queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning(
                f"Dispatcher queue still full after {timeout}s, "
                f"{self.work_queue.qsize()} notifications left"
            )
        else:
            if self.dispatch_thread:
                self.dispatch_thread.join(timeout=max(0.0, deadline - time.monotonic()))
                if self.dispatch_thread.is_alive():
                    logger.warning(
                        f"Dispatcher did not stop within {timeout}s, "
                        f"{self.work_queue.qsize()} notifications left"
                    )
        self.is_running = False
        logger.info("Stopped dispatcher")

    def _dispatch_loop(self) -> None:
        """Consume the work queue (runs in the dispatcher thread)"""
        while True:
            item = self.work_queue.get()
            try:
                if item is _STOP:
                    return
                self.handle(item)
            except Exception as e:
                logger.opt(exception=e).error(f"Unexpected error dispatching {item}")
            finally:
                self.work_queue.task_done()

    def handle(self, notification: RawNotification) -> bool:
        """
        Decode, filter and forward one notification

        Args:
            notification: Notification received from the database

        Returns:
            True if the event was handed to the forwarder
        """
        try:
            event = decode(notification.payload)
        except DecodeError as e:
            logger.error(
                f"Could not parse message payload from {notification.channel}: {e} "
                f"(payload: {notification.payload!r})"
            )
            self._count('decode_failed')
            return False

        if not self.event_filter.accept(event):
            logger.debug(
                f"Ignoring message with incorrect topic or originator: "
                f"topic={event.topic}, originator={event.originator}"
            )
            self._count('filtered')
            return False

        try:
            self.forwarder.publish(event)
        except PublishError:
            self._count('publish_failed')
            return False

        self._count('published')
        return True

    def _count(self, key: str) -> None:
        with self.metrics_lock:
            self.metrics[key] += 1

    def get_status(self) -> Dict[str, Any]:
        """Get dispatcher status and counters"""
        with self.metrics_lock:
            metrics = self.metrics.copy()
        return {
            'is_running': self.is_running,
            'metrics': metrics,
            'queue': {
                'size': self.work_queue.qsize(),
                'max_size': self.queue_size
            },
            'filter': {
                'topics': sorted(self.event_filter.topics),
                'originators': sorted(self.event_filter.originators)
            }
        }

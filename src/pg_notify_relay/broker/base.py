"""Base event forwarder interface"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from ..cdc.base import ChangeEvent


class EventForwarder(ABC):
    """Abstract base class for message broker forwarders"""

    @abstractmethod
    def init(self) -> None:
        """
        Establish the broker connection

        Raises:
            SetupError: If the broker cannot be reached
        """
        pass

    @abstractmethod
    def publish(self, event: ChangeEvent) -> Any:
        """
        Send an event without waiting for the broker acknowledgment

        Returns:
            A handle for the in-flight send

        Raises:
            PublishError: If the send could not be submitted
        """
        pass

    @abstractmethod
    def close(self, timeout: float = 10.0) -> None:
        """Flush pending sends and close the broker connection"""
        pass

    @abstractmethod
    def get_status(self) -> Dict[str, Any]:
        """Get forwarder status"""
        pass

    def __enter__(self):
        """Context manager entry"""
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()

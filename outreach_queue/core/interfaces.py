"""Collaborator interface definitions."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from outreach_queue.core.model.progress import BackendTrackerStatus
from outreach_queue.core.model.queue_item import QueueItem


class IMessagingProvider(ABC):
    """Interface for the messaging provider account."""

    @abstractmethod
    def send(self, item: QueueItem, text: Optional[str]) -> None:
        """
        Send one connection request, InMail or direct message.

        Args:
            item: Queue item with a provider id
            text: Message body (None for connection-only requests)

        Raises:
            MessagingProviderError: If the provider rejected the send
        """
        pass


class ITrackerService(ABC):
    """Interface for the backend tracker service."""

    @abstractmethod
    def track(self, item: QueueItem, text: Optional[str]) -> Optional[str]:
        """Register a successful send. Returns the tracker id, if one was created."""
        pass

    @abstractmethod
    def status_by_providers(self, provider_ids: List[str]) -> List[BackendTrackerStatus]:
        """Latest tracker state for each provider id that has one."""
        pass

    @abstractmethod
    def sync_connections(self, provider_ids: List[str]) -> Dict[str, Any]:
        """Ask the backend to re-check connection status live with the provider."""
        pass

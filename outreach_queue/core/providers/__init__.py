from outreach_queue.core.providers.messaging_client import UnipileMessagingClient
from outreach_queue.core.providers.tracker_client import TrackerServiceClient

__all__ = ["UnipileMessagingClient", "TrackerServiceClient"]

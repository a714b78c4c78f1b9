"""Wires the queue components from the application config."""

from typing import Optional

from loguru import logger

from outreach_queue.config.config_loader import AppConfig
from outreach_queue.core.allowance import RateAllowanceTracker
from outreach_queue.core.db.storage import StorageBacking, create_storage
from outreach_queue.core.dispatcher import Dispatcher
from outreach_queue.core.interfaces import IMessagingProvider, ITrackerService
from outreach_queue.core.pacing import PacingEngine
from outreach_queue.core.providers.messaging_client import UnipileMessagingClient
from outreach_queue.core.providers.tracker_client import TrackerServiceClient
from outreach_queue.core.queue_store import QueueStore
from outreach_queue.core.reconciler import Reconciler


class OutreachEngine:
    """The store, allowance, pacing, dispatcher and reconciler of one operator."""

    def __init__(
        self,
        config: AppConfig,
        storage: Optional[StorageBacking] = None,
        messenger: Optional[IMessagingProvider] = None,
        tracker: Optional[ITrackerService] = None,
    ):
        self.config = config
        self.profile = config.outreach.active_profile()

        self.storage = storage or create_storage(
            config.storage.backend, config.storage.url, config.storage.directory
        )
        if messenger is None and config.provider.is_configured:
            messenger = UnipileMessagingClient(config.provider)
        if messenger is None:
            logger.warning("Messaging provider not configured; sending is disabled")
        self.messenger = messenger
        self.tracker = tracker or TrackerServiceClient(config.tracker)

        self.store = QueueStore(self.storage)
        self.allowance = RateAllowanceTracker(self.storage, self.profile)
        self.pacing = PacingEngine(
            self.profile, tick_seconds=config.outreach.tick_seconds
        )
        self.dispatcher = Dispatcher(
            self.store, self.allowance, self.pacing, self.messenger, self.tracker
        )
        self.reconciler = Reconciler(
            self.store,
            self.tracker,
            interval_seconds=config.outreach.sync_interval_seconds,
        )
        logger.debug(
            "Engine ready",
            timing_profile=config.outreach.timing_profile,
            storage=config.storage.backend,
        )

    def close(self) -> None:
        self.reconciler.stop()
        for client in (self.messenger, self.tracker):
            close = getattr(client, "close", None)
            if close is not None:
                close()

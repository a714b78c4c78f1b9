"""HTTP client for the messaging provider (Unipile) account API."""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from outreach_queue.config.config_loader import ProviderConfig
from outreach_queue.core.errors import MessagingProviderError
from outreach_queue.core.interfaces import IMessagingProvider
from outreach_queue.core.model.queue_item import MessageType, OutreachFlow, QueueItem


class UnipileMessagingClient(IMessagingProvider):
    """
    Sends connection requests and chat messages through a Unipile account.

    Connection flow items go to `POST /users/invite`; direct flow items open
    a chat with `POST /chats` (InMail via the classic API option).
    """

    def __init__(self, config: ProviderConfig, client: Optional[httpx.Client] = None):
        if not config.is_configured:
            raise ValueError(
                "Messaging provider is not configured: set dsn, api_key and account_id"
            )
        self._config = config
        self._client = client or httpx.Client(timeout=config.timeout)
        self._owns_client = client is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _post(self, path: str, body: Dict[str, Any], action: str) -> Dict[str, Any]:
        url = f"{self._config.base_url}{path}"
        try:
            response = self._client.post(
                url,
                json=body,
                headers={"X-API-KEY": self._config.api_key},
            )
        except httpx.HTTPError as e:
            raise MessagingProviderError(f"Failed to send {action}: {e}") from e

        if response.is_error:
            raise MessagingProviderError(
                f"Failed to send {action}: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            return {}

    def send(self, item: QueueItem, text: Optional[str]) -> None:
        if not item.is_sendable:
            raise MessagingProviderError(
                f"Cannot send to {item.name}: missing provider id"
            )

        if item.flow is OutreachFlow.CONNECTION:
            body: Dict[str, Any] = {
                "provider_id": item.provider_id,
                "account_id": self._config.account_id,
            }
            # Only connection_request carries a note
            if item.message_type is MessageType.CONNECTION_REQUEST and text:
                body["message"] = text
            self._post("/users/invite", body, "connection request")
            logger.info(
                "Connection request sent",
                candidate=item.name,
                with_note="message" in body,
            )
            return

        body = {
            "account_id": self._config.account_id,
            "text": text or "",
            "attendees_ids": [item.provider_id],
        }
        if item.message_type is MessageType.INMAIL:
            body["options"] = {"linkedin": {"api": "classic", "inmail": True}}
        self._post("/chats", body, item.message_type.value)
        logger.info("Direct message sent", candidate=item.name, type=item.message_type.value)

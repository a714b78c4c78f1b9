"""HTTP client for the backend outreach tracker service."""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from outreach_queue.config.config_loader import TrackerConfig
from outreach_queue.config.trace_context import inject_trace_id_to_headers
from outreach_queue.core.errors import TrackerServiceError
from outreach_queue.core.interfaces import ITrackerService
from outreach_queue.core.model.progress import BackendTrackerStatus
from outreach_queue.core.model.queue_item import MessageType, QueueItem

OUTREACH_TYPES = {
    MessageType.CONNECTION_REQUEST: "CONNECTION_REQUEST",
    MessageType.CONNECTION_ONLY: "CONNECTION_ONLY",
    MessageType.INMAIL: "INMAIL",
    MessageType.MESSAGE: "DIRECT_MESSAGE",
}


def _parse_status_record(record: Dict[str, Any]) -> BackendTrackerStatus:
    return BackendTrackerStatus(
        provider_id=record.get("providerId") or record.get("candidateProviderId"),
        status=record.get("status", ""),
        tracker_id=record.get("trackerId") or record.get("id"),
        accepted_at=record.get("acceptedAt"),
        pitch_sent_at=record.get("pitchSentAt"),
    )


class TrackerServiceClient(ITrackerService):
    def __init__(self, config: TrackerConfig, client: Optional[httpx.Client] = None):
        self._base_url = config.base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=config.timeout)
        self._owns_client = client is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}/api/outreach{path}"
        try:
            response = self._client.post(
                url, json=body, headers=inject_trace_id_to_headers()
            )
        except httpx.HTTPError as e:
            raise TrackerServiceError(f"Tracker service unreachable ({path}): {e}") from e

        if response.is_error:
            raise TrackerServiceError(
                f"Tracker service error ({path}): {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TrackerServiceError(f"Tracker service returned invalid JSON ({path})") from e

    def track(self, item: QueueItem, text: Optional[str]) -> Optional[str]:
        criteria = item.search_criteria
        body = {
            "candidateProviderId": item.provider_id,
            "candidateName": item.name,
            "candidateProfileUrl": item.profile_url,
            "outreachType": OUTREACH_TYPES[item.message_type],
            "messageContent": text,
            "jobRequisitionId": item.job_requisition_id,
            "jobTitle": criteria.job_title if criteria else None,
            "assessmentTemplateId": item.assessment_template_id,
            "sourceQueueItemId": item.id,
        }
        data = self._post("/track", {k: v for k, v in body.items() if v is not None})
        tracker_id = (data.get("tracker") or {}).get("id")
        logger.debug("Tracker created", tracker_id=tracker_id, candidate=item.name)
        return tracker_id

    def status_by_providers(self, provider_ids: List[str]) -> List[BackendTrackerStatus]:
        if not provider_ids:
            return []
        data = self._post("/status-by-providers", {"providerIds": provider_ids})
        try:
            records = data.get("statuses", data.get("trackers", []))
            return [_parse_status_record(record) for record in records]
        except (ValidationError, AttributeError) as e:
            raise TrackerServiceError(f"Malformed tracker status response: {e}") from e

    def sync_connections(self, provider_ids: List[str]) -> Dict[str, Any]:
        return self._post("/sync-connections-from-linkedin", {"providerIds": provider_ids})

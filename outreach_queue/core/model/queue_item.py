"""Queue item model and the enums that classify it."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QueueStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CONNECTION_ACCEPTED = "connection_accepted"
    PITCH_PENDING = "pitch_pending"
    PITCH_SENT = "pitch_sent"
    REPLIED = "replied"
    FAILED = "failed"


class OutreachFlow(str, Enum):
    CONNECTION = "connection"
    DIRECT = "direct"


class OutreachKind(str, Enum):
    """Quota bucket a send is counted against."""

    CONNECTION = "connection"
    INMAIL = "inmail"
    MESSAGE = "message"


class MessageType(str, Enum):
    CONNECTION_REQUEST = "connection_request"
    CONNECTION_ONLY = "connection_only"
    INMAIL = "inmail"
    MESSAGE = "message"

    @property
    def flow(self) -> OutreachFlow:
        if self in (MessageType.CONNECTION_REQUEST, MessageType.CONNECTION_ONLY):
            return OutreachFlow.CONNECTION
        return OutreachFlow.DIRECT

    @property
    def kind(self) -> OutreachKind:
        if self.flow is OutreachFlow.CONNECTION:
            return OutreachKind.CONNECTION
        if self is MessageType.INMAIL:
            return OutreachKind.INMAIL
        return OutreachKind.MESSAGE


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchCriteria(CamelModel):
    job_title: str = ""
    skills: List[str] = []


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueItem(CamelModel):
    """One candidate's pending or in-flight outreach action."""

    id: str
    candidate_id: str
    provider_id: Optional[str] = None

    name: str
    headline: Optional[str] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None
    location: Optional[str] = None
    profile_url: str = ""
    profile_picture_url: Optional[str] = None
    relevance_score: int = 0
    created_at: datetime = Field(default_factory=_utcnow)

    message_type: MessageType = MessageType.CONNECTION_REQUEST
    status: QueueStatus = QueueStatus.PENDING

    message_draft: Optional[str] = None
    search_criteria: Optional[SearchCriteria] = None
    job_requisition_id: Optional[str] = None
    assessment_template_id: Optional[str] = None
    assessment_url: Optional[str] = None

    tracker_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    pitch_sent_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def flow(self) -> OutreachFlow:
        return self.message_type.flow

    @property
    def kind(self) -> OutreachKind:
        return self.message_type.kind

    @property
    def is_sendable(self) -> bool:
        return bool(self.provider_id and self.provider_id.strip())

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""

    def to_record(self) -> dict:
        """Serialize for storage (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)

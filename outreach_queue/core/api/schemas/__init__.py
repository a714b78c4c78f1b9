from outreach_queue.core.api.schemas.common import CountResponse, MessageResponse, RunResponse
from outreach_queue.core.api.schemas.queue_schemas import (
    AllowanceEntry,
    AllowanceResponse,
    EnqueueRequest,
    EnqueueResponse,
    ItemPatchRequest,
    SendRequest,
)

"""Controller for queue, batch and sync endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from outreach_queue.core.api.schemas.common import CountResponse, MessageResponse, RunResponse
from outreach_queue.core.api.schemas.queue_schemas import (
    AllowanceResponse,
    EnqueueRequest,
    EnqueueResponse,
    ItemPatchRequest,
    SendRequest,
)
from outreach_queue.core.api.services.queue_service import QueueService
from outreach_queue.core.errors import (
    AdmissionError,
    BatchInProgressError,
    InvalidTransitionError,
    QueueItemNotFoundError,
    SyncError,
)
from outreach_queue.core.model.progress import OutreachProgress, ReconciliationResult
from outreach_queue.core.model.queue_item import QueueItem, QueueStatus

router = APIRouter(prefix="/api/queue", tags=["queue"])


def get_queue_service() -> QueueService:
    from outreach_queue.core.api.app import get_queue_service as _get

    return _get()


@router.get("", response_model=List[QueueItem])
def list_queue(
    status: Optional[QueueStatus] = None,
    service: QueueService = Depends(get_queue_service),
) -> List[QueueItem]:
    return service.list_items(status)


@router.get("/summary")
def queue_summary(service: QueueService = Depends(get_queue_service)) -> dict:
    """Counts per status, plus pending items that have no provider id."""
    return service.summary()


@router.post("/items", response_model=EnqueueResponse)
def enqueue_items(
    request: EnqueueRequest,
    service: QueueService = Depends(get_queue_service),
) -> EnqueueResponse:
    return service.enqueue(request.items)


@router.delete("/items/{item_id}", response_model=QueueItem)
def remove_item(
    item_id: str, service: QueueService = Depends(get_queue_service)
) -> QueueItem:
    try:
        return service.remove(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/items/{item_id}/retry", response_model=QueueItem)
def retry_item(
    item_id: str, service: QueueService = Depends(get_queue_service)
) -> QueueItem:
    """Reset a failed item to pending."""
    try:
        return service.retry(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/items/{item_id}", response_model=QueueItem)
def update_item(
    item_id: str,
    request: ItemPatchRequest,
    service: QueueService = Depends(get_queue_service),
) -> QueueItem:
    try:
        return service.update_item(item_id, request)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/clear", response_model=CountResponse)
def clear_queue(service: QueueService = Depends(get_queue_service)) -> CountResponse:
    return CountResponse(count=service.clear())


@router.post("/clear-completed", response_model=CountResponse)
def clear_completed(service: QueueService = Depends(get_queue_service)) -> CountResponse:
    """Remove every item that is no longer pending."""
    return CountResponse(count=service.clear_completed())


@router.get("/allowance", response_model=AllowanceResponse)
def get_allowance(service: QueueService = Depends(get_queue_service)) -> AllowanceResponse:
    return service.allowance()


@router.post("/send", response_model=RunResponse)
def send_batch(
    request: SendRequest,
    service: QueueService = Depends(get_queue_service),
) -> RunResponse:
    """Start a paced batch. Returns a run_id to poll for progress."""
    try:
        return RunResponse(run_id=service.submit_send(request))
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AdmissionError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/runs/{run_id}", response_model=OutreachProgress)
def get_run(run_id: str, service: QueueService = Depends(get_queue_service)) -> OutreachProgress:
    progress = service.get_run(run_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    return progress


@router.post("/runs/{run_id}/cancel", response_model=MessageResponse)
def cancel_run(run_id: str, service: QueueService = Depends(get_queue_service)) -> MessageResponse:
    """Stop the batch at its next pacing boundary."""
    if not service.cancel_run(run_id):
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    return MessageResponse(message="Cancellation requested")


@router.post("/sync", response_model=ReconciliationResult)
def force_sync(service: QueueService = Depends(get_queue_service)) -> ReconciliationResult:
    try:
        return service.force_sync()
    except SyncError as e:
        raise HTTPException(status_code=502, detail=str(e))

"""In-memory registry of batch runs for progress polling and cancellation."""

import threading
import time
from typing import Dict, Optional

from loguru import logger

from outreach_queue.core.model.progress import BatchStatus, OutreachProgress
from outreach_queue.core.pacing import CancellationToken


class _RunEntry:
    __slots__ = ("progress", "token", "finished_at")

    def __init__(self, progress: OutreachProgress, token: CancellationToken):
        self.progress = progress
        self.token = token
        self.finished_at: Optional[float] = None


class RunStore:
    """Thread-safe run registry. Finished runs expire after `ttl` seconds."""

    def __init__(self, ttl: int = 3600):
        self._runs: Dict[str, _RunEntry] = {}
        self._lock = threading.Lock()
        self._ttl = ttl

    def create(self, run_id: str, total: int) -> CancellationToken:
        """Register a new run and return its cancellation token."""
        token = CancellationToken()
        with self._lock:
            self._cleanup_expired_locked()
            self._runs[run_id] = _RunEntry(
                OutreachProgress(run_id=run_id, total=total), token
            )
        logger.debug("Run registered", run_id=run_id, total=total)
        return token

    def update(self, progress: OutreachProgress) -> None:
        with self._lock:
            entry = self._runs.get(progress.run_id)
            if entry is None:
                return
            entry.progress = progress
            if not progress.status.is_active and entry.finished_at is None:
                entry.finished_at = time.time()

    def get(self, run_id: str) -> Optional[OutreachProgress]:
        with self._lock:
            entry = self._runs.get(run_id)
            if entry is None:
                return None
            if entry.finished_at and time.time() - entry.finished_at > self._ttl:
                del self._runs[run_id]
                logger.debug("Run expired", run_id=run_id)
                return None
            return entry.progress

    def cancel(self, run_id: str) -> bool:
        """Request cancellation. Returns False if the run is unknown."""
        with self._lock:
            entry = self._runs.get(run_id)
        if entry is None:
            return False
        entry.token.cancel()
        logger.info("Run cancellation requested", run_id=run_id)
        return True

    def active_run_id(self) -> Optional[str]:
        with self._lock:
            for run_id, entry in self._runs.items():
                if entry.finished_at is None:
                    return run_id
        return None

    def _cleanup_expired_locked(self) -> int:
        """Remove expired runs. Must be called with lock held."""
        now = time.time()
        expired = [
            run_id
            for run_id, entry in self._runs.items()
            if entry.finished_at and now - entry.finished_at > self._ttl
        ]
        for run_id in expired:
            del self._runs[run_id]
        if expired:
            logger.debug("Cleaned up expired runs", count=len(expired))
        return len(expired)

    def fail(self, run_id: str, message: str) -> None:
        """Close a run whose worker died before reporting a final status."""
        with self._lock:
            entry = self._runs.get(run_id)
            if entry is None or entry.finished_at is not None:
                return
            entry.progress = entry.progress.model_copy(
                update={"status": BatchStatus.ERROR, "status_message": message}
            )
            entry.finished_at = time.time()

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._runs.values())
        for entry in entries:
            entry.token.cancel()

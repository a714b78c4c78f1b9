"""Day-scoped send counters against the active profile's daily caps."""

import json
import threading
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, Optional

from loguru import logger
from pydantic import ValidationError

from outreach_queue.config.config_loader import TimingProfile
from outreach_queue.core.db.storage import DAILY_STATS_KEY, StorageBacking
from outreach_queue.core.errors import AllowanceExhaustedError
from outreach_queue.core.model.progress import DailyOutreachStats
from outreach_queue.core.model.queue_item import OutreachKind

_COUNTER_FIELDS = {
    OutreachKind.CONNECTION: "connections_sent",
    OutreachKind.INMAIL: "inmails_sent",
    OutreachKind.MESSAGE: "messages_sent",
}


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class RateAllowanceTracker:
    """Tracks today's connection, InMail and message counts.

    Counters only ever go up; a stored record from an earlier day reads as a
    fresh set of zero counters.
    """

    def __init__(
        self,
        storage: StorageBacking,
        profile: TimingProfile,
        today: Optional[Callable[[], date]] = None,
        key: str = DAILY_STATS_KEY,
    ):
        self._storage = storage
        self._profile = profile
        self._today = today or _utc_today
        self._key = key
        self._lock = threading.Lock()

    def limit(self, kind: OutreachKind) -> int:
        return {
            OutreachKind.CONNECTION: self._profile.daily_connection_limit,
            OutreachKind.INMAIL: self._profile.daily_inmail_limit,
            OutreachKind.MESSAGE: self._profile.daily_message_limit,
        }[kind]

    def _load_locked(self) -> DailyOutreachStats:
        today = self._today().isoformat()
        raw = self._storage.read(self._key)
        if raw:
            try:
                stats = DailyOutreachStats.model_validate(json.loads(raw))
                if stats.date == today:
                    return stats
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning("Stored outreach stats unreadable, resetting", error=str(e))
        return DailyOutreachStats(date=today)

    def stats(self) -> DailyOutreachStats:
        with self._lock:
            return self._load_locked()

    def sent_today(self, kind: OutreachKind) -> int:
        return getattr(self.stats(), _COUNTER_FIELDS[kind])

    def remaining(self, kind: OutreachKind) -> int:
        return max(0, self.limit(kind) - self.sent_today(kind))

    def remaining_all(self) -> Dict[OutreachKind, int]:
        stats = self.stats()
        return {
            kind: max(0, self.limit(kind) - getattr(stats, field))
            for kind, field in _COUNTER_FIELDS.items()
        }

    def can_send(self, kind: OutreachKind) -> bool:
        return self.remaining(kind) > 0

    def increment(self, kind: OutreachKind, n: int = 1) -> DailyOutreachStats:
        if n < 0:
            raise ValueError("Allowance counters are never decremented")
        with self._lock:
            stats = self._load_locked()
            field = _COUNTER_FIELDS[kind]
            setattr(stats, field, getattr(stats, field) + n)
            self._storage.write(self._key, stats.model_dump_json(by_alias=True))
        logger.debug("Allowance incremented", kind=kind.value, count=getattr(stats, field))
        return stats

    def check_batch(self, kinds: Iterable[OutreachKind]) -> None:
        """Pre-flight admission check for a batch.

        Raises AllowanceExhaustedError for the first represented kind with no
        allowance left. This is the only admission point; a batch that passes
        runs to completion or cancellation.
        """
        remaining = self.remaining_all()
        for kind in dict.fromkeys(kinds):
            if remaining[kind] <= 0:
                raise AllowanceExhaustedError(kind.value, remaining[kind], self.limit(kind))

"""Human-like pacing between sends.

Delays are drawn uniformly from the active profile's bounds. After a random
number of consecutive actions (drawn from the profile's break range) a much
longer break replaces the normal delay. Waits count down in ticks so the
caller can show progress and cancel between ticks.
"""

import math
import random
import threading
import time
from typing import Callable, NamedTuple, Optional

from loguru import logger

from outreach_queue.config.config_loader import TimingProfile

StatusCallback = Callable[[float, bool], None]


class PacingDecision(NamedTuple):
    seconds: float
    is_break: bool


class WaitOutcome(NamedTuple):
    cancelled: bool
    took_break: bool
    waited_seconds: float


class BatchTimeEstimate(NamedTuple):
    min_seconds: float
    max_seconds: float
    avg_seconds: float
    estimated_breaks: int


class CancellationToken:
    """Cooperative cancellation flag shared between a batch and its operator."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class PacingEngine:
    def __init__(
        self,
        profile: TimingProfile,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        tick_seconds: float = 1.0,
    ):
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self.profile = profile
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._tick = tick_seconds
        self._break_threshold = self._draw_break_threshold()

    def _draw_break_threshold(self) -> int:
        return self._rng.randint(
            self.profile.messages_per_break_min, self.profile.messages_per_break_max
        )

    @property
    def break_threshold(self) -> int:
        """Actions allowed before the next break."""
        return self._break_threshold

    def should_take_break(self, actions_since_break: int) -> bool:
        return actions_since_break > 0 and actions_since_break >= self._break_threshold

    def next_delay(self, actions_since_break: int) -> PacingDecision:
        """Pick the next wait. A break re-draws the break threshold."""
        if self.should_take_break(actions_since_break):
            seconds = self._rng.uniform(
                self.profile.break_min_seconds, self.profile.break_max_seconds
            )
            self._break_threshold = self._draw_break_threshold()
            return PacingDecision(seconds, True)
        seconds = self._rng.uniform(
            self.profile.min_delay_seconds, self.profile.max_delay_seconds
        )
        return PacingDecision(seconds, False)

    def wait(
        self,
        actions_since_break: int,
        on_status: Optional[StatusCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> WaitOutcome:
        """Block for the next delay, polling should_cancel before every tick.

        Returns as soon as cancellation is observed; the caller must then not
        send anything else.
        """
        decision = self.next_delay(actions_since_break)
        if decision.is_break:
            logger.info(
                "Taking a break",
                seconds=round(decision.seconds, 1),
                after_actions=actions_since_break,
            )

        remaining = decision.seconds
        waited = 0.0
        while remaining > 0:
            if should_cancel is not None and should_cancel():
                return WaitOutcome(True, decision.is_break, waited)
            if on_status is not None:
                on_status(remaining, decision.is_break)
            step = min(self._tick, remaining)
            self._sleep(step)
            remaining -= step
            waited += step

        if should_cancel is not None and should_cancel():
            return WaitOutcome(True, decision.is_break, waited)
        return WaitOutcome(False, decision.is_break, waited)

    def estimate_batch_time(self, message_count: int) -> BatchTimeEstimate:
        """Rough duration of a batch; the first message has no delay."""
        p = self.profile
        if message_count <= 0:
            return BatchTimeEstimate(0.0, 0.0, 0.0, 0)

        avg_delay = (p.min_delay_seconds + p.max_delay_seconds) / 2
        avg_break = (p.break_min_seconds + p.break_max_seconds) / 2
        avg_per_break = (p.messages_per_break_min + p.messages_per_break_max) / 2
        estimated_breaks = math.floor(message_count / avg_per_break)

        gaps = message_count - 1
        avg_seconds = gaps * avg_delay + estimated_breaks * avg_break
        min_seconds = (
            gaps * p.min_delay_seconds
            + math.floor(message_count / p.messages_per_break_max) * p.break_min_seconds
        )
        max_seconds = (
            gaps * p.max_delay_seconds
            + math.floor(message_count / p.messages_per_break_min) * p.break_max_seconds
        )
        return BatchTimeEstimate(min_seconds, max_seconds, avg_seconds, estimated_breaks)


def format_time_remaining(seconds: float) -> str:
    """`45s` under a minute, otherwise `m:ss`."""
    total = max(0, math.ceil(seconds))
    minutes, secs = divmod(total, 60)
    if minutes == 0:
        return f"{secs}s"
    return f"{minutes}:{secs:02d}"


def format_duration(seconds: float) -> str:
    minutes = round(seconds / 60)
    if minutes < 1:
        return "less than a minute"
    if minutes == 1:
        return "~1 minute"
    if minutes < 60:
        return f"~{minutes} minutes"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"~{hours} hour{'s' if hours > 1 else ''}"
    return f"~{hours}h {rest}m"

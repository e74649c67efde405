"""
Readiness Watchdog - bounded self-healing for components stuck in a
non-terminal state.

A watchdog polls a stall predicate. The first observation of the stall
starts a grace period on a StallTimer; once the grace period has elapsed
the watchdog performs exactly one remediation and resets the timer, so a
new stall episode gets its own grace period. Observations of a healthy
state leave the timer untouched; only a remediation clears it.

Timers live in process memory only. Losing them on restart is safe: the
stall is simply re-detected and a new grace period starts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Tuple

from conditions import utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
StallCondition = Callable[[], Awaitable[bool]]
Remediation = Callable[[], Awaitable[None]]

DEFAULT_STALL_THRESHOLD = timedelta(minutes=5)


@dataclass
class StallTimer:
    """Records when a stall was first observed."""

    threshold: timedelta = DEFAULT_STALL_THRESHOLD
    start_time: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return self.start_time is not None

    def observe(self, now: datetime) -> bool:
        """
        Record an observation of the stall.

        Returns:
            True if the grace period has expired, False if the timer was
            just started or is still within the threshold.
        """
        if self.start_time is None:
            self.start_time = now
            return False
        return now - self.start_time >= self.threshold

    def reset(self) -> None:
        self.start_time = None


class StallTimers:
    """
    Stall timer cells keyed by resource, component and watch name.

    Each managed resource gets private cells; components are shared across
    resources and never hold timers themselves.
    """

    def __init__(self, threshold: timedelta = DEFAULT_STALL_THRESHOLD):
        self.threshold = threshold
        self._timers: Dict[Tuple[str, str, str], StallTimer] = {}

    def get(self, resource_key: str, component: str, watch: str) -> StallTimer:
        """Return the timer cell, creating an unset one on first use."""
        key = (resource_key, component, watch)
        if key not in self._timers:
            self._timers[key] = StallTimer(threshold=self.threshold)
        return self._timers[key]

    def forget(self, resource_key: str) -> None:
        """Drop every timer belonging to a managed resource."""
        for key in [k for k in self._timers if k[0] == resource_key]:
            del self._timers[key]

    def __len__(self) -> int:
        return len(self._timers)


class ReadinessWatchdog:
    """Drives one bounded remediation when a stall persists."""

    def __init__(
        self,
        name: str,
        timer: StallTimer,
        stall_condition: StallCondition,
        remediation: Optional[Remediation] = None,
        clock: Clock = utc_now,
    ):
        self.name = name
        self.timer = timer
        self.stall_condition = stall_condition
        self.remediation = remediation
        self.clock = clock

    async def poll(self) -> bool:
        """
        Check the stall condition once and remediate if it has expired.

        Returns:
            True if a remediation was performed during this poll.
        """
        try:
            stalled = await self.stall_condition()
        except Exception as e:
            logger.error(f"Watchdog {self.name}: failed checking stall condition: {e}")
            raise
        if not stalled:
            return False

        if not self.timer.observe(self.clock()):
            logger.debug(f"Watchdog {self.name}: stall observed, waiting")
            return False

        if self.remediation is None:
            logger.warning(
                f"Watchdog {self.name}: stall persisted past "
                f"{self.timer.threshold} but no remediation is available"
            )
            return False

        logger.info(f"Watchdog {self.name}: stall persisted, remediating")
        await self.remediation()
        self.timer.reset()
        return True

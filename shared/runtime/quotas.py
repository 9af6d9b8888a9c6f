from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, date, timezone
from typing import Dict


# ======================================================================
# Exceptions
# ======================================================================

class QuotaExceeded(RuntimeError):
    """
    Raised when the Data API quota is exhausted, either by the provider
    (quotaExceeded / rateLimitExceeded responses) or by the local budget.

    Callers must treat this as retryable, never as "not live".
    """


class QuotaBufferWarning(RuntimeError):
    """
    Raised when usage enters the configured buffer zone.
    This is NOT fatal, but should surface as a warning.
    """


# ======================================================================
# Data Models
# ======================================================================

# Data API v3 unit costs per call
UNIT_COSTS: Dict[str, int] = {
    "channels": 1,
    "search": 100,
    "videos": 1,
}


@dataclass
class DailyQuota:
    """
    Tracks cumulative usage for a single UTC day.
    """
    day: date
    used: int = 0

    def reset_if_new_day(self) -> None:
        today = datetime.now(timezone.utc).date()
        if self.day != today:
            self.day = today
            self.used = 0


@dataclass
class QuotaPolicy:
    """
    Declarative quota limits.
    """
    max_units: int = 10_000
    buffer_units: int = 500

    @property
    def hard_limit(self) -> int:
        return self.max_units

    @property
    def buffer_threshold(self) -> int:
        return max(0, self.max_units - self.buffer_units)


# ======================================================================
# Quota Tracker
# ======================================================================

class QuotaTracker:
    """
    Process-local Data API quota tracker.

    - Tracks cumulative usage
    - Enforces buffer + hard caps
    - Resets automatically on UTC day rollover
    - Can be marked exhausted when the provider reports quota errors
    """

    def __init__(self, *, platform: str = "youtube", policy: QuotaPolicy | None = None):
        self.platform = platform
        self.policy = policy or QuotaPolicy()
        self.state = DailyQuota(
            day=datetime.now(timezone.utc).date(),
            used=0,
        )
        self._lock = threading.Lock()

    # --------------------------------------------------

    def consume(self, units: int) -> None:
        if units <= 0:
            return

        with self._lock:
            self.state.reset_if_new_day()
            projected = self.state.used + units

            if projected > self.policy.hard_limit:
                raise QuotaExceeded(
                    f"Quota exceeded: {projected} / {self.policy.hard_limit}"
                )

            entering_buffer = (
                self.state.used < self.policy.buffer_threshold
                and projected >= self.policy.buffer_threshold
            )
            self.state.used = projected

        if entering_buffer:
            raise QuotaBufferWarning(
                f"Quota buffer entered: {projected} / {self.policy.hard_limit}"
            )

    def mark_exhausted(self) -> None:
        """Provider said no; stop spending until the UTC day rolls over."""
        with self._lock:
            self.state.reset_if_new_day()
            self.state.used = max(self.state.used, self.policy.hard_limit)

    # --------------------------------------------------

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            self.state.reset_if_new_day()
            return {
                "used": self.state.used,
                "remaining": max(0, self.policy.hard_limit - self.state.used),
                "max": self.policy.hard_limit,
                "buffer": self.policy.buffer_units,
            }

    def status(self) -> str:
        snap = self.snapshot()
        if snap["used"] >= snap["max"]:
            return "exhausted"
        if snap["used"] >= self.policy.buffer_threshold:
            return "buffer"
        return "ok"
